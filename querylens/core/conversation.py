import json
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from querylens.core.errors import ConversationError, ToolInputError


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCall(BaseModel):
    """A function call emitted by the model. `arguments` is kept as the raw JSON text."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: str = "{}"

    def parse_arguments(self) -> Dict[str, Any]:
        try:
            value = json.loads(self.arguments or "{}")
        except json.JSONDecodeError as e:
            raise ToolInputError(f"Arguments for tool '{self.name}' are not valid JSON: {e}") from e
        if not isinstance(value, dict):
            raise ToolInputError(f"Arguments for tool '{self.name}' must be a JSON object")
        return value


class ToolResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool_call_id: str
    name: str
    content: str
    is_error: bool = False


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: Optional[str] = None
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_result: Optional[ToolResult] = None

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=Role.USER, content=text)

    @classmethod
    def assistant(cls, text: Optional[str], tool_calls: Tuple[ToolCall, ...] = ()) -> "Message":
        return cls(role=Role.ASSISTANT, content=text, tool_calls=tuple(tool_calls))

    @classmethod
    def tool(cls, result: ToolResult) -> "Message":
        return cls(role=Role.TOOL, content=result.content, tool_result=result)

    def to_openai(self) -> Dict[str, Any]:
        if self.role == Role.TOOL:
            return {
                "role": "tool",
                "tool_call_id": self.tool_result.tool_call_id,
                "content": self.content or "",
            }
        message: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ]
        return message


class Conversation(BaseModel):
    """
    Append-only message history. `with_message` returns a new conversation and
    enforces that every tool result answers a call of the latest assistant turn.
    """
    model_config = ConfigDict(frozen=True)

    messages: Tuple[Message, ...] = ()

    @classmethod
    def from_prompt(cls, prompt: str) -> "Conversation":
        return cls().with_message(Message.user(prompt))

    def with_message(self, message: Message) -> "Conversation":
        self._check_append(message)
        return Conversation(messages=self.messages + (message,))

    def _last_assistant_index(self) -> Optional[int]:
        for index in range(len(self.messages) - 1, -1, -1):
            role = self.messages[index].role
            if role == Role.ASSISTANT:
                return index
            if role == Role.USER:
                return None
        return None

    @property
    def pending_tool_calls(self) -> List[ToolCall]:
        index = self._last_assistant_index()
        if index is None:
            return []
        answered = {m.tool_result.tool_call_id for m in self.messages[index + 1:]}
        return [call for call in self.messages[index].tool_calls if call.id not in answered]

    def _check_append(self, message: Message) -> None:
        pending = self.pending_tool_calls
        if message.role != Role.TOOL:
            if pending:
                names = ", ".join(call.id for call in pending)
                raise ConversationError(f"Cannot append a {message.role.value} message while tool calls are unanswered: {names}")
            return

        if message.tool_result is None:
            raise ConversationError("Tool message without a tool result")
        if not any(call.id == message.tool_result.tool_call_id for call in pending):
            raise ConversationError(
                f"Tool result '{message.tool_result.tool_call_id}' does not answer a pending call of the preceding assistant message"
            )

    @property
    def last_text(self) -> Optional[str]:
        for message in reversed(self.messages):
            if message.role == Role.ASSISTANT and message.content:
                return message.content
        return None

    def to_openai_messages(self) -> List[Dict[str, Any]]:
        return [message.to_openai() for message in self.messages]

    def __len__(self) -> int:
        return len(self.messages)
