import asyncio
import logging
from typing import Optional

from querylens.core.conversation import Conversation, Message, ToolCall
from querylens.core.errors import TransportError
from querylens.core.llm import LLMService
from querylens.core.models import ModelParams
from querylens.core.tools import ToolRegistry

logger = logging.getLogger(__name__)


class ConversationEngine:
    """
    Tool-calling loop: send the conversation, run any requested tools, feed
    their results back and repeat until the model answers without tool calls.
    The number of rounds is bounded only by the model's own budget.
    """

    def __init__(self, llm: LLMService):
        self.llm = llm

    async def run_async(
        self,
        conversation: Conversation,
        tools: Optional[ToolRegistry] = None,
        params: Optional[ModelParams] = None,
    ) -> Conversation:
        tools = tools or ToolRegistry()
        definitions = tools.definitions() or None

        round_number = 0
        while True:
            round_number += 1
            logger.info(f"Conversation round {round_number} ({len(conversation)} messages, tools: {tools.names})")

            response = await self.llm.chat(conversation.to_openai_messages(), tools=definitions, params=params)
            message = self._parse_response(response)
            conversation = conversation.with_message(message)

            if not message.tool_calls:
                return conversation

            for call in message.tool_calls:
                result = await tools.dispatch(call)
                conversation = conversation.with_message(Message.tool(result))

    def run(
        self,
        conversation: Conversation,
        tools: Optional[ToolRegistry] = None,
        params: Optional[ModelParams] = None,
    ) -> Conversation:
        """Blocking form of run_async for callers without a running event loop."""
        return asyncio.run(self.run_async(conversation, tools, params))

    @staticmethod
    def _parse_response(response) -> Message:
        try:
            choice = response.choices[0]
            raw = choice.message
        except (AttributeError, IndexError, TypeError) as e:
            raise TransportError(f"Malformed model response: {e}") from e

        calls = []
        seen_ids = set()
        for tool_call in raw.tool_calls or []:
            function = getattr(tool_call, "function", None)
            if function is None:
                raise TransportError(f"Unsupported tool call type: {getattr(tool_call, 'type', None)}")
            if not tool_call.id:
                raise TransportError(f"Tool call to {function.name} has no id")
            if tool_call.id in seen_ids:
                raise TransportError(f"Tool call id {tool_call.id} is used more than once in one response")
            seen_ids.add(tool_call.id)
            calls.append(ToolCall(id=tool_call.id, name=function.name, arguments=function.arguments or "{}"))

        return Message.assistant(raw.content, tuple(calls))
