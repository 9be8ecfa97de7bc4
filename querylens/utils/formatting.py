import json
from typing import Any, Dict, List

from querylens.core.conversation import Conversation, Role


def _cell(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return str(value).replace("|", "\\|").replace("\r", " ").replace("\n", " ")


def render_markdown_table(rows: List[Dict[str, Any]]) -> str:
    """Render dict rows as a Markdown table; columns follow the first row."""
    if not rows:
        return "Query returned no rows."

    columns = list(rows[0].keys())
    lines = [
        "| " + " | ".join(_cell(c) for c in columns) + " |",
        "| " + " | ".join("---" for _ in columns) + " |",
    ]
    for row in rows:
        lines.append("| " + " | ".join(_cell(row.get(c)) for c in columns) + " |")
    return "\n".join(lines)


def _pretty_arguments(arguments: str) -> str:
    try:
        return json.dumps(json.loads(arguments), indent=2, ensure_ascii=False)
    except json.JSONDecodeError:
        return arguments


def conversation_to_markdown(conversation: Conversation) -> str:
    """Human readable transcript, stored next to the raw conversation."""
    parts = []
    for message in conversation.messages:
        if message.role == Role.USER:
            parts.append(f"## User\n\n{message.content or ''}")
        elif message.role == Role.ASSISTANT:
            section = ["## Assistant"]
            if message.content:
                section.append(message.content)
            for call in message.tool_calls:
                section.append(f"**Tool call** `{call.name}` (`{call.id}`)\n\n```json\n{_pretty_arguments(call.arguments)}\n```")
            parts.append("\n\n".join(section))
        else:
            result = message.tool_result
            title = "Tool error" if result.is_error else "Tool result"
            parts.append(f"### {title} `{result.name}` (`{result.tool_call_id}`)\n\n{result.content}")
    return "\n\n".join(parts) + "\n"
