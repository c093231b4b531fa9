"""Export a single chat to Markdown and JSON formats."""

import json

from .core import Chat
from .serialization import chat_to_dict

ORIGIN_LABELS = {
    "local-user": "You",
    "automated": "Assistant",
    "remote-contact": "Contact",
}


def chat_to_markdown(chat: Chat) -> str:
    """Export a chat and its messages as clean Markdown."""
    lines = [f"# {chat.name}", ""]

    lines.append(f"**Category:** {chat.category}")
    lines.append(f"**Status:** {'online' if chat.online else 'offline'}")
    if chat.last_message:
        lines.append(f"**Last message:** {chat.last_message.timestamp.isoformat()}")
    lines.append(f"**Messages:** {len(chat.messages)}")
    lines.append(f"**Unread:** {chat.unread_count}")
    lines.extend(["", "---", ""])

    for msg in chat.messages:
        label = ORIGIN_LABELS.get(msg.origin, msg.origin)
        if msg.origin == "remote-contact":
            label = chat.name
        ts = f" ({msg.timestamp.strftime('%Y-%m-%d %H:%M')})"
        lines.append(f"## {label}{ts}")
        lines.append("")
        lines.append(msg.text)
        lines.extend(["", "---", ""])

    return "\n".join(lines)


def chat_to_json(chat: Chat) -> str:
    """Export a chat and its messages as structured JSON."""
    return json.dumps({"chat": chat_to_dict(chat)}, indent=2, ensure_ascii=False)
