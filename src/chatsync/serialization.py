"""Versioned JSON encoding of a chat collection.

Timestamps are written as ISO-8601 UTC strings with millisecond precision.
Messages carry millisecond timestamps already, so decoding a freshly
encoded collection gives back an equal one.
"""

import json
from datetime import datetime, timezone

from .core import CATEGORIES, ORIGINS, Chat, Collection, Message
from .errors import SnapshotDecodeError

SCHEMA_VERSION = 1


def serialize(collection: Collection) -> str:
    """Encode a collection as a JSON string."""
    data = {
        "version": SCHEMA_VERSION,
        "chats": [chat_to_dict(chat) for chat in collection],
    }
    return json.dumps(data, ensure_ascii=False)


def deserialize(blob: str) -> Collection:
    """Decode a JSON string produced by ``serialize``."""
    try:
        data = json.loads(blob)
    except json.JSONDecodeError as e:
        raise SnapshotDecodeError(f"Stored chats are not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise SnapshotDecodeError("Stored chats must be a JSON object")
    version = data.get("version")
    if version != SCHEMA_VERSION:
        raise SnapshotDecodeError(f"Unsupported schema version: {version!r}")

    try:
        chats = tuple(chat_from_dict(c) for c in data["chats"])
    except (KeyError, TypeError, ValueError) as e:
        raise SnapshotDecodeError(f"Malformed chat record: {e}") from e

    seen = set()
    for chat in chats:
        if chat.id in seen:
            raise SnapshotDecodeError(f"Duplicate chat id: {chat.id}")
        seen.add(chat.id)
    return chats


def format_timestamp(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def message_to_dict(msg: Message) -> dict:
    return {
        "id": msg.id,
        "text": msg.text,
        "timestamp": format_timestamp(msg.timestamp),
        "origin": msg.origin,
        "read": msg.read,
    }


def message_from_dict(data: dict) -> Message:
    origin = data["origin"]
    if origin not in ORIGINS:
        raise ValueError(f"unknown message origin {origin!r}")
    return Message(
        id=str(data["id"]),
        text=data["text"],
        timestamp=parse_timestamp(data["timestamp"]),
        origin=origin,
        read=bool(data.get("read", False)),
    )


def chat_to_dict(chat: Chat) -> dict:
    return {
        "id": chat.id,
        "name": chat.name,
        "category": chat.category,
        "online": chat.online,
        "unread_count": chat.unread_count,
        "messages": [message_to_dict(m) for m in chat.messages],
    }


def chat_from_dict(data: dict) -> Chat:
    category = data["category"]
    if category not in CATEGORIES:
        raise ValueError(f"unknown chat category {category!r}")
    unread = int(data.get("unread_count", 0))
    if unread < 0:
        raise ValueError(f"negative unread count for chat {data['id']}")
    return Chat(
        id=str(data["id"]),
        name=data["name"],
        category=category,
        online=bool(data.get("online", True)),
        unread_count=unread,
        messages=tuple(message_from_dict(m) for m in data.get("messages", [])),
    )
