"""Pure query and mutation primitives over an immutable chat collection.

Every mutation takes a collection and returns a new one. Chats that a
mutation does not touch are carried over as the very same objects, so a
consumer can detect changes with an identity check.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from .core import (
    CATEGORIES,
    CATEGORY_AUTOMATED,
    CATEGORY_CONTACT,
    ORIGIN_AUTOMATED,
    ORIGIN_REMOTE_CONTACT,
    Chat,
    Collection,
    Message,
)
from .errors import ChatNotFound, DuplicateMessageId, InvalidRequest
from .gateway import PersistenceGateway
from .serialization import deserialize

logger = logging.getLogger(__name__)

DEFAULT_CHAT_NAMES = {
    CATEGORY_AUTOMATED: "New AI Assistant",
    CATEGORY_CONTACT: "New Contact",
}


def utc_now() -> datetime:
    """Current UTC time truncated to whole milliseconds."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def to_ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


async def load(gateway: PersistenceGateway) -> Collection:
    """Read the collection from ``gateway``, seeding it if nothing is stored.

    Raises StorageUnavailable when the gateway fails or the stored blob
    cannot be decoded.
    """
    blob = await gateway.load()
    if blob is None:
        logger.info("No stored chats in %s gateway, using seed data", gateway.name)
        return seed_chats()
    collection = deserialize(blob)
    logger.info("Loaded %d chats from %s gateway", len(collection), gateway.name)
    return collection


def get_chat(collection: Collection, chat_id: str) -> Chat:
    for chat in collection:
        if chat.id == chat_id:
            return chat
    raise ChatNotFound(chat_id)


def new_message(chat: Chat, text: str, origin: str, read: bool, now: datetime | None = None) -> Message:
    """Build a message whose id sorts after every id already in ``chat``."""
    ts = now or utc_now()
    candidate = to_ms(ts)
    for msg in chat.messages:
        if msg.id.isdigit():
            candidate = max(candidate, int(msg.id) + 1)
    return Message(id=str(candidate), text=text, timestamp=ts, origin=origin, read=read)


def append_message(collection: Collection, chat_id: str, message: Message) -> Collection:
    """Return a collection with ``message`` appended to chat ``chat_id``."""
    chats = list(collection)
    for i, chat in enumerate(chats):
        if chat.id != chat_id:
            continue
        if any(m.id == message.id for m in chat.messages):
            raise DuplicateMessageId(chat_id, message.id)
        unread = chat.unread_count
        if message.inbound and not message.read:
            unread += 1
        chats[i] = replace(chat, messages=chat.messages + (message,), unread_count=unread)
        return tuple(chats)
    raise ChatNotFound(chat_id)


def create_chat(
    collection: Collection, kind: str, name: str, now: datetime | None = None
) -> tuple[Collection, str]:
    """Insert an empty chat at the front and return it with its new id."""
    if kind not in CATEGORIES:
        raise InvalidRequest(f"Unknown chat kind: {kind!r}")
    name = (name or "").strip() or DEFAULT_CHAT_NAMES[kind]

    taken = {chat.id for chat in collection}
    candidate = to_ms(now or utc_now())
    while str(candidate) in taken:
        candidate += 1
    chat_id = str(candidate)

    chat = Chat(id=chat_id, name=name, category=kind, online=True, unread_count=0)
    return (chat,) + tuple(collection), chat_id


def mark_read(collection: Collection, chat_id: str) -> Collection:
    """Zero the unread counter of ``chat_id`` and mark all its messages read."""
    chats = list(collection)
    for i, chat in enumerate(chats):
        if chat.id != chat_id:
            continue
        if chat.unread_count == 0 and all(m.read for m in chat.messages):
            return collection
        messages = tuple(m if m.read else replace(m, read=True) for m in chat.messages)
        chats[i] = replace(chat, unread_count=0, messages=messages)
        return tuple(chats)
    raise ChatNotFound(chat_id)


def filter_by_query(collection: Collection, text: str) -> Collection:
    """Chats whose name contains ``text``, ignoring case."""
    query = (text or "").strip().casefold()
    if not query:
        return tuple(collection)
    return tuple(chat for chat in collection if query in chat.name.casefold())


def partition_by_category(collection: Collection) -> dict[str, Collection]:
    """Group chats by category, keeping their order within each group."""
    groups: dict[str, list[Chat]] = {category: [] for category in CATEGORIES}
    for chat in collection:
        groups.setdefault(chat.category, []).append(chat)
    return {category: tuple(chats) for category, chats in groups.items()}


def seed_chats(now: datetime | None = None) -> Collection:
    """The fixed set of chats a brand-new installation starts with."""
    now = now or utc_now()

    def msg(text: str, age: timedelta, origin: str, read: bool) -> Message:
        ts = now - age
        return Message(id=str(to_ms(ts)), text=text, timestamp=ts, origin=origin, read=read)

    return (
        Chat(
            id="1",
            name="AI Assistant",
            category=CATEGORY_AUTOMATED,
            online=True,
            unread_count=0,
            messages=(
                msg("Hello! I'm your AI assistant. How can I help you today?",
                    timedelta(minutes=1), ORIGIN_AUTOMATED, True),
            ),
        ),
        Chat(
            id="2",
            name="ChatGPT",
            category=CATEGORY_AUTOMATED,
            online=True,
            unread_count=2,
            messages=(
                msg("Hi there! Ask me anything.",
                    timedelta(minutes=3), ORIGIN_AUTOMATED, False),
                msg("I can help you with coding, writing, analysis, and much more!",
                    timedelta(minutes=2), ORIGIN_AUTOMATED, False),
            ),
        ),
        Chat(
            id="3",
            name="John Doe",
            category=CATEGORY_CONTACT,
            online=False,
            unread_count=1,
            messages=(
                msg("Hey, how are you doing?", timedelta(minutes=5), ORIGIN_REMOTE_CONTACT, False),
            ),
        ),
        Chat(
            id="4",
            name="Jane Smith",
            category=CATEGORY_CONTACT,
            online=True,
            unread_count=0,
            messages=(
                msg("Thanks for your help with the project!",
                    timedelta(hours=1), ORIGIN_REMOTE_CONTACT, True),
            ),
        ),
    )
