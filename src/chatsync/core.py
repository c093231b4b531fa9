"""Core data models for chatsync."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

ORIGIN_LOCAL_USER = "local-user"
ORIGIN_AUTOMATED = "automated"
ORIGIN_REMOTE_CONTACT = "remote-contact"
ORIGINS = (ORIGIN_LOCAL_USER, ORIGIN_AUTOMATED, ORIGIN_REMOTE_CONTACT)

CATEGORY_AUTOMATED = "automated"
CATEGORY_CONTACT = "contact"
CATEGORIES = (CATEGORY_AUTOMATED, CATEGORY_CONTACT)


@dataclass(frozen=True)
class Message:
    """A single message within a chat."""

    id: str  # epoch milliseconds of creation, bumped on collision
    text: str
    timestamp: datetime  # UTC, millisecond precision
    origin: str  # "local-user" | "automated" | "remote-contact"
    read: bool = False

    def __post_init__(self):
        # UTC, whole milliseconds: the same value the JSON form stores.
        ts = self.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        ts = ts.astimezone(timezone.utc)
        ts = ts.replace(microsecond=ts.microsecond // 1000 * 1000)
        object.__setattr__(self, "timestamp", ts)

    @property
    def inbound(self) -> bool:
        return self.origin != ORIGIN_LOCAL_USER


@dataclass(frozen=True)
class Chat:
    """A named thread of messages with one counterpart."""

    id: str
    name: str
    category: str  # "automated" | "contact"
    online: bool = True
    unread_count: int = 0
    messages: tuple[Message, ...] = field(default_factory=tuple)

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    @property
    def automated(self) -> bool:
        return self.category == CATEGORY_AUTOMATED


# Display order; storage treats it as a set keyed by Chat.id.
Collection = tuple[Chat, ...]
