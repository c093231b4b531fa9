"""Reply generators for automated chats."""

import asyncio
import random
from abc import ABC, abstractmethod

from .config import get_reply_delay_range

CANNED_REPLIES = (
    "That's an interesting question! Let me think about that...",
    "I understand what you're asking. Here's my perspective:",
    "Great point! I can help you with that.",
    "Thanks for sharing that with me. Here's what I think:",
    "I see what you mean. Let me provide some insights:",
    "That's a thoughtful question. Here's how I'd approach it:",
    "Interesting! I'd be happy to help you explore that further.",
    "I appreciate you asking. Here's my take on it:",
)


class ReplyGenerator(ABC):
    """Produces the automated answer to an outgoing message.

    Implementations may take arbitrarily long and are not trusted: the
    engine treats any exception or empty result as a failed reply.
    """

    @abstractmethod
    async def generate(self, text: str) -> str:
        """Return the reply to ``text``."""
        ...


class CannedReplyGenerator(ReplyGenerator):
    """Picks a stock answer after a random delay."""

    def __init__(
        self,
        delay: tuple[float, float] | None = None,
        replies: tuple[str, ...] = CANNED_REPLIES,
        rng: random.Random | None = None,
    ):
        self.delay = delay if delay is not None else get_reply_delay_range()
        self.replies = replies
        self._rng = rng or random.Random()

    async def generate(self, text: str) -> str:
        low, high = self.delay
        await asyncio.sleep(self._rng.uniform(low, high))
        return self._rng.choice(self.replies)


def get_reply_generator() -> ReplyGenerator:
    """Return the generator used by the server and CLI."""
    return CannedReplyGenerator()
