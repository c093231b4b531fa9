"""Synchronization engine: the single writer of the chat collection.

All mutations go through ``SyncEngine._commit``, which reads the latest
snapshot, applies a pure store function, saves the result and only then
publishes it. The commit runs under one lock, so two mutations are never
computed from the same starting snapshot, and a failed save leaves the
published snapshot untouched.

Automated replies run as background tasks that capture nothing but the chat
id and the sent text. When the generator answers, the reply is committed
against whatever the snapshot is at that moment.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from . import store
from .core import ORIGIN_AUTOMATED, ORIGIN_LOCAL_USER, Chat, Collection
from .errors import (
    ChatSyncError,
    InvalidRequest,
    ReplyGenerationFailed,
    StorageUnavailable,
)
from .gateway import PersistenceGateway
from .replies import ReplyGenerator
from .serialization import serialize

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[Collection], None]
ComposingListener = Callable[[str, bool], None]
ErrorListener = Callable[[ChatSyncError], None]


@dataclass(frozen=True)
class Result:
    """Outcome of an engine operation: a value or a domain error."""

    value: Any = None
    error: ChatSyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


class SyncEngine:
    """Owns the authoritative snapshot and sequences every change to it."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        reply_generator: ReplyGenerator,
        snapshot: Collection,
    ):
        self.gateway = gateway
        self.reply_generator = reply_generator
        self._snapshot: Collection = tuple(snapshot)
        self._lock = asyncio.Lock()
        self._selected: str | None = None
        self._composing: dict[str, int] = {}
        self._tasks: set[asyncio.Task] = set()
        self._snapshot_listeners: list[SnapshotListener] = []
        self._composing_listeners: list[ComposingListener] = []
        self._error_listeners: list[ErrorListener] = []

    @classmethod
    async def open(
        cls,
        gateway: PersistenceGateway,
        reply_generator: ReplyGenerator,
        fallback_to_seed: bool = True,
    ) -> "SyncEngine":
        """Load the stored collection and build an engine around it.

        With ``fallback_to_seed`` an unreadable store starts the engine on
        the seed chats instead of failing. The store itself is not touched
        until the first mutation is saved.
        """
        try:
            snapshot = await store.load(gateway)
        except StorageUnavailable as e:
            if not fallback_to_seed:
                raise
            logger.warning("Could not load chats, starting from seed data: %s", e)
            snapshot = store.seed_chats()
        return cls(gateway, reply_generator, snapshot)

    # ── Queries ──────────────────────────────────────────────────────

    def get_snapshot(self) -> Collection:
        return self._snapshot

    def get_chat(self, chat_id: str) -> Chat:
        return store.get_chat(self._snapshot, chat_id)

    def search(self, text: str) -> Collection:
        return store.filter_by_query(self._snapshot, text)

    @property
    def selected_chat_id(self) -> str | None:
        return self._selected

    def is_composing(self, chat_id: str) -> bool:
        return self._composing.get(chat_id, 0) > 0

    def composing_chats(self) -> frozenset[str]:
        return frozenset(chat_id for chat_id, n in self._composing.items() if n > 0)

    # ── Mutations ────────────────────────────────────────────────────

    async def send(self, chat_id: str, text: str) -> Result:
        """Append a user message, persist it, and request a reply if needed.

        Resolves once the message is durably saved. The automated reply, if
        any, arrives later through the snapshot listeners.
        """
        if not text or not text.strip():
            return Result(error=InvalidRequest("Cannot send an empty message"))

        def apply(snapshot: Collection):
            chat = store.get_chat(snapshot, chat_id)
            message = store.new_message(chat, text, ORIGIN_LOCAL_USER, read=True)
            return store.append_message(snapshot, chat_id, message), (message, chat.automated)

        try:
            message, automated = await self._commit(apply)
        except ChatSyncError as e:
            logger.warning("Send to chat %s failed: %s", chat_id, e)
            return Result(error=e)

        if automated:
            self._start_reply(chat_id, text)
        return Result(value=message)

    async def create_chat(self, kind: str, name: str = "") -> Result:
        """Prepend a new empty chat; the result value is its id."""
        try:
            chat_id = await self._commit(lambda snapshot: store.create_chat(snapshot, kind, name))
        except ChatSyncError as e:
            logger.warning("Creating %s chat failed: %s", kind, e)
            return Result(error=e)
        logger.info("Created %s chat %s", kind, chat_id)
        return Result(value=chat_id)

    async def mark_read(self, chat_id: str) -> Result:
        """Mark every message of ``chat_id`` read; the result value is the chat."""

        def apply(snapshot: Collection):
            updated = store.mark_read(snapshot, chat_id)
            return updated, store.get_chat(updated, chat_id)

        try:
            chat = await self._commit(apply)
        except ChatSyncError as e:
            logger.warning("Marking chat %s read failed: %s", chat_id, e)
            return Result(error=e)
        return Result(value=chat)

    async def select_chat(self, chat_id: str | None) -> Result:
        """Make ``chat_id`` the open chat and mark it read.

        Replies that arrive for the selected chat are stored already read.
        The selection only changes once the chat is saved as read. Passing
        None closes the current chat.
        """
        if chat_id is None:
            self._selected = None
            return Result()
        result = await self.mark_read(chat_id)
        if result.ok:
            self._selected = chat_id
        return result

    async def _commit(self, mutation: Callable[[Collection], tuple[Collection, Any]]) -> Any:
        async with self._lock:
            current = self._snapshot
            updated, value = mutation(current)
            if updated is current:
                return value
            try:
                await self.gateway.save(serialize(updated))
            except StorageUnavailable:
                raise
            except OSError as e:
                raise StorageUnavailable(str(e)) from e
            self._snapshot = updated
            self._notify(self._snapshot_listeners, updated)
            return value

    # ── Automated replies ────────────────────────────────────────────

    def _start_reply(self, chat_id: str, text: str) -> None:
        self._set_composing(chat_id, 1)
        task = asyncio.create_task(self._reply(chat_id, text), name=f"reply-{chat_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _reply(self, chat_id: str, text: str) -> None:
        try:
            try:
                reply = await self.reply_generator.generate(text)
            except Exception as e:
                raise ReplyGenerationFailed(chat_id, str(e) or type(e).__name__) from e
            if not isinstance(reply, str) or not reply.strip():
                raise ReplyGenerationFailed(chat_id, "empty reply")

            def apply(snapshot: Collection):
                chat = store.get_chat(snapshot, chat_id)
                read = chat_id == self._selected
                message = store.new_message(chat, reply, ORIGIN_AUTOMATED, read=read)
                return store.append_message(snapshot, chat_id, message), message

            await self._commit(apply)
        except ChatSyncError as e:
            logger.error("Dropped automated reply for chat %s: %s", chat_id, e)
            self._notify(self._error_listeners, e)
        finally:
            self._set_composing(chat_id, -1)

    def _set_composing(self, chat_id: str, delta: int) -> None:
        before = self.is_composing(chat_id)
        pending = self._composing.get(chat_id, 0) + delta
        if pending > 0:
            self._composing[chat_id] = pending
        else:
            self._composing.pop(chat_id, None)
        after = self.is_composing(chat_id)
        if before != after:
            self._notify(self._composing_listeners, chat_id, after)

    async def wait_idle(self) -> None:
        """Wait until every pending reply has been applied or dropped."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel pending replies. Messages already sent stay saved."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d pending replies", len(tasks))

    # ── Subscriptions ────────────────────────────────────────────────

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call ``listener`` with every newly published snapshot."""
        return self._add_listener(self._snapshot_listeners, listener)

    def subscribe_composing(self, listener: ComposingListener) -> Callable[[], None]:
        """Call ``listener(chat_id, composing)`` when an indicator flips."""
        return self._add_listener(self._composing_listeners, listener)

    def subscribe_errors(self, listener: ErrorListener) -> Callable[[], None]:
        """Call ``listener`` with errors from background reply tasks."""
        return self._add_listener(self._error_listeners, listener)

    @staticmethod
    def _add_listener(listeners: list, listener: Callable) -> Callable[[], None]:
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    @staticmethod
    def _notify(listeners: list, *args) -> None:
        for listener in list(listeners):
            try:
                listener(*args)
            except Exception:
                logger.exception("Listener %r failed", listener)
