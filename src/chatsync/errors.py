"""Exception types raised by the chat store, gateways and engine."""


class ChatSyncError(Exception):
    """Base class for all chatsync errors."""


class StorageUnavailable(ChatSyncError):
    """The persistence gateway could not read or write the collection."""


class SnapshotDecodeError(StorageUnavailable):
    """A stored blob exists but cannot be turned back into a collection."""


class ChatNotFound(ChatSyncError, LookupError):
    """A mutation or query targeted a chat id that does not exist."""

    def __init__(self, chat_id: str):
        super().__init__(f"Chat not found: {chat_id}")
        self.chat_id = chat_id


class DuplicateMessageId(ChatSyncError):
    """A message id is already taken within its chat."""

    def __init__(self, chat_id: str, message_id: str):
        super().__init__(f"Message {message_id} already exists in chat {chat_id}")
        self.chat_id = chat_id
        self.message_id = message_id


class InvalidRequest(ChatSyncError, ValueError):
    """The caller passed arguments the engine refuses to act on."""


class ReplyGenerationFailed(ChatSyncError):
    """The reply generator raised or returned nothing usable."""

    def __init__(self, chat_id: str, reason: str):
        super().__init__(f"Reply generation failed for chat {chat_id}: {reason}")
        self.chat_id = chat_id
        self.reason = reason
