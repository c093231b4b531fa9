"""Abstract base class for persistence gateways."""

from abc import ABC, abstractmethod


class PersistenceGateway(ABC):
    """A durable slot holding the whole serialized chat collection.

    Gateways know nothing about chats: they store and return an opaque
    string. Any failure to reach the underlying storage must be raised as
    ``StorageUnavailable``.
    """

    name: str  # "memory", "file"

    @abstractmethod
    async def load(self) -> str | None:
        """Return the stored blob, or None if nothing was ever saved."""
        ...

    @abstractmethod
    async def save(self, blob: str) -> None:
        """Durably replace the stored blob."""
        ...
