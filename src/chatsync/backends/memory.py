"""In-process persistence backend.

Keeps the blob in an attribute. Nothing survives a restart, which makes it
the natural choice for tests and throwaway sessions.
"""

from ..gateway import PersistenceGateway


class MemoryGateway(PersistenceGateway):
    """Gateway that keeps the last saved blob in memory."""

    name = "memory"

    def __init__(self, blob: str | None = None):
        self.blob = blob
        self.saves = 0

    async def load(self) -> str | None:
        return self.blob

    async def save(self, blob: str) -> None:
        self.blob = blob
        self.saves += 1
