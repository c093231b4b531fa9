"""Persistence backends and a registry to pick one by name."""

from ..config import get_backend_name, get_store_path
from ..gateway import PersistenceGateway
from .json_file import JsonFileGateway
from .memory import MemoryGateway


def get_gateway(name: str | None = None) -> PersistenceGateway:
    """Build the gateway named by ``name`` or by CHATSYNC_BACKEND."""
    name = name or get_backend_name()
    if name == MemoryGateway.name:
        return MemoryGateway()
    if name == JsonFileGateway.name:
        return JsonFileGateway(get_store_path())
    raise ValueError(f"Unknown persistence backend: {name}")
