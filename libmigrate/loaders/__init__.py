"""Target record stores."""

from .base import BaseStore
from .memory_store import MemoryStore
from .rest_store import RestStore

__all__ = [
    "BaseStore",
    "MemoryStore",
    "RestStore",
]
