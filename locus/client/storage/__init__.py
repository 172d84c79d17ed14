"""Expiring key-value storage."""

from .cabinet import Cabinet
from .stores import SESSION_STORE, CabinetStore, FileStore, MemoryStore

__all__ = [
    "Cabinet",
    "CabinetStore",
    "FileStore",
    "MemoryStore",
    "SESSION_STORE",
]
