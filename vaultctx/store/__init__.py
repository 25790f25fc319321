"""
Chunk storage for vaultctx.

- ChunkStore: the contract the engine depends on
- MemoryStore: in-process implementation
- LanceStore: persistent LanceDB implementation
"""

from .base import ChunkStore
from .memory import MemoryStore
from .lance import LanceStore

__all__ = ["ChunkStore", "MemoryStore", "LanceStore"]
