"""
Adapters layer - Store integrations behind the engine's protocols.
"""

from .memory_store import InMemoryStore
from .rest_store import RestStore

__all__ = ["InMemoryStore", "RestStore"]
