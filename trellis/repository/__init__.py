"""Item storage interfaces and the in-memory backend."""

from .base import ItemRepository
from .memory import InMemoryItemRepository

__all__ = ["ItemRepository", "InMemoryItemRepository"]
