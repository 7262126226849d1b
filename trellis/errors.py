"""
Exceptions raised by Trellis.

Rule violations during attach/detach/move are never raised; they are
reported through MutationResult. The exceptions here cover conditions a
caller cannot fix by choosing a different parent.
"""

from typing import Optional


class TrellisError(Exception):
    """Base class for all Trellis exceptions."""


class DataIntegrityError(TrellisError):
    """
    Persisted parent pointers are malformed.

    Raised when a traversal revisits an item (a cycle already exists in
    storage) or walks further than the configured depth plus margin.
    """

    def __init__(self, message: str, item_id: Optional[str] = None):
        super().__init__(message)
        self.item_id = item_id


class ItemNotFoundError(TrellisError):
    """A repository write targeted an item that does not exist."""

    def __init__(self, item_id: str):
        super().__init__(f"Roadmap item not found: {item_id}")
        self.item_id = item_id
