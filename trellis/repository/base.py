"""
Base repository interface for Trellis.

This module defines the abstract storage interface the hierarchy engine
consumes. The engine never talks to a database directly; every backend
(DuckDB, in-memory) implements this contract.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, List, Optional

from ..models import Item, DepthUpdate


class ItemRepository(ABC):
    """
    Abstract base class for all roadmap item stores.

    Implementations must offer read-your-writes consistency inside one
    transaction() block.
    """

    _transaction_depth: int = 0

    @abstractmethod
    def get_item(self, item_id: str) -> Optional[Item]:
        """
        Retrieve an item by id.

        Returns:
            The item, or None if it does not exist
        """
        pass

    @abstractmethod
    def get_items_by_ids(self, item_ids: List[str]) -> List[Item]:
        """
        Retrieve a set of items. Missing ids are simply absent from the result.
        """
        pass

    @abstractmethod
    def get_children_of(self, parent_id: str) -> List[Item]:
        """
        Retrieve the direct children of an item, ordered by order_index.
        """
        pass

    @abstractmethod
    def update_item_parent_and_depth(self, item_id: str, parent_id: Optional[str], depth: int) -> Item:
        """
        Write the shape fields of a single item.

        Raises:
            ItemNotFoundError: If the item does not exist
        """
        pass

    @abstractmethod
    def bulk_update_depths(self, updates: List[DepthUpdate]) -> None:
        """
        Write cached depths for many items at once.
        """
        pass

    @abstractmethod
    def section_of(self, item_id: str) -> Optional[str]:
        """
        Get the section id of an item, or None if it does not exist.
        """
        pass

    @abstractmethod
    def list_root_items(
        self,
        project_id: Optional[str] = None,
        section_id: Optional[str] = None,
        include_archived: bool = False
    ) -> List[Item]:
        """
        Retrieve items without a parent, ordered by order_index.
        """
        pass

    @abstractmethod
    def list_items_in_section(self, section_id: str) -> List[Item]:
        """
        Retrieve every item of a section regardless of position.
        """
        pass

    @abstractmethod
    def add_item(self, item: Item) -> bool:
        """
        Store a new item.

        Returns:
            True if the item was added, False if the id already existed
        """
        pass

    @contextmanager
    def transaction(self) -> Iterator["ItemRepository"]:
        """
        Group reads and writes into one unit of work.

        Reentrant: only the outermost block begins and commits. Any exception
        escaping the outermost block rolls everything back and is re-raised.
        """
        outermost = self._transaction_depth == 0
        if outermost:
            self._begin()
        self._transaction_depth += 1
        try:
            yield self
        except BaseException:
            self._transaction_depth -= 1
            if outermost:
                self._rollback()
            raise
        else:
            self._transaction_depth -= 1
            if outermost:
                self._commit()

    def _begin(self) -> None:
        """Start a unit of work. Backends without transactions keep the default."""

    def _commit(self) -> None:
        """Make the unit of work durable."""

    def _rollback(self) -> None:
        """Discard the unit of work."""
