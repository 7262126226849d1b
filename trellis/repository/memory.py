"""
In-memory repository for Trellis.

Holds items in a dict. Used by the test suite and for trying the engine
without a database file.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..errors import ItemNotFoundError
from ..models import Item, ItemStatus, DepthUpdate
from .base import ItemRepository


class InMemoryItemRepository(ItemRepository):
    """
    Dict-backed item store with snapshot transactions.

    Items are copied on the way in and on the way out, so callers never
    hold a reference into the store.
    """

    def __init__(self, items: Optional[Iterable[Item]] = None):
        """
        Args:
            items: Optional initial items
        """
        self._items: Dict[str, Item] = {}
        self._sequence: Dict[str, int] = {}
        self._snapshot: Optional[Dict[str, Item]] = None
        for item in items or []:
            self.add_item(item)

    def _sort_key(self, item: Item):
        return (item.order_index, self._sequence[item.id])

    def get_item(self, item_id: str) -> Optional[Item]:
        item = self._items.get(item_id)
        return item.model_copy(deep=True) if item else None

    def get_items_by_ids(self, item_ids: List[str]) -> List[Item]:
        return [self._items[i].model_copy(deep=True) for i in item_ids if i in self._items]

    def get_children_of(self, parent_id: str) -> List[Item]:
        children = [item for item in self._items.values() if item.parent_item_id == parent_id]
        return [item.model_copy(deep=True) for item in sorted(children, key=self._sort_key)]

    def update_item_parent_and_depth(self, item_id: str, parent_id: Optional[str], depth: int) -> Item:
        if item_id not in self._items:
            raise ItemNotFoundError(item_id)
        updated = self._items[item_id].model_copy(update={
            "parent_item_id": parent_id,
            "item_depth": depth,
            "updated_at": datetime.now()
        })
        self._items[item_id] = updated
        return updated.model_copy(deep=True)

    def bulk_update_depths(self, updates: List[DepthUpdate]) -> None:
        missing = [u.id for u in updates if u.id not in self._items]
        if missing:
            raise ItemNotFoundError(missing[0])
        now = datetime.now()
        for update in updates:
            self._items[update.id] = self._items[update.id].model_copy(
                update={"item_depth": update.depth, "updated_at": now}
            )

    def section_of(self, item_id: str) -> Optional[str]:
        item = self._items.get(item_id)
        return item.section_id if item else None

    def list_root_items(
        self,
        project_id: Optional[str] = None,
        section_id: Optional[str] = None,
        include_archived: bool = False
    ) -> List[Item]:
        roots = [
            item for item in self._items.values()
            if item.parent_item_id is None
            and (project_id is None or item.project_id == project_id)
            and (section_id is None or item.section_id == section_id)
            and (include_archived or item.status != ItemStatus.ARCHIVED)
        ]
        return [item.model_copy(deep=True) for item in sorted(roots, key=self._sort_key)]

    def list_items_in_section(self, section_id: str) -> List[Item]:
        items = [item for item in self._items.values() if item.section_id == section_id]
        return [item.model_copy(deep=True) for item in sorted(items, key=self._sort_key)]

    def add_item(self, item: Item) -> bool:
        if item.id in self._items:
            return False
        now = datetime.now()
        self._items[item.id] = item.model_copy(deep=True, update={
            "created_at": item.created_at or now,
            "updated_at": item.updated_at or now
        })
        self._sequence[item.id] = len(self._sequence)
        return True

    def _begin(self) -> None:
        self._snapshot = {item_id: item.model_copy(deep=True) for item_id, item in self._items.items()}

    def _commit(self) -> None:
        self._snapshot = None

    def _rollback(self) -> None:
        if self._snapshot is not None:
            self._items = self._snapshot
            self._snapshot = None
            logging.info("Rolled back in-memory transaction")
