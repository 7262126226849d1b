"""
Ancestry checks over persisted parent pointers.

All walks are iterative and bounded. A walk that revisits an item or runs
past the traversal limit raises DataIntegrityError instead of looping.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import List, Optional

from ..errors import DataIntegrityError
from ..models import Item
from ..repository import ItemRepository


@dataclass
class Descendant:
    """An item below a subtree root and its distance from that root."""
    item: Item
    relative_depth: int


class AncestryChecker:
    """
    Answers ancestor/descendant questions against the current repository state.
    """

    def __init__(self, repository: ItemRepository, traversal_limit: int):
        """
        Args:
            repository: The item store to read from
            traversal_limit: Maximum number of levels any walk may cover
        """
        self.repository = repository
        self.traversal_limit = traversal_limit

    def walk_to_root(self, item_id: str) -> List[Item]:
        """
        Follow parent pointers from an item to its root.

        Returns:
            The chain starting with the item itself and ending with the root,
            or an empty list if the item does not exist. A dangling parent
            pointer ends the chain at the last item that exists.
        """
        current = self.repository.get_item(item_id)
        if current is None:
            return []

        chain = [current]
        seen = {current.id}
        while current.parent_item_id is not None:
            parent_id = current.parent_item_id
            if parent_id in seen:
                logging.error(f"Cycle in parent pointers at item {parent_id}")
                raise DataIntegrityError(f"Cycle in parent pointers at item {parent_id}", parent_id)
            if len(chain) > self.traversal_limit:
                logging.error(f"Ancestor chain of {item_id} exceeds {self.traversal_limit} levels")
                raise DataIntegrityError(
                    f"Ancestor chain of {item_id} exceeds {self.traversal_limit} levels", item_id
                )

            parent = self.repository.get_item(parent_id)
            if parent is None:
                logging.warning(f"Item {current.id} points at missing parent {parent_id}")
                break
            chain.append(parent)
            seen.add(parent_id)
            current = parent

        return chain

    def is_ancestor(self, candidate_ancestor_id: str, candidate_descendant_id: str) -> bool:
        """
        Check whether one item is a proper ancestor of another.

        An item is not its own ancestor.
        """
        if candidate_ancestor_id == candidate_descendant_id:
            return False
        chain = self.walk_to_root(candidate_descendant_id)
        return any(item.id == candidate_ancestor_id for item in chain[1:])

    def collect_descendants(self, root_id: str) -> List[Descendant]:
        """
        Enumerate every item below `root_id`, breadth first.

        Returns:
            Descendants in level order with their distance from the root
        """
        descendants: List[Descendant] = []
        seen = {root_id}
        queue = deque([(root_id, 0)])

        while queue:
            parent_id, level = queue.popleft()
            for child in self.repository.get_children_of(parent_id):
                if child.id in seen:
                    logging.error(f"Item {child.id} reached twice below {root_id}")
                    raise DataIntegrityError(f"Item {child.id} reached twice below {root_id}", child.id)
                if level + 1 > self.traversal_limit:
                    logging.error(f"Subtree of {root_id} is deeper than {self.traversal_limit} levels")
                    raise DataIntegrityError(
                        f"Subtree of {root_id} is deeper than {self.traversal_limit} levels", root_id
                    )
                seen.add(child.id)
                descendants.append(Descendant(item=child, relative_depth=level + 1))
                queue.append((child.id, level + 1))

        return descendants

    def subtree_height(self, root_id: str, descendants: Optional[List[Descendant]] = None) -> int:
        """Number of levels below `root_id` (0 for a leaf)."""
        if descendants is None:
            descendants = self.collect_descendants(root_id)
        return max((d.relative_depth for d in descendants), default=0)
