"""
Cached depth repair for moved subtrees.
"""

import logging
from typing import List, Optional

from ..models import DepthUpdate
from .ancestry import AncestryChecker, Descendant


class DepthRepair:
    """
    Rewrites `item_depth` for every descendant of a subtree root whose own
    depth just changed.

    The full set of new depths is computed before anything is written and is
    then handed to the repository as a single batch.
    """

    def __init__(self, ancestry: AncestryChecker):
        self.ancestry = ancestry
        self.repository = ancestry.repository

    def plan(self, descendants: List[Descendant], new_root_depth: int) -> List[DepthUpdate]:
        """
        Compute the depth writes for a subtree without touching storage.

        Items whose cached depth is already correct are left out.
        """
        return [
            DepthUpdate(id=d.item.id, depth=new_root_depth + d.relative_depth)
            for d in descendants
            if d.item.item_depth != new_root_depth + d.relative_depth
        ]

    def repair(
        self,
        root_id: str,
        new_root_depth: int,
        descendants: Optional[List[Descendant]] = None
    ) -> int:
        """
        Bring every descendant of `root_id` in line with the root's new depth.

        Args:
            root_id: The subtree root whose depth changed
            new_root_depth: The depth the root now has
            descendants: A traversal taken earlier in the same operation, reused
                instead of walking the subtree again

        Returns:
            Number of items whose cached depth was rewritten
        """
        if descendants is None:
            descendants = self.ancestry.collect_descendants(root_id)

        updates = self.plan(descendants, new_root_depth)
        if updates:
            self.repository.bulk_update_depths(updates)
            logging.info(f"Repaired depth of {len(updates)} descendants of {root_id}")
        return len(updates)
