"""
Read-only tree views over roadmap items.

Used by UI and reporting code that needs nested trees, breadcrumbs or the
full set of items under a node. Nothing here writes to the repository.
"""

import logging
from typing import List, Optional

from ..config import ConfigManager, get_config
from ..errors import DataIntegrityError
from ..models import Item, TreeNode, PathEntry, TreeFilter
from ..repository import ItemRepository
from .ancestry import AncestryChecker


class TreeQueryService:
    """
    Builds tree views, ancestor paths, root lookups and descendant sets.

    Unknown item ids produce empty results. Malformed parent pointers
    (cycles, chains deeper than the traversal limit) raise DataIntegrityError.
    """

    def __init__(
        self,
        repository: ItemRepository,
        traversal_limit: Optional[int] = None,
        settings: Optional[ConfigManager] = None
    ):
        """
        Args:
            repository: The item store to read from
            traversal_limit: Maximum levels any walk may cover
                (default: composition.max_depth + composition.traversal_margin)
            settings: Configuration to read defaults from (default: global config)
        """
        settings = settings or get_config()
        self.repository = repository
        limit = traversal_limit if traversal_limit is not None else settings.traversal_limit
        self.ancestry = AncestryChecker(repository, limit)

    def get_children(self, item_id: str) -> List[Item]:
        """Direct children of an item, ordered by order_index."""
        return self.repository.get_children_of(item_id)

    def get_parent(self, item_id: str) -> Optional[Item]:
        """The parent of an item, or None for roots and unknown ids."""
        item = self.repository.get_item(item_id)
        if item is None or item.parent_item_id is None:
            return None
        return self.repository.get_item(item.parent_item_id)

    def get_top_level_items(
        self,
        project_id: Optional[str] = None,
        section_id: Optional[str] = None,
        include_archived: bool = False
    ) -> List[Item]:
        """Root items matching the filter, ordered by order_index."""
        return self.repository.list_root_items(
            project_id=project_id,
            section_id=section_id,
            include_archived=include_archived
        )

    def get_roadmap_item_tree(self, tree_filter: Optional[TreeFilter] = None) -> List[TreeNode]:
        """
        Build the forest selected by `tree_filter`.

        With `item_id` set, returns a single tree rooted at that item (or an
        empty list if it does not exist). Otherwise returns one tree per root
        item matching the project/section filter. Archived roots are skipped
        unless `include_archived` is set.
        """
        tree_filter = tree_filter or TreeFilter()

        if tree_filter.item_id:
            item = self.repository.get_item(tree_filter.item_id)
            roots = [item] if item else []
        else:
            roots = self.get_top_level_items(
                project_id=tree_filter.project_id,
                section_id=tree_filter.section_id,
                include_archived=tree_filter.include_archived
            )

        if not tree_filter.include_children:
            return [TreeNode(item=root) for root in roots]

        return [self.build_tree(root) for root in roots]

    def build_tree(self, root: Item) -> TreeNode:
        """
        Materialize the subtree under `root`, depth first.

        Counts are filled in after the walk: nodes are visited parent-first,
        so processing them in reverse guarantees children are counted before
        their parent.
        """
        root_node = TreeNode(item=root)
        visited = [root_node]
        seen = {root.id}
        stack = [(root_node, 0)]

        while stack:
            node, level = stack.pop()
            children = self.repository.get_children_of(node.item.id)
            if children and level + 1 > self.ancestry.traversal_limit:
                logging.error(f"Tree under {root.id} is deeper than {self.ancestry.traversal_limit} levels")
                raise DataIntegrityError(
                    f"Tree under {root.id} is deeper than {self.ancestry.traversal_limit} levels", root.id
                )

            for child in children:
                if child.id in seen:
                    logging.error(f"Item {child.id} reached twice while building tree under {root.id}")
                    raise DataIntegrityError(f"Item {child.id} reached twice under {root.id}", child.id)
                seen.add(child.id)
                child_node = TreeNode(item=child)
                node.children.append(child_node)
                visited.append(child_node)

            # Reversed so the first child is expanded first.
            for child_node in reversed(node.children):
                stack.append((child_node, level + 1))

        for node in reversed(visited):
            node.child_count = len(node.children)
            node.descendant_count = node.child_count + sum(c.descendant_count for c in node.children)

        return root_node

    def get_item_path(self, item_id: str) -> List[PathEntry]:
        """
        The ancestor chain of an item, root first, ending with the item.
        """
        chain = list(reversed(self.ancestry.walk_to_root(item_id)))
        return [
            PathEntry(item_id=item.id, title=item.title, type=item.type, depth=position)
            for position, item in enumerate(chain)
        ]

    def get_root_item(self, item_id: str) -> Optional[Item]:
        """The root of the tree containing an item, or None if unknown."""
        chain = self.ancestry.walk_to_root(item_id)
        return chain[-1] if chain else None

    def get_all_descendants(self, item_id: str) -> List[Item]:
        """Every item transitively below `item_id`, in no particular order."""
        return [d.item for d in self.ancestry.collect_descendants(item_id)]
