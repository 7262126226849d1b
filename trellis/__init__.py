"""
Trellis: a hierarchy composition engine for roadmap items.

Keeps a section's forest of planning items acyclic, depth-bounded,
type-compatible and date-contained while subtrees are attached, detached
and moved.
"""

__version__ = "0.1.0"
__author__ = "Trellis Project"

# Import main components
from .database import DatabaseManager
from .models import Item, ItemType, ItemStatus, TreeNode, PathEntry, TreeFilter, MutationResult
from .repository import ItemRepository, InMemoryItemRepository
from .rules import CompositionRule, RuleTable, CompositionRules
from .hierarchy import HierarchyMutator, TreeQueryService, HierarchyAuditor

__all__ = [
    "DatabaseManager",
    "Item",
    "ItemType",
    "ItemStatus",
    "TreeNode",
    "PathEntry",
    "TreeFilter",
    "MutationResult",
    "ItemRepository",
    "InMemoryItemRepository",
    "CompositionRule",
    "RuleTable",
    "CompositionRules",
    "HierarchyMutator",
    "TreeQueryService",
    "HierarchyAuditor"
]
