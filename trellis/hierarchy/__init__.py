"""Hierarchy composition engine: ancestry, depth repair, mutations and queries."""

from .ancestry import AncestryChecker, Descendant
from .depth import DepthRepair
from .mutator import HierarchyMutator
from .queries import TreeQueryService
from .audit import HierarchyAuditor, AuditIssue, AuditReport

__all__ = [
    "AncestryChecker",
    "Descendant",
    "DepthRepair",
    "HierarchyMutator",
    "TreeQueryService",
    "HierarchyAuditor",
    "AuditIssue",
    "AuditReport"
]
