"""Composition policy: which items may nest where."""

from .table import CompositionRule, RuleTable
from .validator import CompositionRules

__all__ = ["CompositionRule", "RuleTable", "CompositionRules"]
