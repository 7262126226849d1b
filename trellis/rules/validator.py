"""
Composition and envelope checks for Trellis.

Pure functions over a RuleTable: no storage access, no side effects.
"""

from datetime import date
from typing import List, Optional

from ..models import CompositionCheck, EnvelopeCheck
from .table import RuleTable, TypeLike, as_item_type


class CompositionRules:
    """
    Answers whether a parent/child pairing is legal and whether a child's
    dates fit inside its parent's.
    """

    def __init__(self, table: Optional[RuleTable] = None):
        """
        Args:
            table: The rule table to consult (default: built-in matrix)
        """
        self.table = table or RuleTable()

    def is_composition_allowed(
        self,
        parent_type: TypeLike,
        child_type: TypeLike,
        resulting_depth: int
    ) -> CompositionCheck:
        """
        Check a (parent type, child type, depth) triple against the table.

        Args:
            parent_type: Type of the would-be parent
            child_type: Type of the would-be child
            resulting_depth: Depth the child would have after the change

        Returns:
            CompositionCheck listing every violated rule
        """
        parent_type = as_item_type(parent_type)
        child_type = as_item_type(child_type)
        errors: List[str] = []

        if resulting_depth < 1:
            errors.append(f"A child item must sit at depth 1 or deeper, got {resulting_depth}")

        rule = self.table.get_rule(parent_type, child_type)
        if rule is None:
            errors.append(
                f"{parent_type.value} items cannot contain {child_type.value} items"
            )
        elif resulting_depth > rule.max_depth:
            errors.append(
                f"{child_type.value} items cannot be nested deeper than level "
                f"{rule.max_depth} under a {parent_type.value} (would be level {resulting_depth})"
            )

        return CompositionCheck(valid=not errors, errors=errors)

    def requires_envelope(self, parent_type: TypeLike, child_type: TypeLike) -> bool:
        """Whether temporal containment applies to this pairing."""
        rule = self.table.get_rule(parent_type, child_type)
        return rule.enforce_envelope if rule else True

    @staticmethod
    def check_envelope(
        parent_start: Optional[date],
        parent_end: Optional[date],
        child_start: Optional[date],
        child_end: Optional[date]
    ) -> EnvelopeCheck:
        """
        Check that the child's date window sits inside the parent's.

        A child without dates cannot violate. A child with only one date is
        treated as a single day. A missing parent bound is open on that side.
        Bounds given in reverse order are swapped before comparing.

        Returns:
            EnvelopeCheck naming each violated bound
        """
        if child_start is None and child_end is None:
            return EnvelopeCheck(within_window=True)

        child_start = child_start or child_end
        child_end = child_end or child_start
        child_start, child_end = min(child_start, child_end), max(child_start, child_end)
        if parent_start is not None and parent_end is not None and parent_end < parent_start:
            parent_start, parent_end = parent_end, parent_start

        violations = []
        if parent_start is not None and child_start < parent_start:
            violations.append(
                f"child starts {child_start.isoformat()} before parent starts {parent_start.isoformat()}"
            )
        if parent_end is not None and child_end > parent_end:
            violations.append(
                f"child ends {child_end.isoformat()} after parent ends {parent_end.isoformat()}"
            )

        if violations:
            return EnvelopeCheck(within_window=False, violation="; ".join(violations))
        return EnvelopeCheck(within_window=True)
