"""
Composition rule table for Trellis.

This module defines which item types may be nested under which parent types,
how deep each pairing may sit, and which pairings are exempt from temporal
containment. The table is plain data so a deployment can replace it from
config.yaml without touching the algorithms that consult it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..models import ItemType


TypeLike = Union[ItemType, str]


@dataclass(frozen=True)
class CompositionRule:
    """
    Permission for `child_type` items to sit directly under `parent_type` items.

    `max_depth` bounds the depth the child lands at (root items are depth 0).
    """
    parent_type: ItemType
    child_type: ItemType
    max_depth: int
    enforce_envelope: bool = True


# Item types with no meaningful date window of their own.
_UNDATED_CHILD_TYPES = (
    ItemType.NOTE,
    ItemType.DOCUMENT,
    ItemType.PHOTO,
    ItemType.GROCERY_LIST,
    ItemType.REVIEW,
    ItemType.HABIT,
)

_DEFAULT_MATRIX: Dict[ItemType, Dict[ItemType, int]] = {
    ItemType.GOAL: {
        ItemType.MILESTONE: 2,
        ItemType.TASK: 3,
        ItemType.EVENT: 3,
        ItemType.HABIT: 3,
        ItemType.NOTE: 3,
        ItemType.DOCUMENT: 3,
        ItemType.REVIEW: 3,
    },
    ItemType.MILESTONE: {
        ItemType.TASK: 3,
        ItemType.EVENT: 3,
        ItemType.NOTE: 3,
        ItemType.DOCUMENT: 3,
        ItemType.PHOTO: 3,
        ItemType.REVIEW: 3,
    },
    ItemType.TASK: {
        ItemType.TASK: 3,
        ItemType.NOTE: 3,
        ItemType.DOCUMENT: 3,
        ItemType.PHOTO: 3,
        ItemType.GROCERY_LIST: 3,
    },
    ItemType.EVENT: {
        ItemType.TASK: 3,
        ItemType.NOTE: 3,
        ItemType.DOCUMENT: 3,
        ItemType.PHOTO: 3,
        ItemType.GROCERY_LIST: 3,
    },
    ItemType.HABIT: {
        ItemType.NOTE: 3,
        ItemType.REVIEW: 3,
    },
    ItemType.DOCUMENT: {
        ItemType.NOTE: 3,
    },
}


def as_item_type(value: TypeLike) -> ItemType:
    return value if isinstance(value, ItemType) else ItemType(value)


class RuleTable:
    """
    Registry of parent/child composition rules.
    """

    def __init__(self, register_defaults: bool = True):
        """
        Initialize the rule table.

        Args:
            register_defaults: Populate the table with the built-in matrix
        """
        self._rules: Dict[ItemType, Dict[ItemType, CompositionRule]] = {}
        if register_defaults:
            self._register_default_rules()

    def _register_default_rules(self):
        """Register the built-in parent/child matrix."""
        for parent_type, children in _DEFAULT_MATRIX.items():
            for child_type, max_depth in children.items():
                self.register_rule(CompositionRule(
                    parent_type=parent_type,
                    child_type=child_type,
                    max_depth=max_depth,
                    enforce_envelope=child_type not in _UNDATED_CHILD_TYPES
                ))

    def register_rule(self, rule: CompositionRule) -> None:
        """
        Register a rule, replacing any existing rule for the same pairing.

        Args:
            rule: The composition rule to register
        """
        self._rules.setdefault(rule.parent_type, {})[rule.child_type] = rule

    def get_rule(self, parent_type: TypeLike, child_type: TypeLike) -> Optional[CompositionRule]:
        """
        Get the rule for a parent/child pairing.

        Returns:
            The rule, or None if the pairing is not allowed at all
        """
        return self._rules.get(as_item_type(parent_type), {}).get(as_item_type(child_type))

    def allowed_children(self, parent_type: TypeLike) -> List[ItemType]:
        """
        Get the child types a parent type may contain.

        Args:
            parent_type: The parent item type

        Returns:
            List of allowed child types
        """
        return list(self._rules.get(as_item_type(parent_type), {}).keys())

    def list_rules(self) -> List[CompositionRule]:
        """Get every registered rule."""
        return [rule for children in self._rules.values() for rule in children.values()]

    @classmethod
    def from_config(
        cls,
        rules_config: Optional[Dict[str, Any]],
        default_max_depth: int = 3
    ) -> "RuleTable":
        """
        Build a table from the `composition.rules` config section.

        An empty or missing section yields the built-in matrix. Otherwise the
        section replaces it entirely. Entries naming unknown item types, or
        whose options are neither a mapping nor an integer depth, are logged
        and skipped.

        Args:
            rules_config: Mapping of parent type to {child type: options}
            default_max_depth: Depth limit for entries that do not set max_depth

        Returns:
            The populated rule table
        """
        if not rules_config:
            return cls()

        table = cls(register_defaults=False)
        for parent_name, children in rules_config.items():
            for child_name, options in (children or {}).items():
                try:
                    if isinstance(options, bool):
                        raise TypeError(f"expected a mapping or an integer depth, got {options!r}")
                    if isinstance(options, int):
                        options = {"max_depth": options}
                    options = options or {}
                    table.register_rule(CompositionRule(
                        parent_type=ItemType(parent_name),
                        child_type=ItemType(child_name),
                        max_depth=int(options.get("max_depth", default_max_depth)),
                        enforce_envelope=bool(options.get("enforce_envelope", True))
                    ))
                except (ValueError, TypeError, AttributeError) as e:
                    logging.error(f"Skipping composition rule '{parent_name}' -> '{child_name}': {e}")

        logging.info(f"Loaded {len(table.list_rules())} composition rules from configuration")
        return table
