"""
Section-wide integrity audit.

The mutator keeps every invariant on the writes it performs. This module
checks what is actually stored, which also covers rows written by other
tools or left behind by an interrupted batch write.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from ..config import ConfigManager, get_config
from ..models import Item, DepthUpdate
from ..repository import ItemRepository
from ..rules import CompositionRules, RuleTable


# Markers for items whose parent chain never reaches a root.
CYCLE = "cycle"
DETACHED = "detached"


@dataclass(frozen=True)
class AuditIssue:
    """
    A single invariant violation.

    `code` is a stable identifier suitable for tests and filtering.
    """
    code: str
    item_id: str
    message: str


@dataclass(frozen=True)
class AuditReport:
    """Aggregated audit result for one section."""
    section_id: str
    items_checked: int
    issues: Sequence[AuditIssue]

    @property
    def ok(self) -> bool:
        return not self.issues

    def codes(self) -> List[str]:
        return sorted({issue.code for issue in self.issues})


class HierarchyAuditor:
    """
    Checks every stored item of a section against the composition invariants.
    """

    def __init__(
        self,
        repository: ItemRepository,
        rules: Optional[CompositionRules] = None,
        max_depth: Optional[int] = None,
        settings: Optional[ConfigManager] = None
    ):
        settings = settings or get_config()
        self.repository = repository
        self.rules = rules or CompositionRules(
            RuleTable.from_config(settings.composition_rules, settings.max_item_depth)
        )
        self.max_depth = max_depth if max_depth is not None else settings.max_item_depth

    def _true_depths(self, items: Dict[str, Item]) -> Dict[str, Union[int, str]]:
        """
        Distance to the nearest root for every item, following stored pointers.

        Items whose chain never reaches a root map to CYCLE (the chain loops)
        or DETACHED (the chain leaves the section or hits a missing item).
        """
        depths: Dict[str, Union[int, str]] = {}
        for start_id in items:
            chain: List[str] = []
            on_chain = set()
            current = start_id
            while True:
                if current in depths:
                    base = depths[current]
                    break
                if current in on_chain:
                    base = CYCLE
                    break
                item = items.get(current)
                if item is None:
                    base = DETACHED
                    break
                chain.append(current)
                on_chain.add(current)
                if item.parent_item_id is None:
                    base = -1
                    break
                current = item.parent_item_id

            # chain runs from start_id upward; assign from the top down
            for offset, item_id in enumerate(reversed(chain)):
                depths[item_id] = base + offset + 1 if isinstance(base, int) else base
        return depths

    def audit_section(self, section_id: str) -> AuditReport:
        """
        Check acyclicity, cached depth, depth bound, same-section parents,
        type compatibility and date containment for a whole section.
        """
        items = {item.id: item for item in self.repository.list_items_in_section(section_id)}
        depths = self._true_depths(items)
        issues: List[AuditIssue] = []

        for item in items.values():
            true_depth = depths[item.id]

            if item.parent_item_id is not None and item.parent_item_id not in items:
                other_section = self.repository.section_of(item.parent_item_id)
                if other_section is None:
                    issues.append(AuditIssue(
                        "orphan_parent", item.id,
                        f"Parent {item.parent_item_id} of '{item.title}' does not exist"
                    ))
                else:
                    issues.append(AuditIssue(
                        "cross_section", item.id,
                        f"'{item.title}' is in section {section_id} but its parent is in section {other_section}"
                    ))
                continue

            if true_depth == DETACHED:
                # reported on the item whose parent is missing or foreign
                continue

            if true_depth == CYCLE:
                issues.append(AuditIssue(
                    "cycle", item.id,
                    f"'{item.title}' is part of, or hangs below, a parent-pointer cycle"
                ))
                continue

            if item.item_depth != true_depth:
                issues.append(AuditIssue(
                    "depth_mismatch", item.id,
                    f"'{item.title}' caches depth {item.item_depth} but sits at depth {true_depth}"
                ))

            if true_depth > self.max_depth:
                issues.append(AuditIssue(
                    "max_depth", item.id,
                    f"'{item.title}' sits at depth {true_depth}, beyond the maximum of {self.max_depth}"
                ))

            if item.parent_item_id is None:
                continue

            parent = items[item.parent_item_id]
            check = self.rules.is_composition_allowed(parent.type, item.type, true_depth)
            for message in check.errors:
                issues.append(AuditIssue("composition", item.id, message))

            if self.rules.requires_envelope(parent.type, item.type):
                envelope = self.rules.check_envelope(
                    parent.start_date, parent.end_date, item.start_date, item.end_date
                )
                if not envelope.within_window:
                    issues.append(AuditIssue("envelope", item.id, envelope.violation or ""))

        logging.info(f"Audited {len(items)} items in section {section_id}: {len(issues)} issues")
        return AuditReport(section_id=section_id, items_checked=len(items), issues=issues)

    def recompute_depths(self, section_id: str) -> int:
        """
        Rewrite cached depths that disagree with the stored parent pointers.

        Items on cycles or with broken chains are left untouched.

        Returns:
            Number of items updated
        """
        with self.repository.transaction():
            items = {item.id: item for item in self.repository.list_items_in_section(section_id)}
            depths = self._true_depths(items)
            updates = [
                DepthUpdate(id=item_id, depth=depth)
                for item_id, depth in depths.items()
                if isinstance(depth, int) and items[item_id].item_depth != depth
            ]
            if updates:
                self.repository.bulk_update_depths(updates)

        logging.info(f"Recomputed {len(updates)} cached depths in section {section_id}")
        return len(updates)
