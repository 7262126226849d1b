"""
Hierarchy mutator for Trellis.

This module owns every write to `parent_item_id` and `item_depth`. Each
operation reads the current state, validates it against the composition
rules and the ancestry checker, and only then writes, inside one repository
transaction. Rule violations are returned as MutationResult failures.
"""

import logging
from typing import Callable, Dict, List, Optional

from ..config import ConfigManager, get_config
from ..errors import DataIntegrityError, ItemNotFoundError
from ..models import (
    Item,
    CompositionErrorCode,
    COMPOSITION_ERROR_MESSAGES,
    MutationResult,
    AttachChildItemInput,
    DetachChildItemInput,
)
from ..repository import ItemRepository
from ..rules import CompositionRules, RuleTable
from .ancestry import AncestryChecker, Descendant
from .depth import DepthRepair


class _AbortTransaction(Exception):
    """Carries a failed result out of a transaction block so it rolls back."""

    def __init__(self, result: MutationResult):
        super().__init__(result.error.message if result.error else "aborted")
        self.result = result


class HierarchyMutator:
    """
    Attaches, detaches and moves roadmap items while keeping the section
    forest acyclic, depth-bounded, type-compatible and date-contained.
    """

    def __init__(
        self,
        repository: ItemRepository,
        rules: Optional[CompositionRules] = None,
        max_depth: Optional[int] = None,
        traversal_margin: Optional[int] = None,
        settings: Optional[ConfigManager] = None
    ):
        """
        Initialize the mutator.

        Args:
            repository: The item store to read and write
            rules: Composition policy (default: built from configuration)
            max_depth: Maximum nesting depth (default: composition.max_depth)
            traversal_margin: Extra levels a walk may cover before it is
                treated as corrupt data (default: composition.traversal_margin)
            settings: Configuration to read defaults from (default: global config)
        """
        settings = settings or get_config()
        self.repository = repository
        self.rules = rules or CompositionRules(
            RuleTable.from_config(settings.composition_rules, settings.max_item_depth)
        )
        self.max_depth = max_depth if max_depth is not None else settings.max_item_depth
        margin = traversal_margin if traversal_margin is not None else settings.traversal_margin
        self.ancestry = AncestryChecker(repository, self.max_depth + margin)
        self.depth_repair = DepthRepair(self.ancestry)

    # Public operation interface

    def attach_child_item(self, request: AttachChildItemInput) -> MutationResult:
        """Place an unattached item under a parent."""
        return self.attach(request.child_item_id, request.parent_item_id)

    def detach_child_item(self, request: DetachChildItemInput) -> MutationResult:
        """Turn an attached item into a root of its section."""
        return self.detach(request.child_item_id)

    def move_item_to_new_parent(self, item_id: str, new_parent_id: Optional[str]) -> MutationResult:
        """Re-home an item; None makes it a root."""
        return self.move(item_id, new_parent_id)

    def attach(self, child_id: str, parent_id: str) -> MutationResult:
        return self._run(f"attach {child_id} -> {parent_id}", self._attach, child_id, parent_id)

    def detach(self, child_id: str) -> MutationResult:
        return self._run(f"detach {child_id}", self._detach, child_id)

    def move(self, item_id: str, new_parent_id: Optional[str]) -> MutationResult:
        return self._run(f"move {item_id} -> {new_parent_id}", self._move, item_id, new_parent_id)

    # Transaction handling

    def _run(self, label: str, operation: Callable[..., MutationResult], *args) -> MutationResult:
        """
        Execute an operation in one transaction; a failed result rolls it back.
        """
        try:
            with self.repository.transaction():
                result = operation(*args)
                if not result.success:
                    raise _AbortTransaction(result)
        except _AbortTransaction as abort:
            error = abort.result.error
            logging.warning(f"Rejected {label}: [{error.code.value}] {error.message}")
            return abort.result
        except DataIntegrityError as e:
            logging.error(f"Aborted {label}: {e}")
            return MutationResult.fail(CompositionErrorCode.DATA_INTEGRITY, str(e))
        except ItemNotFoundError as e:
            # the row vanished between validation and write
            logging.warning(f"Aborted {label}: {e}")
            return MutationResult.fail(
                CompositionErrorCode.NOT_FOUND,
                f"{COMPOSITION_ERROR_MESSAGES['ITEM_NOT_FOUND']}: {e.item_id}"
            )

        logging.info(f"Completed {label} ({result.updated_descendants} descendant depths repaired)")
        return result

    # Operations

    def _attach(self, child_id: str, parent_id: str) -> MutationResult:
        if child_id == parent_id:
            return MutationResult.fail(
                CompositionErrorCode.SELF_REFERENCE,
                COMPOSITION_ERROR_MESSAGES["SELF_REFERENCE"]
            )

        child = self.repository.get_item(child_id)
        if child is None:
            return MutationResult.fail(
                CompositionErrorCode.NOT_FOUND,
                COMPOSITION_ERROR_MESSAGES["CHILD_NOT_FOUND"]
            )

        parent = self.repository.get_item(parent_id)
        if parent is None:
            return MutationResult.fail(
                CompositionErrorCode.NOT_FOUND,
                COMPOSITION_ERROR_MESSAGES["PARENT_NOT_FOUND"]
            )

        if child.parent_item_id is not None:
            return MutationResult.fail(
                CompositionErrorCode.ALREADY_HAS_PARENT,
                COMPOSITION_ERROR_MESSAGES["ALREADY_HAS_PARENT"]
            )

        if child.section_id != parent.section_id:
            return MutationResult.fail(
                CompositionErrorCode.DIFFERENT_SECTION,
                COMPOSITION_ERROR_MESSAGES["DIFFERENT_SECTION"]
            )

        if self.ancestry.is_ancestor(child_id, parent_id):
            return MutationResult.fail(
                CompositionErrorCode.CYCLE_DETECTED,
                COMPOSITION_ERROR_MESSAGES["CYCLE_DETECTED"]
            )

        new_depth = parent.item_depth + 1
        if new_depth > self.max_depth:
            return self._max_depth_failure()

        descendants = self.ancestry.collect_descendants(child_id)
        if new_depth + self.ancestry.subtree_height(child_id, descendants) > self.max_depth:
            return self._max_depth_failure()

        errors = self._composition_errors(parent, child, new_depth, descendants)
        if errors:
            return MutationResult.fail(CompositionErrorCode.COMPOSITION_INVALID, "; ".join(errors))

        if self.rules.requires_envelope(parent.type, child.type):
            envelope = self.rules.check_envelope(
                parent.start_date,
                parent.end_date,
                child.start_date,
                child.end_date
            )
            if not envelope.within_window:
                return MutationResult.fail(
                    CompositionErrorCode.PARENT_ENVELOPE_VIOLATION,
                    COMPOSITION_ERROR_MESSAGES["PARENT_ENVELOPE_VIOLATION"].format(
                        violation=envelope.violation
                    )
                )

        updated = self.repository.update_item_parent_and_depth(child_id, parent_id, new_depth)
        repaired = self.depth_repair.repair(child_id, new_depth, descendants)
        return MutationResult.ok(updated, repaired)

    def _detach(self, child_id: str) -> MutationResult:
        child = self.repository.get_item(child_id)
        if child is None:
            return MutationResult.fail(
                CompositionErrorCode.NOT_FOUND,
                COMPOSITION_ERROR_MESSAGES["CHILD_NOT_FOUND"]
            )

        if child.parent_item_id is None:
            return MutationResult.fail(
                CompositionErrorCode.NO_PARENT,
                COMPOSITION_ERROR_MESSAGES["NO_PARENT"]
            )

        descendants = self.ancestry.collect_descendants(child_id)
        updated = self.repository.update_item_parent_and_depth(child_id, None, 0)
        repaired = self.depth_repair.repair(child_id, 0, descendants)
        return MutationResult.ok(updated, repaired)

    def _move(self, item_id: str, new_parent_id: Optional[str]) -> MutationResult:
        if new_parent_id is None:
            return self._detach(item_id)

        item = self.repository.get_item(item_id)
        if item is None:
            return MutationResult.fail(
                CompositionErrorCode.NOT_FOUND,
                COMPOSITION_ERROR_MESSAGES["ITEM_NOT_FOUND"]
            )

        repaired = 0
        if item.parent_item_id is not None:
            detached = self._detach(item_id)
            if not detached.success:
                return detached
            repaired = detached.updated_descendants

        attached = self._attach(item_id, new_parent_id)
        if attached.success:
            attached.updated_descendants += repaired
        return attached

    # Validation helpers

    def _max_depth_failure(self) -> MutationResult:
        return MutationResult.fail(
            CompositionErrorCode.MAX_DEPTH_EXCEEDED,
            COMPOSITION_ERROR_MESSAGES["MAX_DEPTH_EXCEEDED"].format(max_depth=self.max_depth)
        )

    def _composition_errors(
        self,
        parent: Item,
        child: Item,
        new_depth: int,
        descendants: List[Descendant]
    ) -> List[str]:
        """
        Check the new edge and every edge inside the moved subtree at the
        depths they will have after the attach.
        """
        check = self.rules.is_composition_allowed(parent.type, child.type, new_depth)
        errors = list(check.errors)

        by_id: Dict[str, Item] = {child.id: child}
        by_id.update({d.item.id: d.item for d in descendants})
        for descendant in descendants:
            owner = by_id[descendant.item.parent_item_id]
            check = self.rules.is_composition_allowed(
                owner.type,
                descendant.item.type,
                new_depth + descendant.relative_depth
            )
            errors.extend(f"{descendant.item.title}: {message}" for message in check.errors)

        return errors
