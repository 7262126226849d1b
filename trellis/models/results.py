"""
Operation inputs and result types for Trellis.

Every mutation returns a MutationResult instead of raising, so callers can
show a specific message per error kind.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .items import Item


class CompositionErrorCode(str, Enum):
    """Stable identifiers for every way a mutation can be rejected."""

    SELF_REFERENCE = "self_reference"
    NOT_FOUND = "not_found"
    ALREADY_HAS_PARENT = "already_has_parent"
    NO_PARENT = "no_parent"
    DIFFERENT_SECTION = "different_section"
    CYCLE_DETECTED = "cycle_detected"
    MAX_DEPTH_EXCEEDED = "max_depth_exceeded"
    COMPOSITION_INVALID = "composition_invalid"
    PARENT_ENVELOPE_VIOLATION = "parent_envelope_violation"
    DATA_INTEGRITY = "data_integrity"


COMPOSITION_ERROR_MESSAGES = {
    "SELF_REFERENCE": "An item cannot be its own parent",
    "CHILD_NOT_FOUND": "Child item not found",
    "PARENT_NOT_FOUND": "Parent item not found",
    "ITEM_NOT_FOUND": "Item not found",
    "ALREADY_HAS_PARENT": "Item already has a parent. Detach it first.",
    "NO_PARENT": "Item does not have a parent",
    "DIFFERENT_SECTION": "Parent and child must be in the same section",
    "CYCLE_DETECTED": "Cannot attach: this would create a circular reference",
    "MAX_DEPTH_EXCEEDED": "Cannot attach: maximum nesting depth of {max_depth} would be exceeded",
    "PARENT_ENVELOPE_VIOLATION": "Child dates must fit within the parent's dates: {violation}",
}


class CompositionError(BaseModel):
    """A typed rejection reason."""

    code: CompositionErrorCode
    message: str


class MutationResult(BaseModel):
    """
    Outcome of attach, detach or move.

    On failure nothing was written. `updated_descendants` counts the
    cached depths rewritten by depth repair on success.
    """

    success: bool
    item: Optional[Item] = None
    error: Optional[CompositionError] = None
    updated_descendants: int = 0

    @classmethod
    def ok(cls, item: Optional[Item], updated_descendants: int = 0) -> "MutationResult":
        return cls(success=True, item=item, updated_descendants=updated_descendants)

    @classmethod
    def fail(cls, code: CompositionErrorCode, message: str) -> "MutationResult":
        return cls(success=False, error=CompositionError(code=code, message=message))

    @property
    def error_code(self) -> Optional[CompositionErrorCode]:
        return self.error.code if self.error else None


class CompositionCheck(BaseModel):
    """Result of consulting the compatibility table for one edge."""

    valid: bool
    errors: List[str] = Field(default_factory=list)


class EnvelopeCheck(BaseModel):
    """Result of comparing a child's dates against its parent's."""

    within_window: bool
    violation: Optional[str] = None


class AttachChildItemInput(BaseModel):
    """Request to place an unattached item under a parent."""

    child_item_id: str
    parent_item_id: str
    user_id: Optional[str] = Field(
        None,
        description="Acting user, carried for callers' audit trails; the engine does not read it"
    )


class DetachChildItemInput(BaseModel):
    """Request to turn an attached item into a root."""

    child_item_id: str
    user_id: Optional[str] = Field(
        None,
        description="Acting user, carried for callers' audit trails; the engine does not read it"
    )
