"""
Roadmap item models for Trellis.

This module defines the stored item record and the read-side views derived
from it (tree nodes and path entries).
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class ItemType(str, Enum):
    """The closed set of planning-item kinds."""

    TASK = "task"
    EVENT = "event"
    NOTE = "note"
    DOCUMENT = "document"
    MILESTONE = "milestone"
    GOAL = "goal"
    PHOTO = "photo"
    GROCERY_LIST = "grocery_list"
    HABIT = "habit"
    REVIEW = "review"


class ItemStatus(str, Enum):
    """Lifecycle state of an item. Independent of tree position."""

    NOT_STARTED = "not_started"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"


class Item(BaseModel):
    """
    A single roadmap item, the unit node of a section's forest.

    Only `parent_item_id` encodes tree shape. `item_depth` is a cached
    copy of the distance to the nearest root and is written exclusively
    by the hierarchy mutator.
    """

    id: str = Field(
        ...,
        description="Opaque unique identifier"
    )

    project_id: str = Field(
        ...,
        description="The project owning the item's section"
    )

    section_id: str = Field(
        ...,
        description="The section the item belongs to; composition never crosses sections"
    )

    type: ItemType = Field(
        ...,
        description="The planning-item kind"
    )

    title: str = Field(
        ...,
        description="Free-text title"
    )

    description: Optional[str] = Field(
        None,
        description="Free-text description"
    )

    start_date: Optional[date] = Field(
        None,
        description="Start of the item's temporal envelope"
    )

    end_date: Optional[date] = Field(
        None,
        description="End of the item's temporal envelope; may equal start_date"
    )

    status: ItemStatus = Field(
        default=ItemStatus.NOT_STARTED,
        description="Lifecycle state"
    )

    parent_item_id: Optional[str] = Field(
        None,
        description="Weak reference to the parent item; None for roots"
    )

    item_depth: int = Field(
        default=0,
        ge=0,
        description="Number of parent hops to the nearest root"
    )

    order_index: int = Field(
        default=0,
        description="Sibling ordering key"
    )

    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque key/value bag"
    )

    created_at: Optional[datetime] = Field(
        None,
        description="When the record was created"
    )

    updated_at: Optional[datetime] = Field(
        None,
        description="When the record was last written"
    )

    @model_validator(mode="after")
    def check_date_order(self) -> "Item":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError(
                f"end_date {self.end_date.isoformat()} is before start_date {self.start_date.isoformat()}"
            )
        return self

    @property
    def is_root(self) -> bool:
        return self.parent_item_id is None


class TreeNode(BaseModel):
    """
    An item with its materialized children. Never persisted.
    """

    item: Item
    children: List['TreeNode'] = Field(default_factory=list)
    child_count: int = 0
    descendant_count: int = 0


TreeNode.model_rebuild()


class PathEntry(BaseModel):
    """One step of the root-first ancestor chain of an item."""

    item_id: str
    title: str
    type: ItemType
    depth: int


class DepthUpdate(BaseModel):
    """A single cached-depth write issued by depth repair."""

    id: str
    depth: int = Field(..., ge=0)


class TreeFilter(BaseModel):
    """
    Selects which roots a tree view is built from.

    When `item_id` is given the other selectors are ignored and a single
    tree rooted at that item is returned.
    """

    project_id: Optional[str] = None
    section_id: Optional[str] = None
    item_id: Optional[str] = None
    include_archived: bool = False
    include_children: bool = True
