"""Data models for Trellis."""

from .items import Item, ItemType, ItemStatus, TreeNode, PathEntry, DepthUpdate, TreeFilter
from .results import (
    CompositionErrorCode,
    CompositionError,
    COMPOSITION_ERROR_MESSAGES,
    MutationResult,
    CompositionCheck,
    EnvelopeCheck,
    AttachChildItemInput,
    DetachChildItemInput,
)

__all__ = [
    "Item",
    "ItemType",
    "ItemStatus",
    "TreeNode",
    "PathEntry",
    "DepthUpdate",
    "TreeFilter",
    "CompositionErrorCode",
    "CompositionError",
    "COMPOSITION_ERROR_MESSAGES",
    "MutationResult",
    "CompositionCheck",
    "EnvelopeCheck",
    "AttachChildItemInput",
    "DetachChildItemInput"
]
