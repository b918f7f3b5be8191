"""
Shared model definitions for the mirror-template service
"""

from .mirror_template import (
    Anchor,
    ApplyRequest,
    ApplyResult,
    ConfirmResult,
    FieldDef,
    FieldMapTo,
    Fingerprint,
    LearnedCell,
    LearnedLayout,
    LearnResult,
    PageSize,
    RegionDef,
    RegionGrid,
    Regions,
    RenderHints,
    SheetDefinition,
    TemplateMatch,
)
from .responses import ApiResponse
from .sheet_grid import BoundingBox, MergeRange, SheetGrid

__all__ = [
    "Anchor",
    "ApiResponse",
    "ApplyRequest",
    "ApplyResult",
    "BoundingBox",
    "ConfirmResult",
    "FieldDef",
    "FieldMapTo",
    "Fingerprint",
    "LearnedCell",
    "LearnedLayout",
    "LearnResult",
    "MergeRange",
    "PageSize",
    "RegionDef",
    "RegionGrid",
    "Regions",
    "RenderHints",
    "SheetDefinition",
    "SheetGrid",
    "TemplateMatch",
]
