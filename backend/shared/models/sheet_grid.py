"""
Sheet grid extraction models.

Goal: represent an uploaded spreadsheet as a normalized grid + merged-cell ranges
+ per-cell style hints, so the layout learner can operate on one standard format.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# Style-hint bitmask layout (bits 8..31 carry the fill RGB)
STYLE_BOLD = 1 << 0
STYLE_FILL = 1 << 1
STYLE_ITALIC = 1 << 2
STYLE_BORDER_BOTTOM = 1 << 3


class BoundingBox(BaseModel):
    """0-based inclusive bounding box."""

    top: int = Field(..., ge=0)
    left: int = Field(..., ge=0)
    bottom: int = Field(..., ge=0)
    right: int = Field(..., ge=0)

    model_config = ConfigDict(extra="ignore")


class MergeRange(BoundingBox):
    """Merged cell range (inclusive)."""

    model_config = ConfigDict(extra="ignore")


class SheetGrid(BaseModel):
    """Normalized sheet representation (0-based coordinates)."""

    source: Literal["excel", "unknown"] = "unknown"
    sheet_name: Optional[str] = None

    grid: List[List[Any]] = Field(default_factory=list, description="Rectangular 2D grid")
    merged_cells: List[MergeRange] = Field(
        default_factory=list, description="Merged cell ranges (0-based, inclusive)"
    )
    style_hints: Optional[List[List[int]]] = Field(
        default=None, description="Per-cell style bitmask, same shape as grid"
    )

    metadata: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @property
    def row_count(self) -> int:
        return len(self.grid)

    @property
    def column_count(self) -> int:
        return max((len(r) for r in self.grid), default=0)

    def style_at(self, row: int, col: int) -> int:
        if not self.style_hints or row >= len(self.style_hints):
            return 0
        src = self.style_hints[row]
        return int(src[col]) if col < len(src) else 0
