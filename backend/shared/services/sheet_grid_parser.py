"""
Sheet grid parser/extractor.

Converts an uploaded workbook into a single, normalized representation:
- grid: rectangular 2D array (rows x cols) of display strings, starting at A1 (0,0)
- merged_cells: list of MergeRange (0-based, inclusive)
- style_hints: per-cell bitmask (bold/fill/italic/bottom border + fill RGB)

Design principles:
- Keep parsing (I/O + format-specific quirks) separate from layout learning.
- Cells hold display strings; empty cells are "".
- Trim only trailing empty rows/cols (bottom/right) so coordinates stay stable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from openpyxl import load_workbook

from shared.models.sheet_grid import (
    STYLE_BOLD,
    STYLE_BORDER_BOTTOM,
    STYLE_FILL,
    STYLE_ITALIC,
    MergeRange,
    SheetGrid,
)


@dataclass(frozen=True)
class SheetGridParseOptions:
    """Options for workbook parsing."""

    trim_trailing_empty: bool = True
    max_rows: Optional[int] = None
    max_cols: Optional[int] = None
    include_style_hints: bool = True

    excel_data_only: bool = True
    excel_fallback_to_formula: bool = True


class SheetGridParser:
    """Parse .xlsx/.xlsm workbooks into SheetGrid."""

    # Currency hints used for number_format heuristics
    _CURRENCY_SYMBOLS = ("₩", "¥", "￥", "$", "€", "£", "₹")

    @classmethod
    def from_excel_path(
        cls,
        path: Union[str, Path],
        *,
        sheet_name: Optional[str] = None,
        options: Optional[SheetGridParseOptions] = None,
    ) -> SheetGrid:
        """Parse a workbook file on disk."""
        data = Path(path).read_bytes()
        return cls.from_excel_bytes(
            data,
            sheet_name=sheet_name,
            options=options,
            metadata={"file_name": Path(path).name},
        )

    @classmethod
    def from_excel_bytes(
        cls,
        xlsx_bytes: bytes,
        *,
        sheet_name: Optional[str] = None,
        options: Optional[SheetGridParseOptions] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SheetGrid:
        """
        Parse an .xlsx file into SheetGrid.

        Without ``sheet_name`` the first visible worksheet is used.
        """
        opts = options or SheetGridParseOptions()
        warnings: List[str] = []

        wb = load_workbook(
            filename=BytesIO(xlsx_bytes),
            data_only=bool(opts.excel_data_only),
            read_only=False,
        )
        ws = cls._select_worksheet(wb, sheet_name)

        max_row = int(ws.max_row or 0)
        max_col = int(ws.max_column or 0)
        if opts.max_rows is not None:
            max_row = min(max_row, int(opts.max_rows))
        if opts.max_cols is not None:
            max_col = min(max_col, int(opts.max_cols))

        # Merged ranges (1-based in openpyxl)
        merges: List[MergeRange] = [
            MergeRange(
                top=int(cr.min_row) - 1,
                left=int(cr.min_col) - 1,
                bottom=int(cr.max_row) - 1,
                right=int(cr.max_col) - 1,
            )
            for cr in ws.merged_cells.ranges
        ]

        if max_row <= 0 or max_col <= 0:
            return SheetGrid(
                source="excel",
                sheet_name=str(ws.title),
                grid=[],
                merged_cells=[],
                style_hints=[] if opts.include_style_hints else None,
                metadata={"rows": 0, "cols": 0, **(metadata or {})},
                warnings=warnings,
            )

        grid: List[List[Any]] = []
        styles: List[List[int]] = []
        for r in range(1, max_row + 1):
            row_out: List[Any] = []
            style_row: List[int] = []
            for c in range(1, max_col + 1):
                cell = ws.cell(row=r, column=c)
                row_out.append(
                    cls._excel_cell_to_display_value(cell, fallback_to_formula=opts.excel_fallback_to_formula)
                )
                if opts.include_style_hints:
                    style_row.append(cls._style_hint(cell))
            grid.append(row_out)
            styles.append(style_row)

        if opts.trim_trailing_empty:
            # Keep trailing blank rows/cols that belong to a merged range
            clipped = cls._clip_merge_ranges(merges, rows=max_row, cols=max_col)
            min_rows = max((m.bottom for m in clipped), default=-1) + 1
            min_cols = max((m.right for m in clipped), default=-1) + 1
            grid, trim_meta = cls._trim_trailing_empty(grid, min_rows=min_rows, min_cols=min_cols)
            if trim_meta.get("trimmed"):
                warnings.append("Trailing empty rows/cols trimmed")
                styles = [row[: trim_meta["cols"]] for row in styles[: trim_meta["rows"]]]

        rows = len(grid)
        cols = max((len(r) for r in grid), default=0)
        merges = cls._clip_merge_ranges(merges, rows=rows, cols=cols)

        return SheetGrid(
            source="excel",
            sheet_name=str(ws.title),
            grid=grid,
            merged_cells=merges,
            style_hints=styles if opts.include_style_hints else None,
            metadata={"rows": rows, "cols": cols, **(metadata or {})},
            warnings=warnings,
        )

    @staticmethod
    def _select_worksheet(wb: Any, sheet_name: Optional[str]) -> Any:
        if sheet_name and sheet_name in wb.sheetnames:
            return wb[sheet_name]
        for ws in wb.worksheets:
            if getattr(ws, "sheet_state", "visible") == "visible":
                return ws
        return wb.worksheets[0]

    # -------------------------
    # Normalization helpers
    # -------------------------

    @classmethod
    def _trim_trailing_empty(
        cls,
        grid: List[List[Any]],
        *,
        min_rows: int = 0,
        min_cols: int = 0,
    ) -> Tuple[List[List[Any]], Dict[str, Any]]:
        if not grid:
            return grid, {"trimmed": False, "rows": 0, "cols": 0}

        rows = len(grid)
        cols = max((len(r) for r in grid), default=0)

        def is_blank(v: Any) -> bool:
            return v is None or str(v).strip() == ""

        bottom = rows - 1
        while bottom >= 0 and all(is_blank(v) for v in grid[bottom]):
            bottom -= 1
        bottom = max(bottom, int(min_rows) - 1)

        right = cols - 1
        while right >= 0:
            if all(is_blank(grid[r][right]) for r in range(0, bottom + 1)):
                right -= 1
            else:
                break
        right = max(right, int(min_cols) - 1)

        trimmed = (bottom != rows - 1) or (right != cols - 1)
        new_grid = [row[: right + 1] for row in grid[: bottom + 1]]
        return new_grid, {"trimmed": trimmed, "rows": bottom + 1, "cols": right + 1}

    @classmethod
    def _clip_merge_ranges(cls, merges: List[MergeRange], *, rows: int, cols: int) -> List[MergeRange]:
        if not merges or rows <= 0 or cols <= 0:
            return []
        out: List[MergeRange] = []
        for m in merges:
            top = max(0, min(rows - 1, m.top))
            left = max(0, min(cols - 1, m.left))
            bottom = max(0, min(rows - 1, m.bottom))
            right = max(0, min(cols - 1, m.right))
            if bottom < top or right < left:
                continue
            # Ignore "merges" that are effectively single cells
            if top == bottom and left == right:
                continue
            out.append(MergeRange(top=top, left=left, bottom=bottom, right=right))
        return out

    # -------------------------
    # Style hints
    # -------------------------

    @staticmethod
    def _style_hint(cell: Any) -> int:
        mask = 0
        font = getattr(cell, "font", None)
        if font is not None:
            if font.b:
                mask |= STYLE_BOLD
            if font.i:
                mask |= STYLE_ITALIC

        fill = getattr(cell, "fill", None)
        if fill is not None and getattr(fill, "fill_type", None) == "solid":
            mask |= STYLE_FILL
            rgb = getattr(getattr(fill, "fgColor", None), "rgb", None)
            # Theme/indexed colours carry no literal ARGB string
            if isinstance(rgb, str) and re.fullmatch(r"[0-9A-Fa-f]{8}", rgb):
                mask |= int(rgb[2:], 16) << 8

        border = getattr(cell, "border", None)
        if border is not None and getattr(border.bottom, "style", None):
            mask |= STYLE_BORDER_BOTTOM

        return mask

    # -------------------------
    # Excel display formatting
    # -------------------------

    @classmethod
    def _excel_cell_to_display_value(cls, cell: Any, *, fallback_to_formula: bool) -> str:
        """
        Best-effort conversion of an openpyxl cell into its displayed text.

        Currency/percent formats live in number_format; raw numbers lose the symbol.
        """
        value = getattr(cell, "value", None)
        if value is None:
            return ""

        if isinstance(value, str):
            if value.startswith("=") and not fallback_to_formula:
                return ""
            return value

        if isinstance(value, bool):
            return "true" if value else "false"

        if isinstance(value, datetime):
            # Excel often stores a plain date as midnight
            if value.hour == 0 and value.minute == 0 and value.second == 0 and value.microsecond == 0:
                return value.date().isoformat()
            return value.isoformat(sep=" ")

        if isinstance(value, (date, time)):
            return value.isoformat()

        if isinstance(value, (int, float, Decimal)):
            fmt = str(getattr(cell, "number_format", "") or "")
            return cls._format_excel_number(value, fmt)

        return str(value)

    @classmethod
    def _format_excel_number(cls, value: Any, fmt: str) -> str:
        s = str(fmt or "")

        # Percent formats: stored as fraction (0.3) -> display 30%
        if "%" in s:
            return f"{float(value) * 100:.0f}%"

        prefix = next((sym for sym in cls._CURRENCY_SYMBOLS if sym in s), "")
        decimal_places = cls._infer_decimal_places_from_format(s)
        use_thousands = "," in s
        num = float(value)

        if decimal_places is None:
            if abs(num - int(num)) < 1e-9:
                core = f"{int(num):,}" if use_thousands else str(int(num))
            else:
                core = f"{num:,.6f}" if use_thousands else f"{num:.6f}"
                core = core.rstrip("0").rstrip(".")
        elif decimal_places <= 0:
            core = f"{num:,.0f}" if use_thousands else f"{num:.0f}"
        else:
            core = f"{num:,.{decimal_places}f}" if use_thousands else f"{num:.{decimal_places}f}"

        return f"{prefix}{core}"

    @staticmethod
    def _infer_decimal_places_from_format(fmt: str) -> Optional[int]:
        section = fmt.split(";", 1)[0]
        if section.strip().lower() in ("", "general"):
            return None

        section = re.sub(r"\"[^\"]*\"", "", section)
        section = re.sub(r"\[[^\]]+\]", "", section)

        m = re.search(r"[#0]+\.([0#]+)", section)
        if not m:
            return 0 if re.search(r"[#0]", section) else None

        decimals = m.group(1)
        mandatory = decimals.count("0")
        if mandatory > 0:
            return mandatory
        return len(decimals)
