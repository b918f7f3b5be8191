"""
Workbook renderer.

Writes a confirmed definition plus a value map into a new .xlsx file.

Exact placement: each field writes "<label>:" (bold) at (row, colLabel) and its
display value at (row, colValue). A cell already written is never written
again, so the first field to claim a cell wins and later writes are dropped.
Region names then go (bold) into their anchor cell (top, left) only where no
field claimed it.

Fallback: the clientKey title sits in A1 and fields follow one per row from the
third row as a two-column label/value list, ignoring bbox.

All coordinates are 0-based; openpyxl rows/columns are 1-based.
"""

import hashlib
import json
import os
import re
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, Side

from shared.models.mirror_template import RegionDef, SheetDefinition
from shared.utils.app_logger import get_logger

logger = get_logger(__name__)

FALLBACK_FIRST_ROW = 2
FALLBACK_LABEL_WIDTH = 34
FALLBACK_VALUE_WIDTH = 28
DEFAULT_COLUMN_WIDTH = 18

_SHEET_NAME_FORBIDDEN = re.compile(r"[\\/*?:\[\]]")
_FILE_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def display_value(value: Any) -> Union[str, int, float, None]:
    """None -> blank, bool -> "Yes"/"No", numbers and strings as-is."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return value


def safe_sheet_name(name: str) -> str:
    cleaned = _SHEET_NAME_FORBIDDEN.sub(" ", name or "").strip()
    return cleaned[:31] or "Sheet1"


def _slug(text: str) -> str:
    return _FILE_NAME_UNSAFE.sub("_", text).strip("._") or "template"


def build_file_name(definition: SheetDefinition, values: Dict[str, Any], naming: str = "content_hash") -> str:
    """
    Output file name.

    ``content_hash`` (default) appends a digest of (id, values) so different
    value maps never share a file; ``legacy`` is ``<clientKey>-<id>.xlsx``.
    """
    base = f"{_slug(definition.client_key)}-{_slug(definition.id)}"
    if naming == "legacy":
        return f"{base}.xlsx"
    digest = hashlib.sha256(
        json.dumps({"id": definition.id, "values": values}, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()[:12]
    return f"{base}-{digest}.xlsx"


class WorkbookRenderer:
    def __init__(self, column_width: int = DEFAULT_COLUMN_WIDTH):
        self.column_width = column_width

    def render(
        self,
        definition: SheetDefinition,
        values: Dict[str, Any],
        output_dir: Union[str, Path],
        file_name: Optional[str] = None,
    ) -> Path:
        """Build the workbook and save it under ``output_dir``; returns the file path."""
        hints = definition.render_hints
        wb = Workbook()
        ws = wb.active
        ws.title = safe_sheet_name(definition.client_key)
        ws.sheet_format.defaultColWidth = self.column_width
        ws.sheet_format.defaultRowHeight = hints.base_line_height
        ws.sheet_format.customHeight = True

        label_font = Font(name=hints.font, bold=True)
        value_font = Font(name=hints.font)

        if hints.exact_placement:
            occupied: Set[Tuple[int, int]] = set()
            for field in definition.fields:
                value = display_value(values.get(field.key))
                self._write_if_free(ws, occupied, field.row, field.label_col, f"{field.label}:", label_font)
                self._write_if_free(ws, occupied, field.row, field.value_col, value, value_font)
            for region in self._regions(definition):
                left, top = region.bbox[0], region.bbox[1]
                self._write_if_free(ws, occupied, top, left, region.name, label_font)
            self._draw_borders(ws, hints.table_borders)
        else:
            self._write(ws, 0, 0, definition.client_key, label_font)
            ws.column_dimensions["A"].width = FALLBACK_LABEL_WIDTH
            ws.column_dimensions["B"].width = FALLBACK_VALUE_WIDTH
            for offset, field in enumerate(definition.fields):
                row = FALLBACK_FIRST_ROW + offset
                self._write(ws, row, 0, f"{field.label}:", label_font)
                self._write(ws, row, 1, display_value(values.get(field.key)), value_font)

        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        name = file_name or build_file_name(definition, values)
        target = out_dir / name

        # Save next to the target and swap in, so readers never see a partial file
        tmp = out_dir / f".{name}.{uuid.uuid4().hex}.tmp"
        try:
            wb.save(tmp)
            os.replace(tmp, target)
        finally:
            if tmp.exists():
                tmp.unlink()

        logger.info(
            f"Rendered {definition.id} ({'exact' if hints.exact_placement else 'list'} mode) -> {target.name}"
        )
        return target

    @staticmethod
    def _regions(definition: SheetDefinition) -> Iterable[RegionDef]:
        regions: List[RegionDef] = []
        if definition.regions.header is not None:
            regions.append(definition.regions.header)
        if definition.regions.equipment is not None:
            regions.append(definition.regions.equipment)
        regions.extend(definition.regions.subsheets)
        return regions

    @staticmethod
    def _write(ws: Any, row: int, col: int, value: Any, font: Font) -> None:
        cell = ws.cell(row=row + 1, column=col + 1)
        cell.value = value
        cell.font = font
        cell.alignment = Alignment(vertical="center")

    def _write_if_free(
        self, ws: Any, occupied: Set[Tuple[int, int]], row: int, col: int, value: Any, font: Font
    ) -> None:
        if (row, col) in occupied:
            return
        self._write(ws, row, col, value, font)
        occupied.add((row, col))

    @staticmethod
    def _draw_borders(ws: Any, boxes: List[List[int]]) -> None:
        thin = Side(style="thin")
        for left, top, right, bottom in boxes:
            for r in range(top, bottom + 1):
                for c in range(left, right + 1):
                    cell = ws.cell(row=r + 1, column=c + 1)
                    cell.border = Border(
                        left=thin if c == left else None,
                        right=thin if c == right else None,
                        top=thin if r == top else None,
                        bottom=thin if r == bottom else None,
                    )
