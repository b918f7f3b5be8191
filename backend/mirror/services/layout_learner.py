"""
Layout learner.

Turns an uploaded worksheet into a ``LearnedLayout``: every populated cell
exactly once (row-major), with its merge extent, bold flag and a label flag.

Label rule, applied left to right within a row:
- text ending in ":" / "：" is always a label;
- short, non-numeric, letter-bearing text is a label when it is bold or part
  of a table header row;
- otherwise it is a label unless it falls in a value slot:
  - the next populated cell right of a label in the same row (blank spacer
    columns are skipped);
  - the cell directly below a label that has nothing to its right;
  - a table body cell under a header row.

A header row is a run of two or more colon-less label-like cells whose next
row holds at least one value that is plainly not a label (a tag, a number).
The body runs down to the first blank row or row with a colon label.
"""

import re
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

from shared.config.settings import LayoutSettings
from shared.exceptions.mirror import LearnFailure
from shared.models.mirror_template import LearnedCell, LearnedLayout, PageSize
from shared.models.sheet_grid import STYLE_BOLD, SheetGrid
from shared.services.sheet_grid_parser import SheetGridParser
from shared.utils.app_logger import get_logger

from mirror.services.field_typing import BOOLEAN_VALUES

logger = get_logger(__name__)

_EXPLICIT_LABEL = re.compile(r"[:：]\s*$")
_WHITESPACE = re.compile(r"\s+")

MAX_LABEL_WORDS = 6


def clean_label(text: str) -> str:
    """Strip a trailing colon and collapse whitespace."""
    return _WHITESPACE.sub(" ", _EXPLICIT_LABEL.sub("", str(text))).strip()


def is_explicit_label(text: str) -> bool:
    t = text.strip()
    return bool(t) and bool(_EXPLICIT_LABEL.search(t)) and bool(clean_label(t))


def looks_like_data_value(text: str) -> bool:
    """Strings that are far more likely values than labels."""
    t = text.strip()
    if any(ch in t for ch in ("@", "://")):
        return True
    if any(ch in t for ch in ("(", ")", "[", "]")) and not t.endswith(":"):
        return True
    if re.search(r"\d", t) and len(t) > 4:
        return True
    return False


def is_label_like(text: str, *, max_length: int = 40) -> bool:
    t = text.strip()
    if not t or len(t) > max_length:
        return False
    if not any(ch.isalpha() for ch in t):
        return False
    if any(ch.isdigit() for ch in t):
        return False
    if looks_like_data_value(t):
        return False
    if t.lower() in BOOLEAN_VALUES:
        return False
    return len(t.split()) <= MAX_LABEL_WORDS


class LayoutLearner:
    """Learns a flat cell layout from a workbook."""

    def __init__(self, settings: Optional[LayoutSettings] = None):
        self.settings = settings or LayoutSettings()

    def learn_path(self, path: Union[str, Path]) -> LearnedLayout:
        """Learn from a workbook on disk; any read/parse error is a LearnFailure."""
        try:
            sheet = SheetGridParser.from_excel_path(path)
        except Exception as e:
            logger.error(f"Failed to read workbook {Path(path).name}: {e}")
            raise LearnFailure("Uploaded document could not be read", detail=str(e)) from e
        return self.learn_grid(sheet)

    def learn_bytes(self, data: bytes) -> LearnedLayout:
        try:
            sheet = SheetGridParser.from_excel_bytes(data)
        except Exception as e:
            logger.error(f"Failed to read workbook bytes: {e}")
            raise LearnFailure("Uploaded document could not be read", detail=str(e)) from e
        return self.learn_grid(sheet)

    def learn_grid(self, sheet: SheetGrid) -> LearnedLayout:
        merge_edges = self._merge_edges(sheet)
        texts = self._cell_texts(sheet)
        header_cells, table_cells = self._find_tables(texts)
        labels: Dict[Tuple[int, int], bool] = {}
        cells: List[LearnedCell] = []

        for r, row in enumerate(sheet.grid):
            awaiting_value = False
            for c, raw in enumerate(row):
                text = "" if raw is None else str(raw).strip()
                if not text:
                    continue

                right, bottom = merge_edges.get((r, c), (c, r))
                is_bold = bool(sheet.style_at(r, c) & STYLE_BOLD)

                if is_explicit_label(text):
                    is_label = True
                elif not self._label_like(text):
                    is_label = False
                elif is_bold or (r, c) in header_cells:
                    is_label = True
                elif awaiting_value or (r, c) in table_cells:
                    is_label = False
                else:
                    is_label = not self._below_open_label(r, c, labels, texts, merge_edges)

                labels[(r, c)] = is_label
                awaiting_value = is_label

                cells.append(
                    LearnedCell(
                        text=text,
                        row=r,
                        col=c,
                        is_label=is_label,
                        is_bold=is_bold,
                        merge_right=right,
                        merge_bottom=bottom,
                    )
                )

        detected: List[str] = []
        for cell in cells:
            if not cell.is_label:
                continue
            label = clean_label(cell.text)
            if label and label not in detected:
                detected.append(label)

        layout = LearnedLayout(
            sheet_name=sheet.sheet_name or "Sheet1",
            page_size=PageSize(w=self.settings.page_width, h=self.settings.page_height),
            row_count=sheet.row_count,
            column_count=sheet.column_count,
            cells=cells,
            merged_cells=[[m.left, m.top, m.right, m.bottom] for m in sheet.merged_cells],
            detected_labels=detected,
        )
        logger.info(
            f"Learned sheet '{layout.sheet_name}': {len(cells)} cells, {len(detected)} labels"
        )
        return layout

    def _label_like(self, text: str) -> bool:
        return is_label_like(text, max_length=self.settings.label_max_length)

    @staticmethod
    def _merge_edges(sheet: SheetGrid) -> Dict[Tuple[int, int], Tuple[int, int]]:
        """(top, left) of each merged range -> (right, bottom)."""
        return {(m.top, m.left): (m.right, m.bottom) for m in sheet.merged_cells}

    @staticmethod
    def _cell_texts(sheet: SheetGrid) -> Dict[Tuple[int, int], str]:
        texts: Dict[Tuple[int, int], str] = {}
        for r, row in enumerate(sheet.grid):
            for c, raw in enumerate(row):
                text = "" if raw is None else str(raw).strip()
                if text:
                    texts[(r, c)] = text
        return texts

    @staticmethod
    def _below_open_label(
        r: int,
        c: int,
        labels: Dict[Tuple[int, int], bool],
        texts: Dict[Tuple[int, int], str],
        merge_edges: Dict[Tuple[int, int], Tuple[int, int]],
    ) -> bool:
        """True when (r, c) sits directly below a label with nothing to its right."""
        if not labels.get((r - 1, c)):
            return False
        right, _ = merge_edges.get((r - 1, c), (c, r - 1))
        return not any(row == r - 1 and col > right for row, col in texts)

    def _find_tables(
        self, texts: Dict[Tuple[int, int], str]
    ) -> Tuple[Set[Tuple[int, int]], Set[Tuple[int, int]]]:
        """Header cells and body cells of every table band."""
        rows: Dict[int, List[int]] = {}
        for r, c in sorted(texts):
            rows.setdefault(r, []).append(c)

        header_cells: Set[Tuple[int, int]] = set()
        table_cells: Set[Tuple[int, int]] = set()

        for r, cols in rows.items():
            if len(cols) < 2 or any((r, c) in table_cells for c in cols):
                continue
            row_texts = [texts[(r, c)] for c in cols]
            if any(is_explicit_label(t) or not self._label_like(t) for t in row_texts):
                continue
            left, right = cols[0], cols[-1]
            below = [texts[(r + 1, c)] for c in rows.get(r + 1, []) if left <= c <= right]
            if not any(not is_explicit_label(t) and not self._label_like(t) for t in below):
                continue

            header_cells.update((r, c) for c in cols)
            body = r + 1
            while body in rows and not any(is_explicit_label(texts[(body, c)]) for c in rows[body]):
                table_cells.update((body, c) for c in rows[body] if left <= c <= right)
                body += 1

        return header_cells, table_cells
