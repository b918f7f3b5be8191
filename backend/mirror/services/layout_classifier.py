"""
Layout classifier.

Groups a learned layout into regions and fields and returns a draft
``SheetDefinition``.

Algorithm:
1. Populated rows are split into bands at blank rows. A section title (bold,
   non-colon label alone in its row) also opens a new band.
2. First band = header, second = equipment (fallback: one row under the
   header), every later band = a subsheet named after its title.
3. Every non-title label becomes a field. Its value cell is the filled value
   found right of the label on the same row, or else the column right after
   the label's merge edge. A value below the label only supplies the sample.
4. Types come from the sampled value; fields sharing a label whose values form
   a small repeated set become enums.
5. Keys are snake_case labels, suffixed _2, _3, ... on collision.

Same-row duplicate labels are kept here; confirm removes them.
"""

import re
import uuid
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from shared.config.settings import RenderSettings
from shared.models.mirror_template import (
    FieldDef,
    FieldMapTo,
    LearnedCell,
    LearnedLayout,
    RegionDef,
    RegionGrid,
    Regions,
    RenderHints,
    SheetDefinition,
)
from shared.utils.app_logger import get_logger

from mirror.services.field_typing import infer_field_type, infer_repeated_enum
from mirror.services.layout_learner import clean_label, is_explicit_label

logger = get_logger(__name__)

HEADER_REGION = "HEADER"
EQUIPMENT_REGION = "EQUIPMENT"


@dataclass
class _Band:
    cells: List[LearnedCell] = field(default_factory=list)
    title: Optional[LearnedCell] = None

    @property
    def bbox(self) -> List[int]:
        return [
            min(c.col for c in self.cells),
            min(c.row for c in self.cells),
            max(c.merge_right for c in self.cells),
            max(c.merge_bottom for c in self.cells),
        ]


def to_field_key(label: str) -> str:
    key = re.sub(r"[^\w]+", "_", label.strip().lower()).strip("_")
    if not key:
        return "field"
    if key[0].isdigit():
        return f"f_{key}"
    return key


def assign_unique_keys(labels: List[str]) -> List[str]:
    used: Set[str] = set()
    keys: List[str] = []
    for label in labels:
        base = to_field_key(label)
        key = base
        n = 2
        while key in used:
            key = f"{base}_{n}"
            n += 1
        used.add(key)
        keys.append(key)
    return keys


class LayoutClassifier:
    """Builds draft sheet definitions from learned layouts."""

    def __init__(self, render_settings: Optional[RenderSettings] = None):
        self.render_settings = render_settings or RenderSettings()

    def classify(self, layout: LearnedLayout, definition_id: Optional[str] = None) -> SheetDefinition:
        rows: Dict[int, List[LearnedCell]] = OrderedDict()
        for cell in sorted(layout.cells, key=lambda c: (c.row, c.col)):
            rows.setdefault(cell.row, []).append(cell)

        titles = {(cells[0].row, cells[0].col) for cells in rows.values() if self._is_section_title(cells)}
        bands = self._split_bands(rows, titles)

        regions, band_regions = self._build_regions(bands)
        fields = self._build_fields(layout, bands, band_regions, titles)

        definition = SheetDefinition(
            id=definition_id or str(uuid.uuid4()),
            client_key=f"{layout.sheet_name}-v1",
            source_kind="xlsx",
            regions=regions,
            fields=fields,
            render_hints=RenderHints(
                font=self.render_settings.default_font,
                base_line_height=self.render_settings.default_line_height,
                table_borders=[r.bbox for r in regions.subsheets],
                exact_placement=self.render_settings.default_exact_placement,
            ),
        )
        logger.info(
            f"Classified '{layout.sheet_name}': {len(fields)} fields, "
            f"{len(regions.subsheets)} subsheets"
        )
        return definition

    # ---------------------------
    # Bands and regions
    # ---------------------------

    @staticmethod
    def _is_section_title(row_cells: List[LearnedCell]) -> bool:
        if len(row_cells) != 1:
            return False
        cell = row_cells[0]
        return cell.is_label and cell.is_bold and not is_explicit_label(cell.text)

    @staticmethod
    def _split_bands(rows: Dict[int, List[LearnedCell]], titles: Set[Tuple[int, int]]) -> List[_Band]:
        bands: List[_Band] = []
        current: Optional[_Band] = None
        last_row: Optional[int] = None

        for r, cells in rows.items():
            is_title_row = (cells[0].row, cells[0].col) in titles
            gap = last_row is not None and r > last_row + 1
            if current is None or gap or is_title_row:
                current = _Band()
                bands.append(current)
            if is_title_row:
                current.title = cells[0]
            current.cells.extend(cells)
            last_row = max(c.merge_bottom for c in cells)

        return bands

    def _build_regions(self, bands: List[_Band]) -> Tuple[Regions, List[RegionDef]]:
        band_regions: List[RegionDef] = []

        for idx, band in enumerate(bands):
            if band.title is not None:
                name = clean_label(band.title.text)
            elif idx == 0:
                name = HEADER_REGION
            elif idx == 1:
                name = EQUIPMENT_REGION
            else:
                name = f"SUBSHEET {idx - 1}"

            grid = None
            if idx >= 2:
                left, top, right, bottom = band.bbox
                grid = RegionGrid(
                    rows=bottom - top + 1,
                    cols=right - left + 1,
                    cell_bboxes=[c.bbox for c in band.cells],
                )
            band_regions.append(RegionDef(name=name, bbox=band.bbox, grid=grid))

        header = band_regions[0] if band_regions else RegionDef(name=HEADER_REGION, bbox=[0, 0, 0, 0])
        if len(band_regions) > 1:
            equipment = band_regions[1]
        else:
            left, _, right, bottom = header.bbox
            below = bottom + 1 if band_regions else 1
            equipment = RegionDef(name=EQUIPMENT_REGION, bbox=[left, below, right, below])

        return Regions(header=header, equipment=equipment, subsheets=band_regions[2:]), band_regions

    # ---------------------------
    # Fields
    # ---------------------------

    def _build_fields(
        self,
        layout: LearnedLayout,
        bands: List[_Band],
        band_regions: List[RegionDef],
        titles: Set[Tuple[int, int]],
    ) -> List[FieldDef]:
        by_pos = {(c.row, c.col): c for c in layout.cells}
        drafts = []

        for idx, band in enumerate(bands):
            map_to = self._map_to(idx, band_regions[idx].name)
            for cell in band.cells:
                if not cell.is_label or (cell.row, cell.col) in titles:
                    continue
                label = clean_label(cell.text)
                if not label:
                    continue
                value_col = cell.merge_right + 1
                value_cell = self._value_cell(layout, by_pos, cell)
                sample = None
                if value_cell is not None:
                    sample = value_cell.text
                    if value_cell.row == cell.row:
                        value_col = value_cell.col
                drafts.append((label, [cell.col, cell.row, value_col, cell.row], sample, map_to))

        repeated = self._repeated_enums(drafts)
        keys = assign_unique_keys([d[0] for d in drafts])

        fields: List[FieldDef] = []
        for key, (label, bbox, sample, map_to) in zip(keys, drafts):
            field_type, options = infer_field_type(sample)
            if field_type == "string" and label.lower() in repeated:
                field_type, options = "enum", repeated[label.lower()]
            fields.append(
                FieldDef(
                    key=key,
                    label=label,
                    bbox=bbox,
                    type=field_type,
                    options=options,
                    map_to=map_to,
                )
            )
        return fields

    @staticmethod
    def _value_cell(
        layout: LearnedLayout,
        by_pos: Dict[Tuple[int, int], LearnedCell],
        label: LearnedCell,
    ) -> Optional[LearnedCell]:
        """The label's filled-in value: next cell right of it, else the cell below."""
        for col in range(label.merge_right + 1, layout.column_count):
            cell = by_pos.get((label.row, col))
            if cell is not None:
                return None if cell.is_label else cell
        below = by_pos.get((label.merge_bottom + 1, label.col))
        if below is not None and not below.is_label:
            return below
        return None

    @staticmethod
    def _repeated_enums(drafts) -> Dict[str, List[str]]:
        counts = Counter(label.lower() for label, _, _, _ in drafts)
        out: Dict[str, List[str]] = {}
        for norm, count in counts.items():
            if count < 2:
                continue
            samples = [sample for label, _, sample, _ in drafts if label.lower() == norm]
            options = infer_repeated_enum(samples)
            if options:
                out[norm] = options
        return out

    @staticmethod
    def _map_to(band_index: int, region_name: str) -> FieldMapTo:
        if band_index == 0:
            return FieldMapTo(bucket="sheet")
        if band_index == 1:
            return FieldMapTo(bucket="equipment")
        return FieldMapTo(bucket="subsheet", subsheet_name=region_name)
