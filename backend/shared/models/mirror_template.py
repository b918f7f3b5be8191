"""
Mirror template models.

A learned layout is classified into a ``SheetDefinition`` (regions + fields +
fingerprint + render hints). Coordinates are 0-based; bounding boxes are
inclusive ``[left, top, right, bottom]``. Wire names are camelCase, Python
attribute names snake_case; both are accepted on input.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

FieldType = Literal["string", "number", "enum", "bool", "date"]
FieldBucket = Literal["sheet", "equipment", "subsheet", "templateField"]
FieldValue = Optional[Union[bool, int, float, str]]


def _check_box(value: List[int], *, sizes) -> List[int]:
    if len(value) not in sizes:
        raise ValueError(f"bbox must have {' or '.join(str(s) for s in sizes)} coordinates")
    if any(int(v) < 0 for v in value):
        raise ValueError("bbox coordinates must be non-negative")
    return [int(v) for v in value]


class _MirrorModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PageSize(_MirrorModel):
    w: int
    h: int


class Anchor(_MirrorModel):
    """Structurally significant cell (usually a bold section title)."""

    text: str
    bbox: List[int]

    @field_validator("bbox")
    @classmethod
    def _validate_bbox(cls, v: List[int]) -> List[int]:
        return _check_box(v, sizes=(4,))


class Fingerprint(_MirrorModel):
    """Structural signature of a layout, used to recognise repeat uploads."""

    page_size: PageSize = Field(..., alias="pageSize")
    anchors: List[Anchor] = Field(default_factory=list)
    grid_hash: str = Field(..., alias="gridHash")
    label_set: List[str] = Field(default_factory=list, alias="labelSet")


class RegionGrid(_MirrorModel):
    rows: int
    cols: int
    cell_bboxes: List[List[int]] = Field(default_factory=list, alias="cellBBoxes")


class RegionDef(_MirrorModel):
    """Named rectangular area; descriptive only."""

    name: str
    bbox: List[int]
    grid: Optional[RegionGrid] = None

    @field_validator("bbox")
    @classmethod
    def _validate_bbox(cls, v: List[int]) -> List[int]:
        return _check_box(v, sizes=(4,))


class Regions(_MirrorModel):
    header: Optional[RegionDef] = None
    equipment: Optional[RegionDef] = None
    subsheets: List[RegionDef] = Field(default_factory=list)


class FieldMapTo(_MirrorModel):
    bucket: FieldBucket = "templateField"
    subsheet_name: Optional[str] = Field(default=None, alias="subsheetName")
    info_template_id: Optional[str] = Field(default=None, alias="infoTemplateId")


class FieldDef(_MirrorModel):
    """
    One label/value pair.

    ``bbox`` is ``[colLabel, row, colValue, rowValue]``. A three-element box is
    accepted and padded with ``rowValue = row``; rendering only reads the first
    three coordinates.
    """

    key: str = Field(..., min_length=1)
    label: str
    bbox: List[int]
    type: FieldType = "string"
    options: Optional[List[str]] = None
    map_to: FieldMapTo = Field(default_factory=FieldMapTo, alias="mapTo")

    @field_validator("bbox")
    @classmethod
    def _validate_bbox(cls, v: List[int]) -> List[int]:
        box = _check_box(v, sizes=(3, 4))
        if len(box) == 3:
            box.append(box[1])
        return box

    @property
    def row(self) -> int:
        return self.bbox[1]

    @property
    def label_col(self) -> int:
        return self.bbox[0]

    @property
    def value_col(self) -> int:
        return self.bbox[2]


class RenderHints(_MirrorModel):
    font: str = "Calibri"
    base_line_height: int = Field(default=14, alias="baseLineHeight")
    table_borders: List[List[int]] = Field(default_factory=list, alias="tableBorders")
    exact_placement: bool = Field(default=True, alias="exactPlacement")

    @field_validator("table_borders")
    @classmethod
    def _validate_borders(cls, v: List[List[int]]) -> List[List[int]]:
        return [_check_box(box, sizes=(4,)) for box in v]


class SheetDefinition(_MirrorModel):
    """Draft or confirmed schema of one spreadsheet layout."""

    id: str = Field(..., min_length=1)
    client_key: str = Field(..., alias="clientKey")
    source_kind: str = Field(default="xlsx", alias="sourceKind")
    fingerprint: Optional[Fingerprint] = None
    regions: Regions = Field(default_factory=Regions)
    fields: List[FieldDef] = Field(default_factory=list)
    render_hints: RenderHints = Field(default_factory=RenderHints, alias="renderHints")

    def to_wire(self) -> Dict:
        return self.model_dump(by_alias=True, mode="json")


class LearnedCell(_MirrorModel):
    text: str
    row: int
    col: int
    is_label: bool = Field(default=False, alias="isLabel")
    is_bold: bool = Field(default=False, alias="isBold")
    merge_right: int = Field(..., alias="mergeRight")
    merge_bottom: int = Field(..., alias="mergeBottom")

    @property
    def bbox(self) -> List[int]:
        return [self.col, self.row, self.merge_right, self.merge_bottom]


class LearnedLayout(_MirrorModel):
    """Flat, position-annotated description of one worksheet."""

    sheet_name: str = Field(..., alias="sheetName")
    page_size: PageSize = Field(..., alias="pageSize")
    row_count: int = Field(..., alias="rowCount")
    column_count: int = Field(..., alias="columnCount")
    cells: List[LearnedCell] = Field(default_factory=list)
    merged_cells: List[List[int]] = Field(default_factory=list, alias="mergedCells")
    detected_labels: List[str] = Field(default_factory=list, alias="detectedLabels")

    @property
    def label_cells(self) -> List[LearnedCell]:
        return [c for c in self.cells if c.is_label]


class TemplateMatch(_MirrorModel):
    id: str
    client_key: str = Field(..., alias="clientKey")
    score: float
    exact: bool = False


class LearnResult(_MirrorModel):
    draft_schema: SheetDefinition = Field(..., alias="draftSchema")
    detected_labels: List[str] = Field(default_factory=list, alias="detectedLabels")
    matches: List[TemplateMatch] = Field(default_factory=list)


class ConfirmResult(_MirrorModel):
    ok: bool = True
    id: str


class ApplyRequest(_MirrorModel):
    id: str = Field(..., min_length=1)
    values: Dict[str, FieldValue] = Field(default_factory=dict)


class ApplyResult(_MirrorModel):
    ok: bool = True
    file_name: str = Field(..., alias="fileName")
    download_path: str = Field(..., alias="downloadPath")
    warnings: List[str] = Field(default_factory=list)
