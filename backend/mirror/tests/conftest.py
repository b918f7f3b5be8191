from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Any, Dict, Iterable, Tuple

import pytest
from openpyxl import Workbook
from openpyxl.styles import Font

from shared.config.settings import ApplicationSettings, StorageSettings


def build_workbook_bytes(
    cells: Dict[Tuple[int, int], Any],
    *,
    bold: Iterable[Tuple[int, int]] = (),
    merges: Iterable[str] = (),
    title: str = "Sheet1",
) -> bytes:
    """Workbook with 0-based (row, col) -> value cells."""
    wb = Workbook()
    ws = wb.active
    ws.title = title
    bold = set(bold)
    for (r, c), value in cells.items():
        cell = ws.cell(row=r + 1, column=c + 1, value=value)
        if (r, c) in bold:
            cell.font = Font(bold=True)
    for ref in merges:
        ws.merge_cells(ref)
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture
def workbook_bytes():
    return build_workbook_bytes


@pytest.fixture
def write_workbook(tmp_path: Path):
    def _write(cells: Dict[Tuple[int, int], Any], name: str = "upload.xlsx", **kwargs: Any) -> Path:
        path = tmp_path / name
        path.write_bytes(build_workbook_bytes(cells, **kwargs))
        return path

    return _write


@pytest.fixture
def mirror_settings(tmp_path: Path) -> ApplicationSettings:
    return ApplicationSettings(
        storage=StorageSettings(
            output_dir=str(tmp_path / "outputs"),
            upload_dir=str(tmp_path / "uploads"),
            definitions_db_path=str(tmp_path / "mirror.db"),
        )
    )
