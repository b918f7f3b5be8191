from openpyxl import load_workbook

from shared.models.mirror_template import FieldDef, RegionDef, Regions, RenderHints, SheetDefinition

from mirror.services.workbook_renderer import (
    WorkbookRenderer,
    build_file_name,
    display_value,
    safe_sheet_name,
)


def _definition(fields, exact=True, regions=None, borders=None) -> SheetDefinition:
    return SheetDefinition(
        id="t1",
        client_key="Acme-v1",
        fields=fields,
        regions=regions or Regions(),
        render_hints=RenderHints(exact_placement=exact, table_borders=borders or []),
    )


CLIENT_NAME = FieldDef(key="client_name", label="Client Name", bbox=[0, 0, 1])


def _render(tmp_path, definition, values):
    path = WorkbookRenderer().render(definition, values, tmp_path / "out")
    return path, load_workbook(path).active


class TestExactPlacement:
    def test_label_and_value_land_on_their_cells(self, tmp_path):
        path, ws = _render(tmp_path, _definition([CLIENT_NAME]), {"client_name": "Globex"})

        assert ws["A1"].value == "Client Name:"
        assert ws["A1"].font.b
        assert ws["B1"].value == "Globex"
        assert not ws["B1"].font.b
        assert ws.title == "Acme-v1"
        assert path.suffix == ".xlsx"

    def test_first_write_wins_on_collisions(self, tmp_path):
        fields = [
            FieldDef(key="a", label="A", bbox=[0, 0, 1]),
            FieldDef(key="b", label="B", bbox=[1, 0, 2]),
        ]

        _, ws = _render(tmp_path, _definition(fields), {"a": "alpha", "b": "beta"})

        assert ws["A1"].value == "A:"
        assert ws["B1"].value == "alpha"
        assert ws["C1"].value == "beta"

    def test_region_names_only_fill_unclaimed_cells(self, tmp_path):
        regions = Regions(
            header=RegionDef(name="HEADER", bbox=[0, 0, 1, 0]),
            subsheets=[RegionDef(name="Parts", bbox=[0, 3, 1, 4])],
        )
        definition = _definition([CLIENT_NAME], regions=regions, borders=[[0, 3, 1, 4]])

        _, ws = _render(tmp_path, definition, {"client_name": "Globex"})

        assert ws["A1"].value == "Client Name:"
        assert ws["A4"].value == "Parts"
        assert ws["A4"].border.left.style == "thin"
        assert ws["A4"].border.top.style == "thin"
        assert ws["B5"].border.right.style == "thin"
        assert ws["B5"].border.bottom.style == "thin"

    def test_bool_and_missing_values(self, tmp_path):
        fields = [
            FieldDef(key="ok", label="OK", bbox=[0, 0, 1], type="bool"),
            FieldDef(key="bad", label="Bad", bbox=[0, 1, 1], type="bool"),
            FieldDef(key="note", label="Note", bbox=[0, 2, 1]),
        ]

        _, ws = _render(tmp_path, _definition(fields), {"ok": True, "bad": False})

        assert ws["B1"].value == "Yes"
        assert ws["B2"].value == "No"
        assert ws["A3"].value == "Note:"
        assert ws["B3"].value is None


class TestFallbackPlacement:
    def test_fields_listed_in_order_below_title(self, tmp_path):
        fields = [
            FieldDef(key="client_name", label="Client Name", bbox=[5, 9, 6]),
            FieldDef(key="qty", label="Qty", bbox=[0, 0, 1]),
        ]

        _, ws = _render(tmp_path, _definition(fields, exact=False), {"client_name": "Globex", "qty": 3})

        assert ws["A1"].value == "Acme-v1"
        assert ws["A3"].value == "Client Name:"
        assert ws["B3"].value == "Globex"
        assert ws["A4"].value == "Qty:"
        assert ws["B4"].value == 3
        assert ws["F10"].value is None


class TestOutputFiles:
    def test_content_hash_names(self):
        definition = _definition([CLIENT_NAME])

        first = build_file_name(definition, {"client_name": "Globex"})
        again = build_file_name(definition, {"client_name": "Globex"})
        other = build_file_name(definition, {"client_name": "Initech"})

        assert first == again
        assert first != other
        assert first.startswith("Acme-v1-t1-")
        assert first.endswith(".xlsx")

    def test_legacy_name(self):
        assert build_file_name(_definition([]), {}, naming="legacy") == "Acme-v1-t1.xlsx"

    def test_unsafe_characters_are_replaced(self):
        definition = SheetDefinition(id="../t1", client_key="Acme Co/v1")

        name = build_file_name(definition, {}, naming="legacy")

        assert "/" not in name
        assert name == "Acme_Co_v1-t1.xlsx"

    def test_no_temporary_files_left_behind(self, tmp_path):
        out = tmp_path / "out"

        path = WorkbookRenderer().render(_definition([CLIENT_NAME]), {}, out, file_name="fixed.xlsx")

        assert path == out / "fixed.xlsx"
        assert [p.name for p in out.iterdir()] == ["fixed.xlsx"]

    def test_render_overwrites_same_name(self, tmp_path):
        out = tmp_path / "out"
        renderer = WorkbookRenderer()
        renderer.render(_definition([CLIENT_NAME]), {"client_name": "Globex"}, out, file_name="x.xlsx")

        path = renderer.render(_definition([CLIENT_NAME]), {"client_name": "Initech"}, out, file_name="x.xlsx")

        assert load_workbook(path).active["B1"].value == "Initech"


def test_display_value():
    assert display_value(None) is None
    assert display_value(True) == "Yes"
    assert display_value(False) == "No"
    assert display_value(2.5) == 2.5


def test_safe_sheet_name():
    assert safe_sheet_name("Plant [A]: 1/2") == "Plant  A   1 2"
    assert safe_sheet_name("") == "Sheet1"
    assert len(safe_sheet_name("x" * 50)) == 31
