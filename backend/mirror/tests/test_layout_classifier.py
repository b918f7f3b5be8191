from shared.config.settings import RenderSettings
from shared.models.sheet_grid import STYLE_BOLD, SheetGrid

from mirror.services.layout_classifier import (
    EQUIPMENT_REGION,
    HEADER_REGION,
    LayoutClassifier,
    assign_unique_keys,
    to_field_key,
)
from mirror.services.layout_learner import LayoutLearner


def _classify(cells, bold=(), definition_id="draft-1", render_settings=None):
    rows = max(r for r, _ in cells) + 1
    cols = max(c for _, c in cells) + 1
    grid = [["" for _ in range(cols)] for _ in range(rows)]
    styles = [[0 for _ in range(cols)] for _ in range(rows)]
    for (r, c), text in cells.items():
        grid[r][c] = text
    for r, c in bold:
        styles[r][c] = STYLE_BOLD
    layout = LayoutLearner().learn_grid(
        SheetGrid(source="excel", sheet_name="Sheet1", grid=grid, style_hints=styles)
    )
    return LayoutClassifier(render_settings).classify(layout, definition_id=definition_id)


INSPECTION_FORM = {
    (0, 0): "Client:", (0, 1): "Acme",
    (1, 0): "Date:", (1, 1): "2024-01-05",
    (3, 0): "Model:", (3, 1): "X100",
    (4, 0): "Voltage:", (4, 1): "220 V",
    (6, 0): "Parts",
    (7, 0): "Part:", (7, 1): "Bolt",
    (8, 0): "Part:", (8, 1): "Nut",
    (9, 0): "Part:", (9, 1): "Bolt",
}


class TestFieldKeys:
    def test_to_field_key(self):
        assert to_field_key("Client Name") == "client_name"
        assert to_field_key("  Serial No. ") == "serial_no"
        assert to_field_key("1st Inspection") == "f_1st_inspection"
        assert to_field_key("!!!") == "field"

    def test_collisions_get_numeric_suffixes(self):
        assert assign_unique_keys(["Name", "name", "Name", "Site"]) == ["name", "name_2", "name_3", "site"]


class TestLayoutClassifier:
    def test_single_label_value_pair(self):
        definition = _classify({(0, 0): "Client Name", (0, 1): "Acme"})

        assert len(definition.fields) == 1
        field = definition.fields[0]
        assert field.key == "client_name"
        assert field.label == "Client Name"
        assert field.bbox[:3] == [0, 0, 1]
        assert field.type == "string"
        assert field.map_to.bucket == "sheet"

    def test_draft_defaults(self):
        definition = _classify({(0, 0): "Client Name", (0, 1): "Acme"})

        assert definition.id == "draft-1"
        assert definition.client_key == "Sheet1-v1"
        assert definition.source_kind == "xlsx"
        assert definition.fingerprint is None
        assert definition.render_hints.font == "Calibri"
        assert definition.render_hints.exact_placement is True

    def test_generated_id_when_none_given(self):
        layout = LayoutLearner().learn_grid(SheetGrid(grid=[["Client:", "Acme"]]))

        first = LayoutClassifier().classify(layout)
        second = LayoutClassifier().classify(layout)

        assert first.id and second.id and first.id != second.id

    def test_bands_become_header_equipment_and_subsheets(self):
        definition = _classify(INSPECTION_FORM, bold=[(6, 0)])
        regions = definition.regions

        assert regions.header.name == HEADER_REGION
        assert regions.header.bbox == [0, 0, 1, 1]
        assert regions.equipment.name == EQUIPMENT_REGION
        assert regions.equipment.bbox == [0, 3, 1, 4]
        assert [s.name for s in regions.subsheets] == ["Parts"]

        parts = regions.subsheets[0]
        assert parts.bbox == [0, 6, 1, 9]
        assert parts.grid.rows == 4
        assert parts.grid.cols == 2
        assert definition.render_hints.table_borders == [[0, 6, 1, 9]]

    def test_fields_types_and_buckets(self):
        definition = _classify(INSPECTION_FORM, bold=[(6, 0)])
        by_key = {f.key: f for f in definition.fields}

        assert list(by_key) == ["client", "date", "model", "voltage", "part", "part_2", "part_3"]
        assert by_key["date"].type == "date"
        assert by_key["model"].type == "string"
        assert by_key["voltage"].type == "number"
        assert by_key["client"].map_to.bucket == "sheet"
        assert by_key["model"].map_to.bucket == "equipment"
        assert by_key["part"].map_to.bucket == "subsheet"
        assert by_key["part"].map_to.subsheet_name == "Parts"

    def test_section_title_is_not_a_field(self):
        definition = _classify(INSPECTION_FORM, bold=[(6, 0)])

        assert "parts" not in {f.key for f in definition.fields}

    def test_repeated_labels_with_small_value_set_become_enum(self):
        definition = _classify(INSPECTION_FORM, bold=[(6, 0)])
        parts = [f for f in definition.fields if f.label == "Part"]

        assert {f.type for f in parts} == {"enum"}
        assert parts[0].options == ["Bolt", "Nut"]

    def test_inline_choice_list_becomes_enum(self):
        definition = _classify({(0, 0): "Power:", (0, 1): "AC/DC"})

        assert definition.fields[0].type == "enum"
        assert definition.fields[0].options == ["AC", "DC"]

    def test_label_without_value_has_no_sample(self):
        definition = _classify({(0, 0): "Remarks:", (0, 2): "Site:"})

        assert [f.bbox[:3] for f in definition.fields] == [[0, 0, 1], [2, 0, 3]]
        assert {f.type for f in definition.fields} == {"string"}

    def test_spaced_value_sets_value_column_and_sample(self):
        definition = _classify({(0, 0): "Qty:", (0, 2): "12"})

        assert [f.bbox[:3] for f in definition.fields] == [[0, 0, 2]]
        assert definition.fields[0].type == "number"

    def test_value_below_label_supplies_sample(self):
        definition = _classify({(0, 0): "Inspected on:", (1, 0): "2024-01-05"})

        field = definition.fields[0]
        assert field.bbox[:3] == [0, 0, 1]
        assert field.type == "date"

    def test_filled_table_rows_are_not_fields(self):
        definition = _classify(
            {(0, 0): "Tag", (0, 1): "Service", (1, 0): "P-101", (1, 1): "Cooling Water"}
        )

        assert [f.label for f in definition.fields] == ["Tag", "Service"]

    def test_equipment_fallback_below_header(self):
        definition = _classify({(0, 0): "Client:", (0, 1): "Acme"})

        assert definition.regions.header.bbox == [0, 0, 1, 0]
        assert definition.regions.equipment.bbox == [0, 1, 1, 1]
        assert definition.regions.subsheets == []

    def test_empty_layout(self):
        layout = LayoutLearner().learn_grid(SheetGrid(grid=[]))

        definition = LayoutClassifier().classify(layout, definition_id="empty")

        assert definition.fields == []
        assert definition.regions.header.bbox == [0, 0, 0, 0]
        assert definition.regions.equipment.bbox == [0, 1, 0, 1]

    def test_same_row_duplicates_are_kept_for_review(self):
        definition = _classify({(0, 0): "Name:", (0, 2): "name:"})

        assert [f.key for f in definition.fields] == ["name", "name_2"]

    def test_render_settings_feed_hints(self):
        definition = _classify(
            {(0, 0): "Client:"},
            render_settings=RenderSettings(default_font="Arial", default_line_height=18),
        )

        assert definition.render_hints.font == "Arial"
        assert definition.render_hints.base_line_height == 18
