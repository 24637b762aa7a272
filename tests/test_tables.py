"""
Tests for table extraction.
"""

import pytest

from dom2pptx.model import BorderEdge, Insets, LayoutFrame
from dom2pptx.tables import TableExtractor
from dom2pptx.text_runs import TextRunFlattener
from dom2pptx.units import px_to_in, px_to_pt


@pytest.fixture
def extractor():
    return TableExtractor(TextRunFlattener())


@pytest.fixture
def build_table(make_box):
    """A 2x2 table at y=100: first row painted, body painted, one border."""

    def factory(**table_style):
        first = make_box(
            "tr",
            0,
            100,
            400,
            30,
            children=[
                make_box("td", 0, 100, 150, 30, children=["A"], text_align="center", padding=Insets(8, 8, 8, 8)),
                make_box("td", 150, 100, 250, 30, children=["B"], vertical_align="middle"),
            ],
            background_color="#eeeeee",
            border_bottom=BorderEdge(1, "#000000", "solid"),
        )
        second = make_box(
            "tr",
            0,
            130,
            400,
            40,
            children=[
                make_box("td", 0, 130, 150, 40, children=["C"]),
                make_box("td", 150, 130, 250, 40, children=["D"], background_color="#ff0000"),
            ],
        )
        body = make_box("tbody", 0, 100, 400, 70, children=[first, second], background_color="#dddddd")
        return make_box("table", 0, 100, 400, 70, children=[body], **table_style)

    return factory


def frame_of(box):
    return LayoutFrame(
        px_to_in(box.rect.x), px_to_in(box.rect.y), px_to_in(box.rect.width), px_to_in(box.rect.height)
    )


class TestTableExtractor:
    def test_geometry_comes_from_rendered_boxes(self, extractor, build_table):
        table = build_table()
        primitive = extractor.extract(table, frame_of(table), set())

        assert primitive.col_widths == [pytest.approx(px_to_in(150)), pytest.approx(px_to_in(250))]
        assert primitive.row_heights == [pytest.approx(px_to_in(30)), pytest.approx(px_to_in(40))]
        assert primitive.frame.height == pytest.approx(px_to_in(70))
        assert [[c.runs[0].text for c in row] for row in primitive.rows] == [["A", "B"], ["C", "D"]]

    def test_whole_subtree_is_consumed(self, extractor, build_table):
        table = build_table()
        consumed = set()
        extractor.extract(table, frame_of(table), consumed)

        assert table in consumed
        assert all(node in consumed for node in table.descendants())

    def test_background_cascade(self, extractor, build_table):
        table = build_table()
        rows = extractor.extract(table, frame_of(table), set()).rows

        # Row paint, then row-group paint, with the cell's own paint first.
        assert rows[0][0].fill.color == "EEEEEE"
        assert rows[1][0].fill.color == "DDDDDD"
        assert rows[1][1].fill.color == "FF0000"

    def test_row_border_falls_back_to_cells(self, extractor, build_table):
        table = build_table()
        cell = extractor.extract(table, frame_of(table), set()).rows[0][0]

        bottom = cell.borders[2]
        assert bottom.color == "000000"
        assert bottom.width_pt == pytest.approx(px_to_pt(1))
        assert cell.borders[0] is None
        assert cell.borders[1] is None
        assert cell.borders[3] is None

    def test_cell_alignment_and_padding(self, extractor, build_table):
        table = build_table()
        rows = extractor.extract(table, frame_of(table), set()).rows

        assert rows[0][0].align == "center"
        assert rows[0][0].valign == "top"
        assert rows[0][1].valign == "middle"
        assert rows[0][0].padding == pytest.approx((px_to_in(8),) * 4)

    def test_hidden_rows_are_skipped(self, extractor, make_box):
        visible = make_box("tr", children=[make_box("td", children=["x"])])
        hidden = make_box("tr", children=[make_box("td", children=["y"])], display="none")
        table = make_box("table", children=[visible, hidden])

        primitive = extractor.extract(table, frame_of(table), set())
        assert len(primitive.rows) == 1

    def test_table_without_rows(self, extractor, make_box):
        table = make_box("table")
        assert extractor.extract(table, frame_of(table), set()) is None
