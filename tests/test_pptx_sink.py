"""
Tests for the python-pptx drawing sink and the end-to-end conversion.
"""

import io

import pytest
from PIL import Image
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_SHAPE_TYPE
from pptx.oxml.ns import qn
from pptx.shapes.connector import Connector

from dom2pptx import convert
from dom2pptx.model import (
    SHAPE_LINE,
    SHAPE_RECT,
    SHAPE_ROUND_RECT,
    Fill,
    ImagePrimitive,
    LayoutFrame,
    Line,
    Shadow,
    ShapePrimitive,
    SlideBackground,
    TableCell,
    TablePrimitive,
    TextBlock,
    TextRun,
)
from dom2pptx.sink import PptxSink
from dom2pptx.units import ResolvedColor

FRAME = LayoutFrame(1.0, 1.0, 2.0, 1.0)


def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), "red").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def sink():
    sink = PptxSink()
    sink.begin_slide()
    return sink


def last_shape(sink):
    return list(sink.slide.shapes)[-1]


class TestPptxSinkShapes:
    def test_slide_size(self, sink):
        assert sink.prs.slide_width == 9144000
        assert sink.prs.slide_height == 5143500

    def test_filled_shape_with_alpha_line_and_shadow(self, sink):
        sink.draw(
            ShapePrimitive(
                SHAPE_RECT,
                FRAME,
                Fill("FF0000", 50),
                line=Line("000000", 1.5, "dash"),
                shadow=Shadow(6.0, 2.0, 45.0, 0.2),
            )
        )
        shape = last_shape(sink)
        xml = shape._element.xml

        assert shape.fill.fore_color.rgb == RGBColor(0xFF, 0x00, 0x00)
        assert 'val="50000"' in xml
        assert "outerShdw" in xml
        assert shape.line.width.pt == pytest.approx(1.5)

    def test_unfilled_shape_has_no_fill_and_no_shadow(self, sink):
        sink.draw(ShapePrimitive(SHAPE_RECT, FRAME, None, line=Line("333333", 1.0)))
        spPr = last_shape(sink)._element.spPr

        assert spPr.find(qn("a:noFill")) is not None
        assert spPr.find(qn("a:effectLst")) is not None
        assert "outerShdw" not in last_shape(sink)._element.xml

    def test_rounded_rectangle(self, sink):
        sink.draw(ShapePrimitive(SHAPE_ROUND_RECT, FRAME, Fill("FFFFFF"), corner_radius=0.2))
        assert last_shape(sink).adjustments[0] == pytest.approx(0.1)

    def test_line_becomes_connector(self, sink):
        sink.draw(ShapePrimitive(SHAPE_LINE, LayoutFrame(1.0, 2.0, 3.0, 0.0), line=Line("999999", 1.0)))
        assert isinstance(last_shape(sink), Connector)

    def test_image(self, sink):
        sink.draw(ImagePrimitive(FRAME, png_bytes()))
        assert last_shape(sink).shape_type == MSO_SHAPE_TYPE.PICTURE

    def test_unsupported_primitive(self, sink):
        with pytest.raises(TypeError):
            sink.draw("not a primitive")


class TestPptxSinkText:
    def test_runs_and_line_breaks(self, sink):
        runs = [
            TextRun("Hello ", color="111111", font_size_pt=12, bold=True, font_face="Arial"),
            TextRun.line_break(),
            TextRun("world", color="222222", font_size_pt=12, letter_spacing_pt=1.5, highlight="FFFF00"),
        ]
        sink.draw(TextBlock(FRAME, runs, align="center", valign="middle", inset=0.1))
        shape = last_shape(sink)
        paragraph = shape.text_frame.paragraphs[0]

        assert len(shape.text_frame.paragraphs) == 1
        assert [r.text for r in paragraph.runs] == ["Hello ", "world"]
        assert paragraph.runs[0].font.bold
        assert paragraph.runs[1]._r.rPr.get("spc") == "150"
        assert paragraph.runs[1]._r.rPr.find(qn("a:highlight")) is not None

    def test_underline_color_precedes_font(self, sink):
        run = TextRun("u", color="000000", font_face="Arial", underline=True, underline_color="FF0000")
        sink.draw(TextBlock(FRAME, [run]))
        rPr = last_shape(sink).text_frame.paragraphs[0].runs[0]._r.rPr
        children = [child.tag for child in rPr]

        assert children.index(qn("a:uFill")) < children.index(qn("a:latin"))

    def test_transparent_text(self, sink):
        sink.draw(TextBlock(FRAME, [TextRun("t", color="000000", transparency=40)]))
        assert 'val="60000"' in last_shape(sink)._element.xml


class TestPptxSinkTables:
    def test_table_cells_and_borders(self, sink):
        rows = [
            [
                TableCell([TextRun("A")], Fill("EEEEEE"), [None, None, Line("000000", 0.75), None]),
                TableCell([TextRun("B")]),
            ],
            [TableCell([TextRun("C")]), TableCell([TextRun("D")], align="right", valign="bottom")],
        ]
        sink.draw(TablePrimitive(LayoutFrame(0.5, 0.5, 4.0, 1.0), [1.5, 2.5], [0.5, 0.5], rows))
        shape = last_shape(sink)
        table = shape.table

        assert shape.has_table
        assert table.cell(0, 0).text == "A"
        assert table.cell(1, 1).text == "D"
        assert table.columns[0].width == 1371600

        tcPr = table.cell(0, 0)._tc.tcPr
        assert tcPr.find(qn("a:lnB")).find(qn("a:solidFill")) is not None
        assert tcPr.find(qn("a:lnT")).find(qn("a:noFill")) is not None
        assert shape._element.find(".//" + qn("a:tableStyleId")) is None


class TestPptxSinkSlides:
    def test_background_and_notes(self):
        sink = PptxSink()
        sink.begin_slide(SlideBackground(color=ResolvedColor("102030")), "Speaker notes")
        slide = sink.slide

        assert slide.background.fill.fore_color.rgb == RGBColor.from_string("102030")
        assert slide.notes_slide.notes_text_frame.text == "Speaker notes"

    def test_background_image(self):
        sink = PptxSink()
        sink.begin_slide(SlideBackground(image=png_bytes()))
        assert list(sink.slide.shapes)[0].shape_type == MSO_SHAPE_TYPE.PICTURE

    def test_save_and_reopen(self, sink, temp_dir):
        sink.draw(ShapePrimitive(SHAPE_RECT, FRAME, Fill("00FF00")))
        sink.begin_slide()
        path = temp_dir / "out.pptx"
        sink.save(path)

        assert len(Presentation(str(path)).slides) == 2


class TestConvert:
    def test_html_snapshot_to_pptx(self, temp_dir):
        snapshot = temp_dir / "slide.html"
        snapshot.write_text(
            """
            <div data-rect="0 0 960 540" style="background-color: rgb(250, 250, 250)">
              <div data-rect="40 40 300 100" style="background-color: rgb(255, 255, 255);
                   border-left: 4px solid rgb(37, 99, 235); border-radius: 8px">
                <h2 data-rect="56 56 268 32" style="font-size: 24px; font-weight: 700; font-family: Inter">Quarterly update</h2>
              </div>
              <table data-rect="40 200 400 60" style="box-shadow: rgba(0, 0, 0, 0.1) 0px 4px 6px">
                <tr data-rect="40 200 400 30"><td data-rect="40 200 200 30">Region</td><td data-rect="240 200 200 30">Sales</td></tr>
                <tr data-rect="40 230 400 30"><td data-rect="40 230 200 30">EMEA</td><td data-rect="240 230 200 30">42</td></tr>
              </table>
            </div>
            """,
            encoding="utf-8",
        )
        output = temp_dir / "slide.pptx"
        result = convert(snapshot, output, notes="Talk track")

        assert output.exists()
        assert result.slide_count == 1
        prs = Presentation(str(output))
        slide = prs.slides[0]
        assert any(shape.has_table for shape in slide.shapes if shape.shape_type == MSO_SHAPE_TYPE.TABLE)
        texts = [shape.text_frame.text for shape in slide.shapes if shape.has_text_frame]
        assert "Quarterly update" in texts
        assert slide.notes_slide.notes_text_frame.text == "Talk track"
