"""Drawing sinks: where emitted primitives end up."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from lxml import etree
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.dml import MSO_LINE_DASH_STYLE
from pptx.enum.shapes import MSO_CONNECTOR, MSO_SHAPE
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.oxml.ns import qn
from pptx.oxml.xmlchemy import OxmlElement
from pptx.util import Emu, Inches, Pt

from .config import EMU_PER_INCH, SLIDE_HEIGHT_IN, SLIDE_WIDTH_IN
from .model import (
    SHAPE_ELLIPSE,
    SHAPE_LINE,
    SHAPE_RECT,
    SHAPE_ROUND_RECT,
    SHAPE_TOP_ROUND_RECT,
    Fill,
    ImagePrimitive,
    LayoutFrame,
    Line,
    Primitive,
    Shadow,
    ShapePrimitive,
    SlideBackground,
    TableCell,
    TablePrimitive,
    TextBlock,
    TextRun,
)

logger = logging.getLogger(__name__)

A_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"

AUTO_SHAPES = {
    SHAPE_RECT: MSO_SHAPE.RECTANGLE,
    SHAPE_ROUND_RECT: MSO_SHAPE.ROUNDED_RECTANGLE,
    SHAPE_TOP_ROUND_RECT: MSO_SHAPE.ROUND_2_SAME_RECTANGLE,
    SHAPE_ELLIPSE: MSO_SHAPE.OVAL,
}
DASHES = {"dash": MSO_LINE_DASH_STYLE.DASH, "dot": MSO_LINE_DASH_STYLE.ROUND_DOT}
ALIGNMENTS = {
    "left": PP_ALIGN.LEFT,
    "center": PP_ALIGN.CENTER,
    "right": PP_ALIGN.RIGHT,
    "justify": PP_ALIGN.JUSTIFY,
}
ANCHORS = {"top": MSO_ANCHOR.TOP, "middle": MSO_ANCHOR.MIDDLE, "bottom": MSO_ANCHOR.BOTTOM}
CELL_EDGES = ("a:lnT", "a:lnR", "a:lnB", "a:lnL")
# Schema order of the edge elements inside a:tcPr.
CELL_EDGE_ORDER = ("a:lnL", "a:lnR", "a:lnT", "a:lnB")


class DrawingSink:
    """Receives slides and primitives in emission order."""

    def begin_slide(self, background: Optional[SlideBackground] = None, notes: Optional[str] = None):
        raise NotImplementedError

    def draw(self, primitive: Primitive):
        raise NotImplementedError

    def close(self):
        pass


@dataclass
class RecordedSlide:
    background: Optional[SlideBackground] = None
    notes: Optional[str] = None
    primitives: List[Primitive] = field(default_factory=list)


class RecordingSink(DrawingSink):
    """Keeps everything in memory. Useful for inspection and tests."""

    def __init__(self):
        self.slides: List[RecordedSlide] = []
        self.closed = False

    def begin_slide(self, background: Optional[SlideBackground] = None, notes: Optional[str] = None):
        self.slides.append(RecordedSlide(background, notes))

    def draw(self, primitive: Primitive):
        if not self.slides:
            self.begin_slide()
        self.slides[-1].primitives.append(primitive)

    def close(self):
        self.closed = True

    @property
    def primitives(self) -> List[Primitive]:
        return [p for slide in self.slides for p in slide.primitives]


class PptxSink(DrawingSink):
    """Writes primitives as native, editable python-pptx objects."""

    def __init__(self):
        self.prs = Presentation()
        self.prs.slide_width = Inches(SLIDE_WIDTH_IN)
        self.prs.slide_height = Inches(SLIDE_HEIGHT_IN)
        self.blank = self.prs.slide_layouts[6]
        self.slide = None

    def begin_slide(self, background: Optional[SlideBackground] = None, notes: Optional[str] = None):
        self.slide = self.prs.slides.add_slide(self.blank)
        if background is not None:
            if background.image:
                self.slide.shapes.add_picture(
                    io.BytesIO(background.image), 0, 0, self.prs.slide_width, self.prs.slide_height
                )
            elif background.color is not None:
                fill = self.slide.background.fill
                fill.solid()
                fill.fore_color.rgb = RGBColor.from_string(background.color.hex)
        if notes:
            self.slide.notes_slide.notes_text_frame.text = notes

    def draw(self, primitive: Primitive):
        if self.slide is None:
            self.begin_slide()
        if isinstance(primitive, ShapePrimitive):
            self._render_shape(primitive)
        elif isinstance(primitive, TextBlock):
            self._render_text(primitive)
        elif isinstance(primitive, ImagePrimitive):
            self._render_image(primitive)
        elif isinstance(primitive, TablePrimitive):
            self._render_table(primitive)
        else:
            raise TypeError(f"Unsupported primitive: {type(primitive).__name__}")

    def save(self, output: Union[str, Path]):
        self.prs.save(str(output))
        logger.info(f"Saved {len(self.prs.slides)} slide(s) to {output}")

    # ------------------------------------------------------------------ #

    def _geometry(self, frame: LayoutFrame):
        return Inches(frame.left), Inches(frame.top), Inches(frame.width), Inches(frame.height)

    def _render_shape(self, primitive: ShapePrimitive):
        if primitive.kind == SHAPE_LINE:
            self._render_line(primitive)
            return
        left, top, width, height = self._geometry(primitive.frame)
        shape = self.slide.shapes.add_shape(AUTO_SHAPES.get(primitive.kind, MSO_SHAPE.RECTANGLE), left, top, width, height)
        if primitive.corner_radius and len(shape.adjustments):
            # Adjustment 0.5 rounds half of the shorter side.
            shape.adjustments[0] = primitive.corner_radius * 0.5
        if primitive.rotation:
            shape.rotation = primitive.rotation

        self._apply_fill(shape, primitive.fill)
        self._apply_line(shape, primitive.line)
        if primitive.shadow is not None:
            self._apply_shadow(shape, primitive.shadow)
        else:
            shape.shadow.inherit = False

    def _render_line(self, primitive: ShapePrimitive):
        frame = primitive.frame
        begin_x, begin_y = Inches(frame.left), Inches(frame.top)
        end_x, end_y = Inches(frame.left + frame.width), Inches(frame.top + frame.height)
        connector = self.slide.shapes.add_connector(MSO_CONNECTOR.STRAIGHT, begin_x, begin_y, end_x, end_y)
        if primitive.line is not None:
            connector.line.color.rgb = RGBColor.from_string(primitive.line.color)
            connector.line.width = Pt(primitive.line.width_pt)

    def _apply_fill(self, shape, fill: Optional[Fill]):
        if fill is None:
            shape.fill.background()
            return
        shape.fill.solid()
        shape.fill.fore_color.rgb = RGBColor.from_string(fill.color)
        if fill.transparency:
            solid = shape._element.spPr.find(qn("a:solidFill"))
            self._set_alpha(solid, fill.transparency)

    def _apply_line(self, shape, line: Optional[Line]):
        if line is None:
            shape.line.fill.background()
            return
        shape.line.color.rgb = RGBColor.from_string(line.color)
        shape.line.width = Pt(line.width_pt)
        if line.dash in DASHES:
            shape.line.dash_style = DASHES[line.dash]

    def _apply_shadow(self, shape, shadow: Shadow):
        spPr = shape._element.spPr
        for old in spPr.findall(qn("a:effectLst")):
            spPr.remove(old)
        blur = int(Pt(shadow.blur_pt))
        dist = int(Pt(shadow.offset_pt))
        direction = int(shadow.angle * 60000)
        alpha = int(round(shadow.opacity * 100000))
        effect = etree.fromstring(
            f'<a:effectLst xmlns:a="{A_NS}">'
            f'<a:outerShdw blurRad="{blur}" dist="{dist}" dir="{direction}" algn="ctr" rotWithShape="0">'
            f'<a:srgbClr val="{shadow.color}"><a:alpha val="{alpha}"/></a:srgbClr>'
            f"</a:outerShdw></a:effectLst>"
        )
        ln = spPr.find(qn("a:ln"))
        if ln is not None:
            ln.addnext(effect)
        else:
            spPr.append(effect)

    def _set_alpha(self, solid_fill, transparency: int):
        if solid_fill is None:
            return
        srgb = solid_fill.find(qn("a:srgbClr"))
        if srgb is None:
            return
        for old in srgb.findall(qn("a:alpha")):
            srgb.remove(old)
        alpha = OxmlElement("a:alpha")
        alpha.set("val", str((100 - transparency) * 1000))
        srgb.append(alpha)

    # ------------------------------------------------------------------ #
    # Text
    # ------------------------------------------------------------------ #

    def _render_text(self, block: TextBlock):
        left, top, width, height = self._geometry(block.frame)
        shape = self.slide.shapes.add_textbox(left, top, width, height)
        tf = shape.text_frame
        tf.clear()
        tf.word_wrap = True
        inset = Inches(block.inset)
        tf.margin_left = tf.margin_right = tf.margin_top = tf.margin_bottom = inset
        tf.vertical_anchor = ANCHORS.get(block.valign, MSO_ANCHOR.TOP)

        paragraph = tf.paragraphs[0]
        paragraph.alignment = ALIGNMENTS.get(block.align, PP_ALIGN.LEFT)
        if block.line_spacing_pt:
            paragraph.line_spacing = Pt(block.line_spacing_pt)
        self._write_runs(paragraph, block.runs)

    def _write_runs(self, paragraph, runs: List[TextRun]):
        for data in runs:
            if data.break_line:
                paragraph.add_line_break()
                continue
            run = paragraph.add_run()
            run.text = data.text
            self._apply_run_style(run, data)

    def _apply_run_style(self, run, data: TextRun):
        font = run.font
        if data.font_size_pt:
            font.size = Pt(data.font_size_pt)
        font.bold = data.bold
        font.italic = data.italic
        if data.font_face:
            font.name = data.font_face
        if data.color:
            font.color.rgb = RGBColor.from_string(data.color)
        if data.underline:
            font.underline = True

        rPr = run._r.get_or_add_rPr()
        if data.transparency and data.color:
            self._set_alpha(rPr.find(qn("a:solidFill")), data.transparency)
        if data.letter_spacing_pt:
            rPr.set("spc", str(int(round(data.letter_spacing_pt * 100))))
        if data.highlight:
            self._insert_before_font(rPr, self._color_element("a:highlight", data.highlight))
        if data.underline and data.underline_color:
            self._insert_before_font(rPr, self._color_element("a:uFill", data.underline_color, solid=True))

    def _color_element(self, tag: str, hex_color: str, solid: bool = False):
        element = OxmlElement(tag)
        parent = element
        if solid:
            parent = OxmlElement("a:solidFill")
            element.append(parent)
        srgb = OxmlElement("a:srgbClr")
        srgb.set("val", hex_color)
        parent.append(srgb)
        return element

    def _insert_before_font(self, rPr, element):
        for tag in ("a:latin", "a:ea", "a:cs", "a:sym", "a:hlinkClick"):
            anchor = rPr.find(qn(tag))
            if anchor is not None:
                anchor.addprevious(element)
                return
        rPr.append(element)

    # ------------------------------------------------------------------ #
    # Images and tables
    # ------------------------------------------------------------------ #

    def _render_image(self, primitive: ImagePrimitive):
        left, top, width, height = self._geometry(primitive.frame)
        self.slide.shapes.add_picture(io.BytesIO(primitive.data), left, top, width=width, height=height)

    def _render_table(self, primitive: TablePrimitive):
        rows = len(primitive.rows)
        cols = max(len(r) for r in primitive.rows)
        left, top, width, height = self._geometry(primitive.frame)
        shape = self.slide.shapes.add_table(rows, cols, left, top, width, height)
        self._clear_table_style(shape)
        table = shape.table
        for c, col_width in enumerate(primitive.col_widths[:cols]):
            table.columns[c].width = Emu(int(col_width * EMU_PER_INCH))
        for r, row_height in enumerate(primitive.row_heights[:rows]):
            table.rows[r].height = Emu(int(row_height * EMU_PER_INCH))
        for r, row in enumerate(primitive.rows):
            for c, data in enumerate(row):
                self._render_cell(table.cell(r, c), data)

    def _clear_table_style(self, shape):
        tbl = shape._element.find(".//" + qn("a:tbl"))
        tblPr = tbl.find(qn("a:tblPr")) if tbl is not None else None
        if tblPr is None:
            return
        for flag in ("bandRow", "bandCol", "firstRow", "lastRow", "firstCol", "lastCol"):
            tblPr.set(flag, "0")
        for tag in ("a:tblStyle", "a:tableStyleId"):
            for child in tblPr.findall(qn(tag)):
                tblPr.remove(child)

    def _render_cell(self, cell, data: TableCell):
        if data.fill is not None:
            cell.fill.solid()
            cell.fill.fore_color.rgb = RGBColor.from_string(data.fill.color)
            if data.fill.transparency:
                self._set_alpha(cell._tc.get_or_add_tcPr().find(qn("a:solidFill")), data.fill.transparency)
        else:
            cell.fill.background()

        top, right, bottom, left = data.padding
        cell.margin_top = Inches(top)
        cell.margin_right = Inches(right)
        cell.margin_bottom = Inches(bottom)
        cell.margin_left = Inches(left)
        cell.vertical_anchor = ANCHORS.get(data.valign, MSO_ANCHOR.TOP)

        tf = cell.text_frame
        tf.clear()
        tf.word_wrap = True
        paragraph = tf.paragraphs[0]
        paragraph.alignment = ALIGNMENTS.get(data.align, PP_ALIGN.LEFT)
        self._write_runs(paragraph, data.runs)
        self._apply_cell_borders(cell, data.borders)

    def _apply_cell_borders(self, cell, borders: List[Optional[Line]]):
        tcPr = cell._tc.get_or_add_tcPr()
        edges = dict(zip(CELL_EDGES, borders))
        for tag in CELL_EDGE_ORDER:
            for old in tcPr.findall(qn(tag)):
                tcPr.remove(old)
        for index, tag in enumerate(CELL_EDGE_ORDER):
            tcPr.insert(index, self._cell_edge(tag, edges.get(tag)))

    def _cell_edge(self, tag: str, line: Optional[Line]):
        ln = OxmlElement(tag)
        if line is None:
            ln.append(OxmlElement("a:noFill"))
            return ln
        ln.set("w", str(int(Pt(line.width_pt))))
        solid = OxmlElement("a:solidFill")
        srgb = OxmlElement("a:srgbClr")
        srgb.set("val", line.color)
        solid.append(srgb)
        ln.append(solid)
        return ln
