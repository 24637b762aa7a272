"""
Tests for the tree walker and emission order.
"""

import asyncio

import pytest

from dom2pptx.config import ExportOptions
from dom2pptx.exceptions import (
    OVERFLOWING_TABLE,
    RASTERIZATION_FAILURE,
    InputMissingError,
    RasterizationError,
)
from dom2pptx.model import (
    BorderEdge,
    BoxShadow,
    Gradient,
    GradientStop,
    ImagePrimitive,
    Insets,
    ShapePrimitive,
    TablePrimitive,
    TextBlock,
)
from dom2pptx.rasterizer import Rasterizer
from dom2pptx.sink import RecordingSink
from dom2pptx.units import px_to_in
from dom2pptx.walker import export, export_sync, text_alignment

GRADIENT = Gradient("linear", 90.0, stops=[GradientStop("#ff0000", 0), GradientStop("#0000ff", 100)])


class StubRasterizer(Rasterizer):
    def __init__(self, payload=b"png-bytes", delay=0.0, error=None):
        self.payload = payload
        self.delay = delay
        self.error = error
        self.calls = []

    async def rasterize_gradient(self, gradient, width_px, height_px):
        return await self._respond(("gradient", width_px, height_px))

    async def rasterize_icon(self, markup, width_px, height_px):
        return await self._respond(("icon", width_px, height_px))

    async def _respond(self, call):
        self.calls.append(call)
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


def fills(primitives):
    return [p.fill.color for p in primitives if isinstance(p, ShapePrimitive) and p.fill]


class TestEmissionOrder:
    def test_z_index_orders_siblings_stably(self, make_root, make_box):
        root = make_root(
            children=[
                make_box(background_color="#aa0000", z=2),
                make_box(background_color="#00bb00", z=0),
                make_box(background_color="#0000cc", z=0),
            ]
        )
        sink = RecordingSink()
        export_sync(root, sink)
        assert fills(sink.primitives) == ["00BB00", "0000CC", "AA0000"]

    def test_nested_children_are_sorted_too(self, make_root, make_box):
        parent = make_box(
            w=400,
            h=300,
            children=[make_box(background_color="#111111", z=5), make_box(background_color="#222222", z=1)],
        )
        sink = RecordingSink()
        export_sync(make_root(children=[parent]), sink)
        assert fills(sink.primitives) == ["222222", "111111"]

    def test_coordinates_are_relative_to_root(self, make_box):
        child = make_box(x=148, y=120, w=96, h=48, background_color="#000000")
        root = make_box("body", 100, 100, 960, 540, children=[child])
        sink = RecordingSink()
        export_sync(root, sink)

        frame = sink.primitives[0].frame
        assert frame.left == pytest.approx(px_to_in(48))
        assert frame.top == pytest.approx(px_to_in(20))
        assert frame.width == pytest.approx(1.0)


class TestVisibility:
    @pytest.mark.parametrize(
        "style",
        [{"display": "none"}, {"visibility": "hidden"}, {"opacity": 0.0}],
    )
    def test_invisible_subtree_contributes_nothing(self, make_root, make_box, style):
        hidden = make_box(
            background_color="#ff0000",
            children=[make_box("p", children=["text"], background_color="#00ff00")],
            **style,
        )
        sink = RecordingSink()
        result = export_sync(make_root(children=[hidden]), sink)

        assert sink.primitives == []
        assert result.primitive_count == 0

    def test_sub_pixel_box_is_skipped(self, make_root, make_box):
        sink = RecordingSink()
        export_sync(make_root(children=[make_box(w=0.5, h=20, background_color="#ff0000")]), sink)
        assert sink.primitives == []


class TestTextBlocks:
    def test_text_block_consumes_subtree(self, make_root, make_box):
        span = make_box("span", children=["world"], font_weight="700")
        paragraph = make_box("p", 10, 10, 300, 30, children=["Hello ", span])
        sink = RecordingSink()
        export_sync(make_root(children=[paragraph]), sink)

        blocks = [p for p in sink.primitives if isinstance(p, TextBlock)]
        assert len(blocks) == 1
        assert [r.text for r in blocks[0].runs] == ["Hello ", "world"]

    def test_text_in_wrapper_is_not_a_leaf(self, make_root, make_box):
        inner = make_box("span", children=["deep"])
        wrapper = make_box(children=[make_box(children=[inner])])
        sink = RecordingSink()
        export_sync(make_root(children=[wrapper]), sink)

        blocks = [p for p in sink.primitives if isinstance(p, TextBlock)]
        assert len(blocks) == 1
        assert blocks[0].runs[0].text == "deep"

    def test_shape_is_drawn_under_its_text(self, make_root, make_box):
        card = make_box(children=["Label"], background_color="#f0f0f0")
        sink = RecordingSink()
        export_sync(make_root(children=[card]), sink)

        assert isinstance(sink.primitives[0], ShapePrimitive)
        assert isinstance(sink.primitives[1], TextBlock)

    def test_text_box_geometry(self, make_root, make_box):
        paragraph = make_box(
            "p",
            0,
            0,
            480,
            60,
            children=["x"],
            padding=Insets(10, 20, 10, 4),
            line_height=24.0,
        )
        sink = RecordingSink()
        export_sync(make_root(children=[paragraph]), sink)

        block = sink.primitives[0]
        assert block.frame.width == pytest.approx(5.0 + px_to_in(12))
        assert block.inset == pytest.approx(px_to_in(4))
        assert block.line_spacing_pt == pytest.approx(18.0)

    def test_shared_node_is_emitted_once(self, make_root, make_box):
        shared = make_box(background_color="#123456")
        sink = RecordingSink()
        export_sync(make_root(children=[shared, shared]), sink)
        assert fills(sink.primitives) == ["123456"]


class TestTextAlignment:
    def test_defaults(self, make_box):
        assert text_alignment(make_box().style, 100) == ("left", "top")

    def test_flex_centering(self, make_box):
        style = make_box(display="flex", justify_content="center", align_items="center").style
        assert text_alignment(style, 100) == ("center", "middle")

    def test_flex_end(self, make_box):
        style = make_box(display="flex", justify_content="flex-end", align_items="flex-end").style
        assert text_alignment(style, 100) == ("right", "bottom")

    def test_symmetric_padding_centers(self, make_box):
        style = make_box(padding=Insets(10, 0, 12, 0)).style
        assert text_alignment(style, 100)[1] == "middle"

    def test_short_box_centers(self, make_box):
        style = make_box(font_size=16).style
        assert text_alignment(style, 30)[1] == "middle"
        assert text_alignment(style, 18)[1] == "top"

    def test_text_align_is_kept(self, make_box):
        assert text_alignment(make_box(text_align="right").style, 100)[0] == "right"


def table_rows(make_box, top, count, height=40):
    rows = []
    for index in range(count):
        y = top + index * height
        rows.append(make_box("tr", 0, y, 400, height, children=[make_box("td", 0, y, 400, height, children=[f"r{index}"])]))
    return rows


class TestPagination:
    def test_low_table_moves_to_next_slide(self, make_root, make_box):
        title = make_box("h1", 0, 10, 400, 40, children=["Title"])
        table = make_box("table", 0, 192, 400, 400, children=table_rows(make_box, 192, 10))
        after = make_box(x=0, y=600, w=100, h=20, background_color="#00ff00")
        root = make_root(children=[title, table, after], background_color="#102030")
        sink = RecordingSink()
        result = export_sync(root, sink)

        assert result.slide_count == 2
        assert isinstance(sink.slides[0].primitives[0], TextBlock)
        moved = sink.slides[1].primitives[0]
        assert isinstance(moved, TablePrimitive)
        assert moved.frame.top == pytest.approx(0.5)
        trailing = sink.slides[1].primitives[1]
        assert trailing.frame.top == pytest.approx(px_to_in(600) - 1.5)
        assert sink.slides[1].background.color.hex == "102030"

    def test_high_table_overflows_in_place(self, make_root, make_box):
        table = make_box("table", 0, 19.2, 400, 600, children=table_rows(make_box, 19.2, 15))
        seen = []
        sink = RecordingSink()
        result = export_sync(make_root(children=[table]), sink, on_diagnostic=seen.append)

        assert result.slide_count == 1
        assert sink.primitives[0].frame.top == pytest.approx(0.2)
        assert [d.kind for d in seen] == [OVERFLOWING_TABLE]

    def test_table_subtree_is_not_revisited(self, make_root, make_box):
        table = make_box("table", 0, 0, 400, 80, children=table_rows(make_box, 0, 2))
        sink = RecordingSink()
        export_sync(make_root(children=[table]), sink)

        assert len(sink.primitives) == 1
        assert isinstance(sink.primitives[0], TablePrimitive)


class TestRasterization:
    def test_gradient_image_keeps_paint_order(self, make_root, make_box):
        gradient_box = make_box(background_image=GRADIENT)
        sibling = make_box(background_color="#00ff00")
        sink = RecordingSink()
        export_sync(make_root(children=[gradient_box, sibling]), sink, rasterizer=StubRasterizer(delay=0.01))

        assert isinstance(sink.primitives[0], ImagePrimitive)
        assert sink.primitives[0].data == b"png-bytes"
        assert isinstance(sink.primitives[1], ShapePrimitive)

    def test_border_strip_paints_over_gradient(self, make_root, make_box):
        box = make_box(background_image=GRADIENT, border_left=BorderEdge(4, "#ff0000", "solid"))
        sink = RecordingSink()
        export_sync(make_root(children=[box]), sink, rasterizer=StubRasterizer())

        assert [type(p) for p in sink.primitives] == [ImagePrimitive, ShapePrimitive]
        assert sink.primitives[1].fill.color == "FF0000"

    def test_outline_paints_over_gradient(self, make_root, make_box):
        edge = BorderEdge(2, "#333333", "solid")
        box = make_box(
            background_image=GRADIENT,
            border_top=edge,
            border_right=edge,
            border_bottom=edge,
            border_left=edge,
        )
        sink = RecordingSink()
        export_sync(make_root(children=[box]), sink, rasterizer=StubRasterizer())

        assert [type(p) for p in sink.primitives] == [ImagePrimitive, ShapePrimitive]
        assert sink.primitives[1].line.color == "333333"

    def test_gradient_shadow_carrier_sits_under_the_image(self, make_root, make_box):
        box = make_box(background_image=GRADIENT, box_shadow=BoxShadow(10, 0, 4, "#000"))
        sink = RecordingSink()
        export_sync(make_root(children=[box]), sink, rasterizer=StubRasterizer())

        carrier, image = sink.primitives
        assert carrier.shadow is not None
        assert isinstance(image, ImagePrimitive)

    def test_filled_box_does_not_rasterize_gradient(self, make_root, make_box):
        rasterizer = StubRasterizer()
        box = make_box(background_color="#ffffff", background_image=GRADIENT)
        export_sync(make_root(children=[box]), RecordingSink(), rasterizer=rasterizer)
        assert rasterizer.calls == []

    def test_failure_drops_only_the_image(self, make_root, make_box):
        box = make_box(children=["still here"], background_image=GRADIENT)
        sink = RecordingSink()
        result = export_sync(
            make_root(children=[box]),
            sink,
            rasterizer=StubRasterizer(error=RasterizationError("boom")),
        )

        assert [type(p) for p in sink.primitives] == [TextBlock]
        assert [d.kind for d in result.diagnostics] == [RASTERIZATION_FAILURE]

    def test_timeout_is_a_failure(self, make_root, make_box):
        box = make_box(background_image=GRADIENT)
        sink = RecordingSink()
        result = export_sync(
            make_root(children=[box]),
            sink,
            options=ExportOptions(raster_timeout=0.01),
            rasterizer=StubRasterizer(delay=1.0),
        )

        assert sink.primitives == []
        assert "timed out" in result.diagnostics[0].message

    def test_icon_is_rasterized(self, make_root, make_box):
        icon = make_box("svg", w=24, h=24)
        icon.icon_markup = "<svg xmlns='http://www.w3.org/2000/svg'/>"
        rasterizer = StubRasterizer()
        sink = RecordingSink()
        export_sync(make_root(children=[icon]), sink, rasterizer=rasterizer)

        assert rasterizer.calls == [("icon", 24, 24)]
        assert isinstance(sink.primitives[0], ImagePrimitive)

    def test_embedded_image(self, make_root, make_box):
        image = make_box("img", w=40, h=40)
        image.image_data = b"jpeg-bytes"
        sink = RecordingSink()
        export_sync(make_root(children=[image]), sink)
        assert sink.primitives[0].data == b"jpeg-bytes"

    def test_gradient_slide_background(self, make_root):
        sink = RecordingSink()
        export_sync(make_root(background_image=GRADIENT), sink, rasterizer=StubRasterizer())
        assert sink.slides[0].background.image == b"png-bytes"


class TestExportEntryPoints:
    def test_missing_tree(self):
        sink = RecordingSink()
        with pytest.raises(InputMissingError):
            export_sync(None, sink)
        assert sink.slides == []

    def test_missing_sink(self, make_root):
        with pytest.raises(InputMissingError):
            export_sync(make_root(), None)

    def test_notes_go_to_first_slide(self, make_root):
        sink = RecordingSink()
        export_sync(make_root(), sink, notes="Speaker notes")

        assert sink.slides[0].notes == "Speaker notes"
        assert sink.closed

    def test_failing_diagnostic_callback_does_not_stop_export(self, make_root, make_box):
        def callback(diagnostic):
            raise RuntimeError("callback broke")

        box = make_box(children=["kept"], background_image=GRADIENT)
        sink = RecordingSink()
        result = export_sync(make_root(children=[box]), sink, on_diagnostic=callback)

        assert [type(p) for p in sink.primitives] == [TextBlock]
        assert [d.kind for d in result.diagnostics] == [RASTERIZATION_FAILURE]
        assert sink.closed

    def test_async_export(self, make_root, make_box):
        sink = RecordingSink()
        root = make_root(children=[make_box(background_color="#000000")])
        result = asyncio.run(export(root, sink))

        assert result.slide_count == 1
        assert result.primitive_count == 1
