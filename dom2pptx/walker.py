"""Walk a Styled Box Tree in paint order and emit drawing primitives.

The walk itself is synchronous; rasterizer requests are started as tasks the
moment a gradient or icon is met and stand in the slide buffer as
placeholders. Nothing reaches the sink until every task has settled, so the
sink always sees primitives in paint order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Set, Tuple, Union

from .config import (
    SLIDE_HEIGHT_IN,
    SLIDE_WIDTH_IN,
    TEXT_LINE_FACTOR,
    VALIGN_MIN_PADDING_PX,
    VALIGN_PADDING_DELTA_PX,
    VALIGN_SHORT_BOX_PX,
    ExportOptions,
)
from .exceptions import (
    OVERFLOWING_TABLE,
    RASTERIZATION_FAILURE,
    Diagnostic,
    Diagnostics,
    InputMissingError,
)
from .model import (
    Gradient,
    ImagePrimitive,
    LayoutFrame,
    Primitive,
    ResolvedStyle,
    SlideBackground,
    StyledBox,
    TextBlock,
    TextLeaf,
)
from .pagination import PaginationPolicy, PaginationState
from .rasterizer import Rasterizer
from .shapes import ShapeDecomposer
from .tables import TableExtractor
from .text_runs import TextRunFlattener
from .units import ResolvedColor, has_paint, px_to_in, px_to_pt, resolve_color

logger = logging.getLogger(__name__)

TEXT_ALIGN = {"center": "center", "right": "right", "justify": "justify"}
FLEX_END = {"flex-end", "end", "right"}


@dataclass
class PendingImage:
    """Placeholder for a rasterized image that is still being produced."""

    frame: LayoutFrame
    task: "asyncio.Future[Optional[bytes]]"
    node: Optional[StyledBox] = None
    label: str = "image"
    data: Optional[bytes] = None


@dataclass
class SlideBuffer:
    background: Union[ResolvedColor, PendingImage, None] = None
    notes: Optional[str] = None
    items: List[Union[Primitive, PendingImage]] = field(default_factory=list)


@dataclass
class ExportResult:
    slide_count: int
    primitive_count: int
    diagnostics: List[Diagnostic] = field(default_factory=list)


def is_text_block(box: StyledBox) -> bool:
    """True when the box has direct, non-whitespace text of its own."""
    return any(isinstance(child, TextLeaf) and child.text.strip() for child in box.children)


def paint_order(children: List[StyledBox]) -> List[StyledBox]:
    # sorted() is stable, so equal z-index keeps document order.
    return sorted(children, key=lambda child: child.z_index)


def text_alignment(style: ResolvedStyle, box_height_px: float) -> Tuple[str, str]:
    """Return ``(align, valign)`` for a text block.

    Flexbox centering is approximated from the container's own properties,
    see the heuristic thresholds in ``config``.
    """
    align = TEXT_ALIGN.get(style.text_align, "left")
    flex = "flex" in (style.display or "")
    if flex:
        if style.justify_content == "center":
            align = "center"
        elif style.justify_content in FLEX_END:
            align = "right"

    padding = style.padding
    if flex and style.align_items == "center":
        valign = "middle"
    elif flex and style.align_items in FLEX_END:
        valign = "bottom"
    elif abs(padding.top - padding.bottom) < VALIGN_PADDING_DELTA_PX and padding.top > VALIGN_MIN_PADDING_PX:
        valign = "middle"
    elif style.font_size * TEXT_LINE_FACTOR < box_height_px < VALIGN_SHORT_BOX_PX:
        valign = "middle"
    else:
        valign = "top"
    return align, valign


class ExportSession:
    """State of one export pass.

    Owns the consumed-set, the slide buffers and the outstanding raster
    tasks. A session is used for a single ``run`` and then discarded.
    """

    def __init__(
        self,
        sink,
        options: Optional[ExportOptions] = None,
        rasterizer: Optional[Rasterizer] = None,
        diagnostics: Optional[Diagnostics] = None,
    ):
        if sink is None:
            raise InputMissingError("No drawing sink to export into")
        self.sink = sink
        self.options = options or ExportOptions()
        self.rasterizer = rasterizer
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()

        self.flattener = TextRunFlattener(self.diagnostics)
        self.shapes = ShapeDecomposer(self.diagnostics)
        self.tables = TableExtractor(self.flattener, self.diagnostics)
        self.pagination = PaginationPolicy(self.options)

        self.consumed: Set[StyledBox] = set()
        self.slides: List[SlideBuffer] = []
        self._pending: List[PendingImage] = []
        self._origin: Tuple[float, float] = (0.0, 0.0)
        self._background: Union[ResolvedColor, PendingImage, None] = None

    async def run(self, root: Optional[StyledBox], notes: Optional[str] = None) -> ExportResult:
        if root is None:
            raise InputMissingError("No styled tree to export")

        logger.info(f"Exporting <{root.tag}> with {sum(1 for _ in root.descendants())} element(s)")
        self._origin = (root.rect.x, root.rect.y)
        self._background = self._slide_background(root)
        self._ensure_slide(0)
        self.slides[0].notes = notes if notes is not None else root.notes

        state = PaginationState()
        for child in paint_order(root.elements()):
            state = self._visit(child, state)

        await self._settle()
        result = self._flush()
        logger.info(f"Exported {result.primitive_count} primitive(s) on {result.slide_count} slide(s)")
        return result

    # ------------------------------------------------------------------ #
    # Traversal
    # ------------------------------------------------------------------ #

    def _visit(self, box: StyledBox, state: PaginationState) -> PaginationState:
        if box in self.consumed:
            return state
        style = box.style
        if not style.is_visible():
            logger.debug(f"Skipping hidden <{box.tag}>")
            return state
        minimum = self.options.min_visible_px
        if box.rect.width < minimum or box.rect.height < minimum:
            logger.debug(f"Skipping sub-pixel <{box.tag}>")
            return state
        self.consumed.add(box)

        frame = self._frame(box, state)

        if box.tag == "table":
            return self._emit_table(box, frame, state)

        if box.tag == "svg" and box.icon_markup:
            self.consumed.update(box.descendants())
            self._schedule(state, frame, box, "icon", self._rasterize_icon(box))
            return state

        if box.tag == "img":
            if box.image_data:
                self._emit(state, ImagePrimitive(frame, box.image_data))
            return state

        decomposition = self.shapes.decompose(box, frame)
        self._emit(state, *decomposition.background)
        if isinstance(style.background_image, Gradient) and not decomposition.filled:
            target = decomposition.main_frame or frame
            self._schedule(state, target, box, "gradient", self._rasterize_gradient(style.background_image, target))
        self._emit(state, *decomposition.foreground)

        if is_text_block(box):
            self.consumed.update(box.descendants())
            self._emit_text(box, frame, state)
            return state

        for child in paint_order(box.elements()):
            state = self._visit(child, state)
        return state

    def _frame(self, box: StyledBox, state: PaginationState) -> LayoutFrame:
        origin_x, origin_y = self._origin
        return LayoutFrame(
            px_to_in(box.rect.x - origin_x),
            px_to_in(box.rect.y - origin_y) - state.vertical_offset,
            px_to_in(box.rect.width),
            px_to_in(box.rect.height),
        )

    def _emit_table(self, box: StyledBox, frame: LayoutFrame, state: PaginationState) -> PaginationState:
        table = self.tables.extract(box, frame, self.consumed)
        if table is None:
            return state

        placement = self.pagination.place(state, table.frame.top, table.frame.height)
        if placement.overflows:
            self.diagnostics.report(
                OVERFLOWING_TABLE,
                f"Table of {table.frame.height:.2f}in at {placement.top:.2f}in runs past the slide bottom",
                box,
            )
        state = placement.state
        table.frame = table.frame.moved(placement.top - table.frame.top)

        carrier = self.shapes.shadow_carrier(box, table.frame)
        if carrier is not None:
            self._emit(state, carrier)
        self._emit(state, table)
        return state

    def _emit_text(self, box: StyledBox, frame: LayoutFrame, state: PaginationState):
        runs = self.flattener.flatten(box)
        if not runs:
            return
        style = box.style
        align, valign = text_alignment(style, box.rect.height)
        inset = max(0.0, px_to_in(min(style.padding.top, style.padding.left)))
        block = TextBlock(
            frame=LayoutFrame(
                frame.left,
                frame.top,
                frame.width + px_to_in(self.options.text_width_buffer_px),
                frame.height,
            ),
            runs=runs,
            align=align,
            valign=valign,
            line_spacing_pt=px_to_pt(style.line_height) if style.line_height else None,
            inset=inset,
        )
        self._emit(state, block)

    # ------------------------------------------------------------------ #
    # Slide buffers
    # ------------------------------------------------------------------ #

    def _ensure_slide(self, index: int) -> SlideBuffer:
        while len(self.slides) <= index:
            self.slides.append(SlideBuffer(background=self._background))
        return self.slides[index]

    def _emit(self, state: PaginationState, *items: Union[Primitive, PendingImage]):
        self._ensure_slide(state.slide_index).items.extend(items)

    def _slide_background(self, root: StyledBox) -> Union[ResolvedColor, PendingImage, None]:
        style = root.style
        if isinstance(style.background_image, Gradient):
            frame = LayoutFrame(0.0, 0.0, SLIDE_WIDTH_IN, SLIDE_HEIGHT_IN)
            return self._start(frame, root, "background", self._rasterize_gradient(style.background_image, frame))
        color = resolve_color(style.background_color, 1.0, self.diagnostics)
        return color if has_paint(color) else None

    # ------------------------------------------------------------------ #
    # Rasterization
    # ------------------------------------------------------------------ #

    def _schedule(
        self,
        state: PaginationState,
        frame: LayoutFrame,
        box: StyledBox,
        label: str,
        request: Awaitable[Optional[bytes]],
    ):
        self._emit(state, self._start(frame, box, label, request))

    def _start(
        self,
        frame: LayoutFrame,
        box: StyledBox,
        label: str,
        request: Awaitable[Optional[bytes]],
    ) -> PendingImage:
        task = asyncio.ensure_future(asyncio.wait_for(request, self.options.raster_timeout))
        pending = PendingImage(frame, task, box, label)
        self._pending.append(pending)
        return pending

    async def _rasterize_gradient(self, gradient: Gradient, frame: LayoutFrame) -> Optional[bytes]:
        if self.rasterizer is None:
            return None
        width_px = frame.width / px_to_in(1.0)
        height_px = frame.height / px_to_in(1.0)
        return await self.rasterizer.rasterize_gradient(gradient, width_px, height_px)

    async def _rasterize_icon(self, box: StyledBox) -> Optional[bytes]:
        if self.rasterizer is None:
            return None
        return await self.rasterizer.rasterize_icon(box.icon_markup, box.rect.width, box.rect.height)

    async def _settle(self):
        if not self._pending:
            return
        results = await asyncio.gather(*(p.task for p in self._pending), return_exceptions=True)
        for pending, result in zip(self._pending, results):
            if isinstance(result, asyncio.TimeoutError):
                reason = "timed out"
            elif isinstance(result, BaseException):
                reason = str(result) or type(result).__name__
            elif not result:
                reason = "no image produced"
            else:
                pending.data = result
                continue
            self.diagnostics.report(RASTERIZATION_FAILURE, f"{pending.label} rasterization: {reason}", pending.node)

    def _flush(self) -> ExportResult:
        count = 0
        for buffer in self.slides:
            self.sink.begin_slide(self._resolve_background(buffer.background), buffer.notes)
            for item in buffer.items:
                if isinstance(item, PendingImage):
                    if item.data is None:
                        continue
                    item = ImagePrimitive(item.frame, item.data)
                self.sink.draw(item)
                count += 1
        self.sink.close()
        return ExportResult(len(self.slides), count, list(self.diagnostics.items))

    def _resolve_background(self, background) -> Optional[SlideBackground]:
        if isinstance(background, PendingImage):
            return SlideBackground(image=background.data) if background.data else None
        if background is not None:
            return SlideBackground(color=background)
        return None


async def export(
    root: Optional[StyledBox],
    sink,
    options: Optional[ExportOptions] = None,
    rasterizer: Optional[Rasterizer] = None,
    on_diagnostic: Optional[Callable[[Diagnostic], None]] = None,
    notes: Optional[str] = None,
) -> ExportResult:
    """Export ``root`` into ``sink`` and return a summary of the pass."""
    session = ExportSession(sink, options, rasterizer, Diagnostics(callback=on_diagnostic))
    return await session.run(root, notes)


def export_sync(
    root: Optional[StyledBox],
    sink,
    options: Optional[ExportOptions] = None,
    rasterizer: Optional[Rasterizer] = None,
    on_diagnostic: Optional[Callable[[Diagnostic], None]] = None,
    notes: Optional[str] = None,
) -> ExportResult:
    return asyncio.run(export(root, sink, options, rasterizer, on_diagnostic, notes))
