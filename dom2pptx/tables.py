from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set

from .exceptions import Diagnostics
from .model import (
    CELL_TAGS,
    TABLE_SECTION_TAGS,
    BorderEdge,
    Fill,
    LayoutFrame,
    Line,
    StyledBox,
    TableCell,
    TablePrimitive,
)
from .text_runs import TextRunFlattener
from .units import has_paint, px_to_in, px_to_pt, resolve_color

logger = logging.getLogger(__name__)

VALIGN_MAP = {"top": "top", "middle": "middle", "bottom": "bottom"}
ALIGN_MAP = {"center": "center", "right": "right"}


@dataclass
class TableRow:
    row: StyledBox
    section: StyledBox
    cells: List[StyledBox] = field(default_factory=list)


class TableExtractor:
    """Reads a rendered table into a table primitive.

    Column widths and row heights come from the rendered cell and row boxes so
    the result matches the browser layout; cell paint falls back from cell to
    row to row group.
    """

    def __init__(self, flattener: TextRunFlattener, diagnostics: Optional[Diagnostics] = None):
        self.flattener = flattener
        self.diagnostics = diagnostics

    def extract(
        self,
        table: StyledBox,
        frame: LayoutFrame,
        consumed: Set[StyledBox],
    ) -> Optional[TablePrimitive]:
        consumed.add(table)
        consumed.update(table.descendants())

        rows = self._rows(table)
        if not rows:
            logger.debug("Skipping table without visible rows")
            return None

        col_widths = [px_to_in(cell.rect.width) for cell in rows[0].cells]
        row_heights = [px_to_in(r.row.rect.height) for r in rows]
        grid = [[self._cell(cell, r) for cell in r.cells] for r in rows]
        frame = LayoutFrame(frame.left, frame.top, frame.width, sum(row_heights))
        return TablePrimitive(frame, col_widths, row_heights, grid)

    def _rows(self, table: StyledBox) -> List[TableRow]:
        rows: List[TableRow] = []

        def visit(parent: StyledBox, section: StyledBox):
            for child in parent.elements():
                if not child.style.is_visible():
                    continue
                if child.tag in TABLE_SECTION_TAGS:
                    visit(child, child)
                elif child.tag == "tr":
                    cells = [c for c in child.elements() if c.tag in CELL_TAGS]
                    if cells:
                        rows.append(TableRow(child, section, cells))

        visit(table, table)
        return rows

    def _cell(self, cell: StyledBox, row: TableRow) -> TableCell:
        style = cell.style
        padding = tuple(px_to_in(v) for v in style.padding.as_tuple())
        return TableCell(
            runs=self.flattener.flatten(cell),
            fill=self._background(cell, row),
            borders=[
                self._border(style.border_top, row.row.style.border_top),
                self._border(style.border_right),
                self._border(style.border_bottom, row.row.style.border_bottom),
                self._border(style.border_left),
            ],
            align=ALIGN_MAP.get(style.text_align, "left"),
            valign=VALIGN_MAP.get(style.vertical_align, "top"),
            padding=padding,
        )

    def _background(self, cell: StyledBox, row: TableRow) -> Optional[Fill]:
        for source in (cell, row.row, row.section):
            color = resolve_color(source.style.background_color, source.style.opacity, self.diagnostics)
            if has_paint(color):
                return Fill.of(color)
        return None

    def _border(self, edge: BorderEdge, fallback: Optional[BorderEdge] = None) -> Optional[Line]:
        for candidate in (edge, fallback):
            if candidate is None or candidate.width <= 0 or candidate.style in ("none", "hidden"):
                continue
            color = resolve_color(candidate.color, 1.0, self.diagnostics)
            return Line(color.hex if color else "000000", px_to_pt(candidate.width))
        return None
