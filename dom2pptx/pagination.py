from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import SLIDE_HEIGHT_IN, ExportOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaginationState:
    """Current slide and the vertical offset subtracted from source coordinates."""

    slide_index: int = 0
    vertical_offset: float = 0.0


@dataclass(frozen=True)
class Placement:
    state: PaginationState
    top: float
    new_slide: bool = False
    overflows: bool = False


class PaginationPolicy:
    def __init__(self, options: ExportOptions, slide_height: float = SLIDE_HEIGHT_IN):
        self.slide_height = slide_height
        self.top_margin = options.top_margin_in
        self.bottom_margin = options.bottom_margin_in
        self.split_threshold = options.split_threshold_in

    @property
    def usable_bottom(self) -> float:
        return self.slide_height - self.bottom_margin

    def fits(self, top: float, height: float) -> bool:
        return top + height <= self.usable_bottom

    def place(self, state: PaginationState, top: float, height: float) -> Placement:
        """Place a block whose slide-relative top is ``top``.

        An overflowing block that starts well below the top margin moves to a
        new slide at the top margin; the distance it moved is added to the
        offset so later blocks follow it. A block that already starts near the
        top is left where it is, overflow and all.
        """
        if self.fits(top, height):
            return Placement(state, top)
        if top > self.split_threshold:
            shift = top - self.top_margin
            moved = PaginationState(state.slide_index + 1, state.vertical_offset + shift)
            logger.info(f"Moving block at {top:.2f}in to slide {moved.slide_index + 1}")
            return Placement(moved, self.top_margin, new_slide=True, overflows=not self.fits(self.top_margin, height))
        return Placement(state, top, overflows=True)
