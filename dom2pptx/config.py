from __future__ import annotations

from dataclasses import dataclass

# --------------------------------------------------------------------------- #
# Slide geometry
# --------------------------------------------------------------------------- #

SLIDE_REF_WIDTH_PX = 960.0
SLIDE_WIDTH_IN = 10.0
SLIDE_HEIGHT_IN = 5.625  # 16:9
IN_PER_PX = SLIDE_WIDTH_IN / SLIDE_REF_WIDTH_PX
PT_PER_PX = 0.75
EMU_PER_INCH = 914400

# Anything thinner than this does not render in most viewers.
MIN_THICKNESS_IN = 0.02

DEFAULT_FONT_FACE = "Arial"
DEFAULT_TEXT_COLOR = "000000"

# --------------------------------------------------------------------------- #
# Heuristics
#
# Approximations of browser flexbox/box behavior. The literal values are kept
# for output compatibility and may be revised.
# --------------------------------------------------------------------------- #

NEAR_SQUARE_TOLERANCE_PX = 2.0
ELLIPSE_RADIUS_SLACK_PX = 1.0
VALIGN_PADDING_DELTA_PX = 5.0
VALIGN_MIN_PADDING_PX = 5.0
VALIGN_SHORT_BOX_PX = 40.0
TEXT_LINE_FACTOR = 1.2

# Outer shadows as emitted for plain boxes and for tables.
BOX_SHADOW = {"blur": 6.0, "offset": 2.0, "angle": 45.0, "opacity": 0.2}
TABLE_SHADOW = {"blur": 10.0, "offset": 4.0, "angle": 45.0, "opacity": 0.3}
SHADOW_CARRIER_TRANSPARENCY = 99


@dataclass
class ExportOptions:
    top_margin_in: float = 0.5
    bottom_margin_in: float = 0.5
    # A table only moves to a new slide when it starts below this line.
    split_threshold_in: float = 1.0
    min_visible_px: float = 1.0
    # Extra width given to text boxes so CJK lines do not wrap early.
    text_width_buffer_px: float = 12.0
    raster_timeout: float = 10.0
    raster_scale: float = 2.0
