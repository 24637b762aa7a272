"""Color and unit resolution.

Colors arrive as computed CSS strings (``rgb(...)``, ``rgba(...)``, hex or a
keyword) together with the element opacity and leave as a ``ResolvedColor``:
a ``RRGGBB`` hex string plus a transparency percentage. Lengths arrive in CSS
pixels and leave in inches (geometry) or points (type and outlines).
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import ImageColor

from .config import IN_PER_PX, MIN_THICKNESS_IN, PT_PER_PX
from .exceptions import UNRESOLVABLE_COLOR, Diagnostics, UnresolvableColorError

logger = logging.getLogger(__name__)

ABSENT_COLORS = {"", "none", "transparent", "initial", "unset"}
HEX_RE = re.compile(r"^#([0-9a-f]{3,4}|[0-9a-f]{6}|[0-9a-f]{8})$")
RGB_RE = re.compile(r"^rgba?\((?P<body>[^)]*)\)$")
NUMBER_RE = re.compile(r"^(-?[\d.]+)\s*([a-z%]*)$")

RGBA = Tuple[int, int, int, float]


@dataclass(frozen=True)
class ResolvedColor:
    hex: str
    transparency: int = 0

    @property
    def alpha(self) -> float:
        return 1.0 - self.transparency / 100.0


def _round(value: float) -> int:
    # Half-up rounding, not banker's rounding.
    return int(math.floor(value + 0.5))


def _channel(token: str) -> float:
    token = token.strip()
    if token.endswith("%"):
        return float(token[:-1]) * 2.55
    return float(token)


def _alpha(token: str) -> float:
    token = token.strip()
    if token.endswith("%"):
        return float(token[:-1]) / 100.0
    return float(token)


def parse_rgba(value: Optional[str]) -> Optional[RGBA]:
    """Parse a color string into ``(r, g, b, alpha)``.

    Returns ``None`` for absent paint and raises ``UnresolvableColorError``
    for anything that is not a color.
    """
    if value is None:
        return None
    raw = str(value).strip().lower()
    if raw in ABSENT_COLORS:
        return None

    if raw.startswith("#"):
        if not HEX_RE.match(raw):
            raise UnresolvableColorError("Malformed hex color", raw)
        digits = raw[1:]
        if len(digits) in (3, 4):
            digits = "".join(c * 2 for c in digits)
        r, g, b = int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)
        a = int(digits[6:8], 16) / 255.0 if len(digits) == 8 else 1.0
        return (r, g, b, a)

    match = RGB_RE.match(raw)
    if match:
        body = match.group("body").replace("/", " ").replace(",", " ")
        parts = [p for p in body.split() if p]
        if len(parts) < 3:
            raise UnresolvableColorError("Malformed rgb() color", raw)
        try:
            r, g, b = [min(255, max(0, _round(_channel(p)))) for p in parts[:3]]
            a = _alpha(parts[3]) if len(parts) > 3 else 1.0
        except ValueError:
            raise UnresolvableColorError("Malformed rgb() color", raw)
        return (r, g, b, min(1.0, max(0.0, a)))

    try:
        rgb = ImageColor.getrgb(raw)
    except ValueError:
        raise UnresolvableColorError("Unknown color", raw)
    a = rgb[3] / 255.0 if len(rgb) > 3 else 1.0
    return (rgb[0], rgb[1], rgb[2], a)


def resolve_color(
    value: Optional[str],
    opacity: float = 1.0,
    diagnostics: Optional[Diagnostics] = None,
) -> Optional[ResolvedColor]:
    """Resolve a color for painting, or ``None`` when there is no paint.

    Zero-alpha colors other than the browser's computed ``transparent``
    resolve to 100% transparency; use ``has_paint`` for presence checks.
    """
    try:
        rgba = parse_rgba(value)
    except UnresolvableColorError as exc:
        if diagnostics is not None:
            diagnostics.report(UNRESOLVABLE_COLOR, str(exc))
        else:
            logger.debug(f"Ignoring unresolvable color {value!r}")
        return None
    if rgba is None or rgba == (0, 0, 0, 0.0):
        return None
    r, g, b, a = rgba
    opacity = 1.0 if opacity is None else min(1.0, max(0.0, opacity))
    transparency = _round((1.0 - a * opacity) * 100)
    return ResolvedColor("%02X%02X%02X" % (r, g, b), min(100, max(0, transparency)))


def has_paint(color: Optional[ResolvedColor]) -> bool:
    return color is not None and color.transparency < 100


def placeholder_color(
    value: Optional[str],
    opacity: float = 1.0,
    diagnostics: Optional[Diagnostics] = None,
) -> ResolvedColor:
    """Like ``resolve_color`` but never ``None``: no paint becomes clear white."""
    color = resolve_color(value, opacity, diagnostics)
    if not has_paint(color):
        return ResolvedColor("FFFFFF", 100)
    return color


# --------------------------------------------------------------------------- #
# Lengths
# --------------------------------------------------------------------------- #


def px_to_in(px_val: float) -> float:
    return float(px_val) * IN_PER_PX


def px_to_pt(px_val: float) -> float:
    return float(px_val) * PT_PER_PX


def clamp_thickness(inches: float) -> float:
    return max(inches, MIN_THICKNESS_IN)


def parse_length(
    value: Optional[str],
    reference: Optional[float] = None,
    font_size: Optional[float] = None,
) -> Optional[float]:
    """Parse a CSS length into pixels."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = NUMBER_RE.match(str(value).strip().lower())
    if not match:
        return None
    number = float(match.group(1))
    unit = match.group(2)
    if unit in ("", "px"):
        return number
    if unit == "pt":
        return number / PT_PER_PX
    if unit == "em" and font_size is not None:
        return number * font_size
    if unit == "rem":
        return number * 16.0
    if unit == "%" and reference is not None:
        return number / 100.0 * reference
    return None


def letter_spacing_pt(value: Optional[str], font_size_px: float) -> Optional[float]:
    """Convert an authored letter-spacing into points, ``None`` for normal."""
    if not value or str(value).strip().lower() == "normal":
        return None
    raw = str(value).strip().lower()
    if raw.endswith("pt"):
        try:
            spacing = float(raw[:-2])
        except ValueError:
            return None
    else:
        px_val = parse_length(raw, font_size=font_size_px)
        if px_val is None:
            return None
        spacing = px_to_pt(px_val)
    return spacing or None
