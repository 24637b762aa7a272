"""Decompose a styled box into back-to-front shape primitives.

A box with a fill and four identical borders is a single shape with a native
outline. Borders that differ per edge cannot be expressed as an outline, so
they are simulated: filled boxes get one edge-colored underlay per distinct
border color, each drawn under a progressively shrunken copy of the shape so
that only the border band stays visible; unfilled boxes get thin strips along
each drawn edge.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .config import (
    BOX_SHADOW,
    ELLIPSE_RADIUS_SLACK_PX,
    MIN_THICKNESS_IN,
    NEAR_SQUARE_TOLERANCE_PX,
    SHADOW_CARRIER_TRANSPARENCY,
    TABLE_SHADOW,
)
from .exceptions import Diagnostics, UnresolvableColorError
from .model import (
    SHAPE_ELLIPSE,
    SHAPE_LINE,
    SHAPE_RECT,
    SHAPE_ROUND_RECT,
    SHAPE_TOP_ROUND_RECT,
    BorderEdge,
    CornerRadii,
    Gradient,
    Fill,
    LayoutFrame,
    Line,
    Rect,
    Shadow,
    ShapePrimitive,
    StyledBox,
)
from .units import (
    ResolvedColor,
    clamp_thickness,
    has_paint,
    parse_rgba,
    placeholder_color,
    px_to_in,
    px_to_pt,
    resolve_color,
)

logger = logging.getLogger(__name__)

SIDES = ("top", "right", "bottom", "left")
DASH_STYLES = {"dashed": "dash", "dotted": "dot"}


@dataclass
class Decomposition:
    """Primitives of one box, split around where a background image belongs.

    ``background`` paints under a rasterized background image, ``foreground``
    (edge strips and bare outlines) paints over it.
    """

    background: List[ShapePrimitive] = field(default_factory=list)
    foreground: List[ShapePrimitive] = field(default_factory=list)
    main_frame: Optional[LayoutFrame] = None
    filled: bool = False

    @property
    def primitives(self) -> List[ShapePrimitive]:
        return self.background + self.foreground


def classify_shape(rect: Rect, radii: CornerRadii) -> Tuple[str, float, float]:
    """Return ``(kind, corner_radius, rotation)`` for a box outline."""
    tl, tr, br, bl = radii.as_tuple()
    min_dim = min(rect.width, rect.height)
    largest = max(tl, tr, br, bl)
    if min_dim <= 0 or largest <= 0:
        return SHAPE_RECT, 0.0, 0.0

    near_square = abs(rect.width - rect.height) < NEAR_SQUARE_TOLERANCE_PX
    if near_square and largest >= min_dim / 2 - ELLIPSE_RADIUS_SLACK_PX:
        return SHAPE_ELLIPSE, 0.0, 0.0

    def ratio(radius: float) -> float:
        return min(radius / (min_dim / 2), 1.0)

    if tl == tr == br == bl:
        return SHAPE_ROUND_RECT, ratio(tl), 0.0
    if tl > 0 and tr > 0 and br == 0 and bl == 0:
        return SHAPE_TOP_ROUND_RECT, ratio(max(tl, tr)), 0.0
    if bl > 0 and br > 0 and tl == 0 and tr == 0:
        return SHAPE_TOP_ROUND_RECT, ratio(max(bl, br)), 180.0
    # Mixed corners: keep sharp corners sharp.
    return SHAPE_RECT, 0.0, 0.0


class ShapeDecomposer:
    def __init__(self, diagnostics: Optional[Diagnostics] = None):
        self.diagnostics = diagnostics

    def decompose(self, box: StyledBox, frame: LayoutFrame) -> Decomposition:
        style = box.style
        fill_color = resolve_color(style.background_color, style.opacity, self.diagnostics)
        filled = has_paint(fill_color)
        result = Decomposition(main_frame=frame, filled=filled)

        edges = [self._edge_paint(edge) for edge in style.borders]
        drawn = [(side, edge, color) for side, edge, color in zip(SIDES, style.borders, edges) if color]

        if filled and not drawn and min(frame.width, frame.height) < MIN_THICKNESS_IN:
            result.background.append(self._rule(frame, fill_color))
            return result

        kind, radius, rotation = classify_shape(box.rect, style.radii)
        outline = self._uniform_outline(style.borders, edges)

        if outline is None and drawn:
            if filled:
                cursor = frame
                for color, members in self._group_by_color(drawn).items():
                    result.background.append(
                        ShapePrimitive(kind, cursor, Fill.of(color), corner_radius=radius, rotation=rotation)
                    )
                    cursor = self._shrink(cursor, members)
                result.main_frame = cursor
            else:
                for side, edge, color in drawn:
                    result.foreground.append(
                        ShapePrimitive(SHAPE_RECT, self._strip(frame, side, edge.width), Fill.of(color))
                    )

        if filled:
            result.background.append(
                ShapePrimitive(
                    kind,
                    result.main_frame,
                    Fill.of(fill_color),
                    line=outline,
                    corner_radius=radius,
                    rotation=rotation,
                )
            )
        elif outline is not None:
            result.foreground.append(
                ShapePrimitive(kind, frame, None, line=outline, corner_radius=radius, rotation=rotation)
            )

        shadow = self._shadow(box)
        if shadow is not None:
            if not filled and isinstance(style.background_image, Gradient):
                # The background image cannot carry a shadow.
                carrier = self._carrier(frame, shadow, kind, radius, rotation)
                result.background.insert(0, carrier)
            elif filled or outline is not None:
                result.primitives[0].shadow = shadow
        logger.debug(f"{box.tag}: {kind} with {len(result.primitives)} primitive(s)")
        return result

    def shadow_carrier(self, box: StyledBox, frame: LayoutFrame) -> Optional[ShapePrimitive]:
        """A near-invisible rectangle that carries a table's outer shadow."""
        shadow = box.style.box_shadow
        if shadow is None or shadow.inset:
            return None
        fill = placeholder_color(box.style.background_color, box.style.opacity, self.diagnostics)
        preset = TABLE_SHADOW
        return self._carrier(
            frame,
            Shadow(preset["blur"], preset["offset"], preset["angle"], preset["opacity"]),
            fill=fill,
        )

    # ------------------------------------------------------------------ #

    def _carrier(
        self,
        frame: LayoutFrame,
        shadow: Shadow,
        kind: str = SHAPE_RECT,
        radius: float = 0.0,
        rotation: float = 0.0,
        fill: Optional[ResolvedColor] = None,
    ) -> ShapePrimitive:
        if fill is None or fill.transparency == 100:
            fill = ResolvedColor("FFFFFF", SHADOW_CARRIER_TRANSPARENCY)
        return ShapePrimitive(kind, frame, Fill.of(fill), corner_radius=radius, rotation=rotation, shadow=shadow)

    def _edge_paint(self, edge: BorderEdge) -> Optional[ResolvedColor]:
        if not edge.drawn:
            return None
        color = resolve_color(edge.color, 1.0, self.diagnostics)
        return color if has_paint(color) else None

    def _uniform_outline(self, borders, edges) -> Optional[Line]:
        keys = set()
        for edge, color in zip(borders, edges):
            keys.add((edge.width, color.hex, edge.style) if color else None)
        if len(keys) != 1:
            return None
        key = keys.pop()
        if key is None:
            return None
        width, hex_color, border_style = key
        return Line(hex_color, px_to_pt(width), DASH_STYLES.get(border_style, "solid"))

    def _group_by_color(self, drawn) -> Dict[ResolvedColor, List[Tuple[str, float]]]:
        groups: Dict[ResolvedColor, List[Tuple[str, float]]] = {}
        for side, edge, color in drawn:
            groups.setdefault(color, []).append((side, edge.width))
        return groups

    def _shrink(self, frame: LayoutFrame, members: List[Tuple[str, float]]) -> LayoutFrame:
        left, top, width, height = frame.left, frame.top, frame.width, frame.height
        for side, width_px in members:
            inset = px_to_in(width_px)
            if side == "top":
                top += inset
                height -= inset
            elif side == "bottom":
                height -= inset
            elif side == "left":
                left += inset
                width -= inset
            else:
                width -= inset
        return LayoutFrame(left, top, clamp_thickness(width), clamp_thickness(height))

    def _strip(self, frame: LayoutFrame, side: str, width_px: float) -> LayoutFrame:
        thickness = clamp_thickness(px_to_in(width_px))
        if side == "top":
            return LayoutFrame(frame.left, frame.top, frame.width, thickness)
        if side == "bottom":
            return LayoutFrame(frame.left, frame.bottom - thickness, frame.width, thickness)
        if side == "left":
            return LayoutFrame(frame.left, frame.top, thickness, frame.height)
        return LayoutFrame(frame.left + frame.width - thickness, frame.top, thickness, frame.height)

    def _rule(self, frame: LayoutFrame, color: ResolvedColor) -> ShapePrimitive:
        if frame.width >= frame.height:
            thickness = clamp_thickness(frame.height)
            line_frame = LayoutFrame(frame.left, frame.top + frame.height / 2, frame.width, 0.0)
        else:
            thickness = clamp_thickness(frame.width)
            line_frame = LayoutFrame(frame.left + frame.width / 2, frame.top, 0.0, frame.height)
        return ShapePrimitive(SHAPE_LINE, line_frame, line=Line(color.hex, thickness * 72.0))

    def _shadow(self, box: StyledBox) -> Optional[Shadow]:
        shadow = box.style.box_shadow
        if shadow is None or shadow.inset:
            return None
        blur = px_to_pt(shadow.blur) if shadow.blur > 0 else BOX_SHADOW["blur"]
        distance = math.hypot(shadow.offset_x, shadow.offset_y)
        if distance > 0:
            offset = px_to_pt(distance)
            angle = math.degrees(math.atan2(shadow.offset_y, shadow.offset_x)) % 360
        else:
            offset, angle = BOX_SHADOW["offset"], BOX_SHADOW["angle"]
        opacity = BOX_SHADOW["opacity"]
        hex_color = "000000"
        try:
            rgba = parse_rgba(shadow.color)
        except UnresolvableColorError:
            rgba = None
        if rgba is not None:
            hex_color = "%02X%02X%02X" % rgba[:3]
            if rgba[3] < 1.0:
                opacity = rgba[3]
        return Shadow(blur, offset, angle, opacity, hex_color)
