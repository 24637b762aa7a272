from __future__ import annotations

import asyncio
import io
import logging
import math
from typing import List, Optional, Tuple

from PIL import Image

from .exceptions import RasterizationError, UnresolvableColorError
from .model import Gradient
from .units import parse_rgba

logger = logging.getLogger(__name__)

Stop = Tuple[float, Tuple[int, int, int, int]]


class Rasterizer:
    """Turns gradients and inline SVG icons into bitmap bytes.

    Implementations return ``None`` or raise when they cannot produce an image;
    the exporter treats both as a missing image.
    """

    async def rasterize_gradient(self, gradient: Gradient, width_px: float, height_px: float) -> Optional[bytes]:
        raise NotImplementedError

    async def rasterize_icon(self, markup: str, width_px: float, height_px: float) -> Optional[bytes]:
        raise NotImplementedError


class PillowRasterizer(Rasterizer):
    # Gradients are smooth, so they are sampled on a small grid and scaled up.
    MAX_SAMPLE = 256

    def __init__(self, scale: float = 2.0):
        self.scale = scale

    async def rasterize_gradient(self, gradient: Gradient, width_px: float, height_px: float) -> Optional[bytes]:
        return await asyncio.to_thread(self.render_gradient, gradient, width_px, height_px)

    async def rasterize_icon(self, markup: str, width_px: float, height_px: float) -> Optional[bytes]:
        return await asyncio.to_thread(self.render_icon, markup, width_px, height_px)

    def render_gradient(self, gradient: Gradient, width_px: float, height_px: float) -> bytes:
        width, height = self._target_size(width_px, height_px)
        stops = self._stops(gradient)
        sample_w = min(width, self.MAX_SAMPLE)
        sample_h = min(height, self.MAX_SAMPLE)

        image = Image.new("RGBA", (sample_w, sample_h))
        pixels = image.load()
        for y in range(sample_h):
            py = (y + 0.5) / sample_h * height
            for x in range(sample_w):
                px = (x + 0.5) / sample_w * width
                pixels[x, y] = self._color_at(stops, self._position(gradient, px, py, width, height))
        if (sample_w, sample_h) != (width, height):
            image = image.resize((width, height), Image.Resampling.BILINEAR)
        return self._png(image)

    def render_icon(self, markup: str, width_px: float, height_px: float) -> bytes:
        width, height = self._target_size(width_px, height_px)
        import cairosvg  # provided by the "svg" extra

        return cairosvg.svg2png(bytestring=markup.encode("utf-8"), output_width=width, output_height=height)

    def _target_size(self, width_px: float, height_px: float) -> Tuple[int, int]:
        width = int(round(width_px * self.scale))
        height = int(round(height_px * self.scale))
        if width < 1 or height < 1:
            raise RasterizationError("Nothing to rasterize", f"{width_px}x{height_px}px")
        return width, height

    def _stops(self, gradient: Gradient) -> List[Stop]:
        if not gradient.stops:
            raise RasterizationError("Gradient has no color stops")
        stops: List[Stop] = []
        for stop in gradient.stops:
            try:
                rgba = parse_rgba(stop.color)
            except UnresolvableColorError as exc:
                raise RasterizationError("Unusable gradient stop", str(exc))
            if rgba is None:
                rgba = (0, 0, 0, 0.0)
            r, g, b, a = rgba
            stops.append((stop.position / 100.0, (r, g, b, int(round(a * 255)))))
        stops.sort(key=lambda s: s[0])
        return stops

    def _position(self, gradient: Gradient, px: float, py: float, width: int, height: int) -> float:
        if gradient.kind == "radial":
            cx = gradient.center[0] / 100.0 * width
            cy = gradient.center[1] / 100.0 * height
            reach = max(
                math.hypot((corner_x - cx) / width, (corner_y - cy) / height)
                for corner_x in (0, width)
                for corner_y in (0, height)
            )
            return math.hypot((px - cx) / width, (py - cy) / height) / (reach or 1.0)
        # CSS angles: 0deg points up, 90deg points right.
        angle = math.radians(gradient.angle)
        dx, dy = math.sin(angle), -math.cos(angle)
        length = abs(width * dx) + abs(height * dy)
        return ((px - width / 2) * dx + (py - height / 2) * dy) / (length or 1.0) + 0.5

    def _color_at(self, stops: List[Stop], t: float) -> Tuple[int, int, int, int]:
        if t <= stops[0][0]:
            return stops[0][1]
        if t >= stops[-1][0]:
            return stops[-1][1]
        for (p0, c0), (p1, c1) in zip(stops, stops[1:]):
            if p0 <= t <= p1:
                f = (t - p0) / (p1 - p0) if p1 > p0 else 1.0
                return tuple(int(round(a + (b - a) * f)) for a, b in zip(c0, c1))
        return stops[-1][1]

    def _png(self, image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()
