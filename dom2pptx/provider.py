"""Build a Styled Box Tree from a rendered-page snapshot.

Two snapshot formats are understood:

* JSON: nested ``{"tag", "rect", "style", "zIndex", "children", ...}``
  objects, style keys in CSS (``background-color``) or DOM
  (``backgroundColor``) spelling. Text children are plain strings.
* HTML: any markup whose elements carry ``data-rect="x y width height"``
  and their computed style in the ``style`` attribute. ``data-z-index`` and
  ``data-notes`` are optional.

Style values are expected to be computed values, so no cascade or
inheritance is applied here.
"""

from __future__ import annotations

import base64
import json
import logging
import math
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from .config import DEFAULT_FONT_FACE
from .exceptions import InputMissingError
from .model import (
    BorderEdge,
    BoxShadow,
    CornerRadii,
    Gradient,
    GradientStop,
    Insets,
    Rect,
    ResolvedStyle,
    StyledBox,
    TextLeaf,
)
from .units import parse_length

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
# Safe fonts
# --------------------------------------------------------------------------- #

FONT_MAP = {
    # Sans-serif
    "Inter": "Arial",
    "Roboto": "Arial",
    "Open Sans": "Calibri",
    "Lato": "Calibri",
    "Montserrat": "Arial",
    "Source Sans Pro": "Arial",
    "Noto Sans": "Arial",
    "Helvetica": "Arial",
    "San Francisco": "Arial",
    "Segoe UI": "Segoe UI",
    "System-UI": "Segoe UI",
    # Serif
    "Times New Roman": "Times New Roman",
    "Georgia": "Georgia",
    "Merriweather": "Times New Roman",
    "Playfair Display": "Georgia",
    # Monospace
    "Courier New": "Courier New",
    "Fira Code": "Courier New",
    "Roboto Mono": "Courier New",
    # Generic families
    "sans-serif": "Arial",
    "serif": "Times New Roman",
    "monospace": "Courier New",
}
_FONT_KEYS = {key.lower(): value for key, value in FONT_MAP.items()}


def safe_font(family: Optional[str]) -> str:
    """Map a CSS font-family list to a face every slide viewer has."""
    if not family:
        return DEFAULT_FONT_FACE
    for name in family.replace('"', "").replace("'", "").split(","):
        face = _FONT_KEYS.get(name.strip().lower())
        if face:
            return face
    return DEFAULT_FONT_FACE


# --------------------------------------------------------------------------- #
# CSS value parsing
# --------------------------------------------------------------------------- #

CAMEL_RE = re.compile(r"(?<!^)([A-Z])")
GRADIENT_RE = re.compile(r"(?:repeating-)?(linear|radial)-gradient\((.*)\)", re.S)
STOP_RE = re.compile(r"^(?P<color>.*?)(?:\s+(?P<pos>-?[\d.]+)%)?(?:\s+-?[\d.]+%)?$")
SHADOW_COLOR_RE = re.compile(r"(rgba?\([^)]*\)|hsla?\([^)]*\)|#[0-9a-fA-F]{3,8})")
BORDER_STYLES = {"none", "hidden", "solid", "dashed", "dotted", "double", "groove", "ridge", "inset", "outset"}
SIDES = ("top", "right", "bottom", "left")
CORNERS = ("top-left", "top-right", "bottom-right", "bottom-left")
DIRECTIONS = {
    "to top": 0.0,
    "to top right": 45.0,
    "to right top": 45.0,
    "to right": 90.0,
    "to bottom right": 135.0,
    "to right bottom": 135.0,
    "to bottom": 180.0,
    "to bottom left": 225.0,
    "to left bottom": 225.0,
    "to left": 270.0,
    "to top left": 315.0,
    "to left top": 315.0,
}
POSITION_KEYWORDS = {"left": 0.0, "top": 0.0, "center": 50.0, "right": 100.0, "bottom": 100.0}


def parse_declarations(body: Optional[str]) -> Dict[str, str]:
    props: Dict[str, str] = {}
    for decl in (body or "").split(";"):
        if ":" not in decl:
            continue
        key, val = decl.split(":", 1)
        key = key.strip().lower()
        val = val.strip()
        if not key:
            continue
        props[key] = val
    return props


def split_top_level(value: str, sep: str = ",") -> List[str]:
    """Split on ``sep`` outside parentheses."""
    parts: List[str] = []
    depth = 0
    current = ""
    for char in value:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == sep and depth == 0:
            if current.strip():
                parts.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        parts.append(current.strip())
    return parts


def parse_box(value: Optional[str], fallback: float = 0.0) -> Tuple[float, float, float, float]:
    if not value:
        return (fallback, fallback, fallback, fallback)
    nums = []
    for token in value.split():
        length = parse_length(token)
        nums.append(length if length is not None else fallback)
    if len(nums) == 1:
        return (nums[0], nums[0], nums[0], nums[0])
    if len(nums) == 2:
        return (nums[0], nums[1], nums[0], nums[1])
    if len(nums) == 3:
        return (nums[0], nums[1], nums[2], nums[1])
    t, r, b, l = (nums + [fallback] * 4)[:4]
    return (t, r, b, l)


def parse_gradient(value: Optional[str]) -> Optional[Gradient]:
    if not value:
        return None
    match = GRADIENT_RE.search(value)
    if not match:
        return None
    kind = match.group(1)
    args = split_top_level(match.group(2))
    if not args:
        return None
    gradient = Gradient(kind=kind)
    head = args[0].strip().lower()

    if kind == "linear":
        if head in DIRECTIONS:
            gradient.angle = DIRECTIONS[head]
            args = args[1:]
        elif re.match(r"^-?[\d.]+(deg|turn|rad)$", head):
            gradient.angle = _angle(head)
            args = args[1:]
    elif head.startswith(("circle", "ellipse", "closest", "farthest", "at ")):
        if "at " in head:
            position = head.split("at ", 1)[1].split()
            x = _position(position[0]) if position else 50.0
            y = _position(position[1]) if len(position) > 1 else 50.0
            gradient.center = (x, y)
        args = args[1:]

    stops: List[Tuple[str, Optional[float]]] = []
    for arg in args:
        stop = STOP_RE.match(arg.strip())
        if not stop or not stop.group("color").strip():
            continue
        pos = stop.group("pos")
        stops.append((stop.group("color").strip(), float(pos) if pos is not None else None))
    if not stops:
        return None
    gradient.stops = [GradientStop(color, pos) for color, pos in _fill_positions(stops)]
    return gradient


def _angle(token: str) -> float:
    if token.endswith("deg"):
        return float(token[:-3])
    if token.endswith("turn"):
        return float(token[:-4]) * 360.0
    return math.degrees(float(token[:-3]))


def _position(token: str) -> float:
    if token in POSITION_KEYWORDS:
        return POSITION_KEYWORDS[token]
    if token.endswith("%"):
        try:
            return float(token[:-1])
        except ValueError:
            return 50.0
    return 50.0


def _fill_positions(stops: List[Tuple[str, Optional[float]]]) -> List[Tuple[str, float]]:
    """Give stops without a position evenly spaced ones, as browsers do."""
    positions = [pos for _, pos in stops]
    if positions[0] is None:
        positions[0] = 0.0
    if positions[-1] is None:
        positions[-1] = 100.0 if len(positions) > 1 else 0.0
    index = 0
    while index < len(positions):
        if positions[index] is not None:
            index += 1
            continue
        start = index - 1
        end = index
        while positions[end] is None:
            end += 1
        step = (positions[end] - positions[start]) / (end - start)
        for missing in range(index, end):
            positions[missing] = positions[start] + step * (missing - start)
        index = end
    return [(color, pos) for (color, _), pos in zip(stops, positions)]


def parse_box_shadow(value: Optional[str]) -> Optional[BoxShadow]:
    if not value or value.strip().lower() == "none":
        return None
    first = split_top_level(value)[0]
    color = None
    match = SHADOW_COLOR_RE.search(first)
    if match:
        color = match.group(1)
        first = first.replace(color, " ")
    lengths: List[float] = []
    inset = False
    for token in first.split():
        if token.lower() == "inset":
            inset = True
            continue
        length = parse_length(token)
        if length is None:
            color = color or token
        else:
            lengths.append(length)
    if len(lengths) < 2:
        return None
    blur = lengths[2] if len(lengths) > 2 else 0.0
    return BoxShadow(blur=blur, offset_x=lengths[0], offset_y=lengths[1], color=color, inset=inset)


def _border_shorthand(value: Optional[str]) -> Dict[str, str]:
    parsed: Dict[str, str] = {}
    if not value:
        return parsed
    for token in split_top_level(value, " "):
        lowered = token.lower()
        if lowered in BORDER_STYLES:
            parsed["style"] = lowered
        elif parse_length(lowered) is not None:
            parsed["width"] = lowered
        else:
            parsed["color"] = token
    return parsed


def _borders(props: Dict[str, str]) -> Dict[str, BorderEdge]:
    parts: Dict[str, Dict[str, str]] = {side: {} for side in SIDES}
    for side in SIDES:
        parts[side].update(_border_shorthand(props.get("border")))
    for attr in ("width", "style", "color"):
        box = props.get(f"border-{attr}")
        if not box:
            continue
        tokens = split_top_level(box, " ")
        expanded = _expand(tokens)
        for side, token in zip(SIDES, expanded):
            parts[side][attr] = token
    for side in SIDES:
        parts[side].update(_border_shorthand(props.get(f"border-{side}")))
        for attr in ("width", "style", "color"):
            longhand = props.get(f"border-{side}-{attr}")
            if longhand:
                parts[side][attr] = longhand

    edges: Dict[str, BorderEdge] = {}
    for side, values in parts.items():
        edges[side] = BorderEdge(
            width=parse_length(values.get("width")) or 0.0,
            color=values.get("color"),
            style=values.get("style", "none").lower(),
        )
    return edges


def _expand(tokens: List[str]) -> List[str]:
    if len(tokens) == 1:
        return tokens * 4
    if len(tokens) == 2:
        return [tokens[0], tokens[1], tokens[0], tokens[1]]
    if len(tokens) == 3:
        return [tokens[0], tokens[1], tokens[2], tokens[1]]
    return tokens[:4]


def _radii(props: Dict[str, str], rect: Optional[Rect]) -> CornerRadii:
    reference = min(rect.width, rect.height) if rect else None
    # Elliptical radii ("10px / 20px") keep the horizontal part.
    shorthand = (props.get("border-radius") or "").split("/")[0]
    values = list(_expand(shorthand.split())) if shorthand.strip() else ["0"] * 4
    for index, corner in enumerate(CORNERS):
        longhand = props.get(f"border-{corner}-radius")
        if longhand:
            values[index] = longhand.split()[0]
    radii = [parse_length(v, reference) or 0.0 for v in values]
    return CornerRadii(*radii)


def _padding(props: Dict[str, str]) -> Insets:
    top, right, bottom, left = parse_box(props.get("padding"))
    values = {"top": top, "right": right, "bottom": bottom, "left": left}
    for side in SIDES:
        longhand = parse_length(props.get(f"padding-{side}"))
        if longhand is not None:
            values[side] = longhand
    return Insets(**values)


def _float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value not in (None, "") else default
    except ValueError:
        return default


def style_from_declarations(props: Dict[str, str], rect: Optional[Rect] = None) -> ResolvedStyle:
    """Turn computed CSS declarations into a ``ResolvedStyle``."""
    font_size = parse_length(props.get("font-size")) or 16.0
    edges = _borders(props)

    line_height = None
    raw_line_height = (props.get("line-height") or "").strip().lower()
    if raw_line_height and raw_line_height != "normal":
        if re.match(r"^[\d.]+$", raw_line_height):
            line_height = float(raw_line_height) * font_size
        else:
            line_height = parse_length(raw_line_height, font_size, font_size)

    background_image = parse_gradient(props.get("background-image"))
    if background_image is None:
        background_image = parse_gradient(props.get("background"))

    return ResolvedStyle(
        display=props.get("display", "block").lower(),
        visibility=props.get("visibility", "visible").lower(),
        opacity=_float(props.get("opacity"), 1.0),
        background_color=props.get("background-color"),
        background_image=background_image,
        border_top=edges["top"],
        border_right=edges["right"],
        border_bottom=edges["bottom"],
        border_left=edges["left"],
        radii=_radii(props, rect),
        box_shadow=parse_box_shadow(props.get("box-shadow")),
        text_align=props.get("text-align", "left").lower(),
        vertical_align=props.get("vertical-align", "baseline").lower(),
        align_items=props.get("align-items", "normal").lower(),
        justify_content=props.get("justify-content", "normal").lower(),
        padding=_padding(props),
        font_family=safe_font(props.get("font-family")),
        font_size=font_size,
        font_weight=props.get("font-weight", "400"),
        font_style=props.get("font-style", "normal").lower(),
        letter_spacing=props.get("letter-spacing"),
        line_height=line_height,
        text_decoration=(props.get("text-decoration-line") or props.get("text-decoration") or "none").lower(),
        text_transform=props.get("text-transform", "none").lower(),
        color=props.get("color", "rgb(0, 0, 0)"),
    )


# --------------------------------------------------------------------------- #
# JSON snapshots
# --------------------------------------------------------------------------- #


def _kebab(key: str) -> str:
    return CAMEL_RE.sub(r"-\1", key).lower()


def _rect(value: Any) -> Rect:
    if not value:
        return Rect()
    if isinstance(value, dict):
        return Rect(
            float(value.get("x", value.get("left", 0.0))),
            float(value.get("y", value.get("top", 0.0))),
            float(value.get("width", 0.0)),
            float(value.get("height", 0.0)),
        )
    if isinstance(value, str):
        value = value.replace(",", " ").split()
    x, y, width, height = (list(value) + [0, 0, 0, 0])[:4]
    return Rect(float(x), float(y), float(width), float(height))


def _z_index(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def tree_from_dict(data: Dict[str, Any]) -> StyledBox:
    rect = _rect(data.get("rect"))
    props = {_kebab(k): str(v) for k, v in (data.get("style") or {}).items()}
    z_index = data.get("zIndex", data.get("z_index", props.get("z-index")))

    box = StyledBox(
        tag=str(data.get("tag", "div")).lower(),
        rect=rect,
        style=style_from_declarations(props, rect),
        z_index=_z_index(z_index),
        icon_markup=data.get("iconMarkup") or data.get("icon_markup"),
        notes=data.get("notes"),
    )
    image_data = data.get("imageData") or data.get("image_data")
    if image_data:
        box.image_data = base64.b64decode(image_data)

    for child in data.get("children") or []:
        if isinstance(child, str):
            box.children.append(TextLeaf(child))
        elif "tag" not in child and "text" in child:
            box.children.append(TextLeaf(str(child["text"])))
        else:
            box.children.append(tree_from_dict(child))
    return box


def load_json_snapshot(path: Union[str, Path]) -> StyledBox:
    path = Path(path)
    if not path.exists():
        raise InputMissingError("Snapshot not found", str(path))
    data = json.loads(path.read_text(encoding="utf-8"))
    if "root" in data:
        root = tree_from_dict(data["root"])
        root.notes = data.get("notes", root.notes)
    else:
        root = tree_from_dict(data)
    logger.info(f"Loaded JSON snapshot {path.name}")
    return root


# --------------------------------------------------------------------------- #
# HTML snapshots
# --------------------------------------------------------------------------- #


def _image_bytes(src: Optional[str], base_dir: Optional[Path]) -> Optional[bytes]:
    if not src:
        return None
    if src.startswith("data:"):
        header, _, payload = src.partition(",")
        if ";base64" not in header:
            return None
        return base64.b64decode(payload)
    if base_dir is None or src.startswith(("http://", "https://")):
        logger.debug(f"Skipping image {src}")
        return None
    candidate = (base_dir / src).resolve()
    if candidate.exists():
        return candidate.read_bytes()
    logger.debug(f"Image not found: {candidate}")
    return None


def _box_from_tag(tag: Tag, base_dir: Optional[Path]) -> StyledBox:
    rect = _rect(tag.get("data-rect"))
    props = parse_declarations(tag.get("style"))
    box = StyledBox(
        tag=tag.name.lower(),
        rect=rect,
        style=style_from_declarations(props, rect),
        z_index=_z_index(tag.get("data-z-index", props.get("z-index"))),
        notes=tag.get("data-notes"),
    )
    if box.tag == "svg":
        box.icon_markup = str(tag)
        return box
    if box.tag == "img":
        box.image_data = _image_bytes(tag.get("src"), base_dir)
        return box

    for child in tag.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, NavigableString):
            box.children.append(TextLeaf(str(child)))
        elif isinstance(child, Tag) and child.name not in ("script", "style", "template"):
            box.children.append(_box_from_tag(child, base_dir))
    return box


def load_html_snapshot(markup: str, base_dir: Optional[Union[str, Path]] = None) -> StyledBox:
    """Build the tree from the outermost element that carries ``data-rect``."""
    soup = BeautifulSoup(markup, "lxml")
    root = soup.select_one("[data-rect]")
    if root is None:
        raise InputMissingError("No element with rendered geometry", "expected a data-rect attribute")
    return _box_from_tag(root, Path(base_dir) if base_dir else None)


def load_snapshot(path: Union[str, Path]) -> StyledBox:
    """Load a ``.json`` or HTML snapshot from disk."""
    path = Path(path)
    if path.suffix.lower() == ".json":
        return load_json_snapshot(path)
    if not path.exists():
        raise InputMissingError("Snapshot not found", str(path))
    root = load_html_snapshot(path.read_text(encoding="utf-8"), path.parent)
    logger.info(f"Loaded HTML snapshot {path.name}")
    return root
