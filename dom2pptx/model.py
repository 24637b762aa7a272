from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple, Union

from .units import ResolvedColor

# --------------------------------------------------------------------------- #
# Tag classes
# --------------------------------------------------------------------------- #

HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
INLINE_TAGS = {
    "span", "a", "b", "strong", "i", "em", "u", "s", "small", "sub", "sup",
    "code", "mark", "label", "abbr", "cite", "q", "time", "font",
}
# Tags whose bottom border reads as an underline of their own text.
UNDERLINE_BORDER_TAGS = INLINE_TAGS | {"p", "li", "dt", "dd", "blockquote"}
TABLE_SECTION_TAGS = {"thead", "tbody", "tfoot"}
CELL_TAGS = {"td", "th"}

# --------------------------------------------------------------------------- #
# Input model: the Styled Box Tree
# --------------------------------------------------------------------------- #


@dataclass
class Rect:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class BorderEdge:
    width: float = 0.0
    color: Optional[str] = None
    style: str = "none"

    @property
    def drawn(self) -> bool:
        return self.width > 0 and self.style not in ("none", "hidden") and bool(self.color)


@dataclass
class CornerRadii:
    top_left: float = 0.0
    top_right: float = 0.0
    bottom_right: float = 0.0
    bottom_left: float = 0.0

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.top_left, self.top_right, self.bottom_right, self.bottom_left)


@dataclass
class Insets:
    top: float = 0.0
    right: float = 0.0
    bottom: float = 0.0
    left: float = 0.0

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.top, self.right, self.bottom, self.left)


@dataclass
class BoxShadow:
    blur: float = 0.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    color: Optional[str] = None
    inset: bool = False


@dataclass
class GradientStop:
    color: str
    position: float  # 0..100


@dataclass
class Gradient:
    kind: str = "linear"  # linear | radial
    angle: float = 180.0  # CSS degrees, 180 = top to bottom
    center: Tuple[float, float] = (50.0, 50.0)  # percent, radial only
    stops: List[GradientStop] = field(default_factory=list)


@dataclass
class ResolvedStyle:
    display: str = "block"
    visibility: str = "visible"
    opacity: float = 1.0
    background_color: Optional[str] = None
    background_image: Optional[Gradient] = None
    border_top: BorderEdge = field(default_factory=BorderEdge)
    border_right: BorderEdge = field(default_factory=BorderEdge)
    border_bottom: BorderEdge = field(default_factory=BorderEdge)
    border_left: BorderEdge = field(default_factory=BorderEdge)
    radii: CornerRadii = field(default_factory=CornerRadii)
    box_shadow: Optional[BoxShadow] = None
    text_align: str = "left"
    vertical_align: str = "baseline"
    align_items: str = "normal"
    justify_content: str = "normal"
    padding: Insets = field(default_factory=Insets)
    font_family: str = "Arial"
    font_size: float = 16.0
    font_weight: str = "400"
    font_style: str = "normal"
    letter_spacing: Optional[str] = None
    line_height: Optional[float] = None
    text_decoration: str = "none"
    text_transform: str = "none"
    color: Optional[str] = "rgb(0, 0, 0)"

    @property
    def borders(self) -> Tuple[BorderEdge, BorderEdge, BorderEdge, BorderEdge]:
        return (self.border_top, self.border_right, self.border_bottom, self.border_left)

    def is_visible(self) -> bool:
        return self.display != "none" and self.visibility != "hidden" and self.opacity > 0


@dataclass
class TextLeaf:
    text: str


@dataclass(eq=False)
class StyledBox:
    """One rendered element. Compared and hashed by identity."""

    tag: str = "div"
    rect: Rect = field(default_factory=Rect)
    style: ResolvedStyle = field(default_factory=ResolvedStyle)
    z_index: int = 0
    children: List[Union["StyledBox", TextLeaf]] = field(default_factory=list)
    icon_markup: Optional[str] = None
    image_data: Optional[bytes] = None
    notes: Optional[str] = None

    def elements(self) -> List["StyledBox"]:
        return [c for c in self.children if isinstance(c, StyledBox)]

    def descendants(self) -> Iterator["StyledBox"]:
        for child in self.elements():
            yield child
            yield from child.descendants()

    @property
    def is_heading(self) -> bool:
        return self.tag in HEADING_TAGS

    @property
    def is_inline(self) -> bool:
        return self.tag in INLINE_TAGS


Node = Union[StyledBox, TextLeaf]

# --------------------------------------------------------------------------- #
# Output model: text runs and drawing primitives
# --------------------------------------------------------------------------- #


@dataclass
class TextRun:
    text: str
    color: Optional[str] = None
    font_size_pt: Optional[float] = None
    bold: bool = False
    italic: bool = False
    font_face: Optional[str] = None
    underline: bool = False
    underline_color: Optional[str] = None
    letter_spacing_pt: Optional[float] = None
    transparency: Optional[int] = None
    highlight: Optional[str] = None
    break_line: bool = False

    @classmethod
    def line_break(cls) -> "TextRun":
        return cls(text="", break_line=True)


@dataclass
class LayoutFrame:
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def moved(self, dy: float) -> "LayoutFrame":
        return LayoutFrame(self.left, self.top + dy, self.width, self.height)


@dataclass
class Fill:
    color: str
    transparency: int = 0

    @classmethod
    def of(cls, color: ResolvedColor) -> "Fill":
        return cls(color.hex, color.transparency)


@dataclass
class Line:
    color: str
    width_pt: float
    dash: str = "solid"  # solid | dash | dot


@dataclass
class Shadow:
    blur_pt: float
    offset_pt: float
    angle: float
    opacity: float
    color: str = "000000"


SHAPE_RECT = "rect"
SHAPE_ROUND_RECT = "roundRect"
SHAPE_TOP_ROUND_RECT = "topRoundRect"
SHAPE_ELLIPSE = "ellipse"
SHAPE_LINE = "line"


@dataclass
class ShapePrimitive:
    kind: str
    frame: LayoutFrame
    fill: Optional[Fill] = None
    line: Optional[Line] = None
    shadow: Optional[Shadow] = None
    corner_radius: float = 0.0  # fraction of half the shorter side
    rotation: float = 0.0


@dataclass
class TextBlock:
    frame: LayoutFrame
    runs: List[TextRun]
    align: str = "left"
    valign: str = "top"
    line_spacing_pt: Optional[float] = None
    inset: float = 0.0


@dataclass
class ImagePrimitive:
    frame: LayoutFrame
    data: bytes


@dataclass
class TableCell:
    runs: List[TextRun] = field(default_factory=list)
    fill: Optional[Fill] = None
    borders: List[Optional[Line]] = field(default_factory=lambda: [None, None, None, None])
    align: str = "left"
    valign: str = "top"
    padding: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)


@dataclass
class TablePrimitive:
    frame: LayoutFrame
    col_widths: List[float]
    row_heights: List[float]
    rows: List[List[TableCell]]


Primitive = Union[ShapePrimitive, TextBlock, ImagePrimitive, TablePrimitive]


@dataclass
class SlideBackground:
    color: Optional[ResolvedColor] = None
    image: Optional[bytes] = None
