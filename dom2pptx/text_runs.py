from __future__ import annotations

import logging
import re
from typing import List, Optional

from .config import DEFAULT_FONT_FACE, DEFAULT_TEXT_COLOR
from .exceptions import Diagnostics
from .model import UNDERLINE_BORDER_TAGS, StyledBox, TextLeaf, TextRun
from .units import has_paint, letter_spacing_pt, px_to_pt, resolve_color

logger = logging.getLogger(__name__)

WHITESPACE_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text or "")


def is_bold(weight: Optional[str]) -> bool:
    if not weight:
        return False
    value = str(weight).strip().lower()
    if value.isdigit():
        return int(value) >= 600
    return value in {"bold", "bolder"}


class TextRunFlattener:
    """Flattens the inline content of an element into ordered text runs."""

    def __init__(self, diagnostics: Optional[Diagnostics] = None):
        self.diagnostics = diagnostics

    def flatten(self, element: StyledBox) -> List[TextRun]:
        runs = self._collect(element, element)
        if runs:
            runs[0].text = runs[0].text.lstrip()
            runs[-1].text = runs[-1].text.rstrip()
        return [run for run in runs if run.text or run.break_line]

    def _collect(self, element: StyledBox, root: StyledBox) -> List[TextRun]:
        runs: List[TextRun] = []
        if not element.style.is_visible():
            return runs
        for child in element.children:
            if isinstance(child, TextLeaf):
                text = collapse_whitespace(child.text)
                transform = element.style.text_transform
                if transform == "uppercase":
                    text = text.upper()
                elif transform == "lowercase":
                    text = text.lower()
                if not text:
                    continue
                self._append(runs, self._run(text, element, root))
            elif child.tag == "br":
                runs.append(TextRun.line_break())
            else:
                for run in self._collect(child, root):
                    self._append(runs, run)
        return runs

    def _run(self, text: str, element: StyledBox, root: StyledBox) -> TextRun:
        style = element.style
        color = resolve_color(style.color, style.opacity, self.diagnostics)
        run = TextRun(
            text=text,
            color=color.hex if color else DEFAULT_TEXT_COLOR,
            font_size_pt=px_to_pt(style.font_size),
            bold=is_bold(style.font_weight),
            italic=style.font_style in ("italic", "oblique"),
            font_face=style.font_family or DEFAULT_FONT_FACE,
            letter_spacing_pt=letter_spacing_pt(style.letter_spacing, style.font_size),
        )
        if color and color.transparency > 0:
            run.transparency = color.transparency

        if "underline" in (style.text_decoration or ""):
            run.underline = True
        elif element.tag in UNDERLINE_BORDER_TAGS and style.border_bottom.drawn:
            border = resolve_color(style.border_bottom.color, 1.0, self.diagnostics)
            if border is not None:
                run.underline = True
                run.underline_color = border.hex

        if element is not root and element.is_inline:
            background = resolve_color(style.background_color, style.opacity, self.diagnostics)
            if has_paint(background):
                run.highlight = background.hex
        return run

    def _append(self, runs: List[TextRun], run: TextRun):
        if runs and self._can_merge(runs[-1], run):
            runs[-1].text += run.text
        else:
            runs.append(run)

    def _can_merge(self, a: TextRun, b: TextRun) -> bool:
        if a.break_line or b.break_line:
            return False
        return (
            a.color == b.color
            and a.font_size_pt == b.font_size_pt
            and a.bold == b.bold
            and a.italic == b.italic
            and a.font_face == b.font_face
            and a.underline == b.underline
            and a.underline_color == b.underline_color
            and a.letter_spacing_pt == b.letter_spacing_pt
            and a.transparency == b.transparency
            and a.highlight == b.highlight
        )
