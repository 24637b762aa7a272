"""Compile a rendered, styled box tree into editable slide primitives."""

from .config import ExportOptions
from .convert import convert
from .exceptions import (
    Diagnostic,
    Diagnostics,
    ExportError,
    InputMissingError,
    RasterizationError,
    UnresolvableColorError,
)
from .model import ResolvedStyle, StyledBox, TextLeaf, TextRun
from .provider import load_html_snapshot, load_json_snapshot, load_snapshot, safe_font, tree_from_dict
from .rasterizer import PillowRasterizer, Rasterizer
from .sink import DrawingSink, PptxSink, RecordingSink
from .walker import ExportResult, ExportSession, export, export_sync

__version__ = "0.1.0"

__all__ = [
    "ExportOptions",
    "convert",
    "Diagnostic",
    "Diagnostics",
    "ExportError",
    "InputMissingError",
    "RasterizationError",
    "UnresolvableColorError",
    "ResolvedStyle",
    "StyledBox",
    "TextLeaf",
    "TextRun",
    "load_html_snapshot",
    "load_json_snapshot",
    "load_snapshot",
    "safe_font",
    "tree_from_dict",
    "PillowRasterizer",
    "Rasterizer",
    "DrawingSink",
    "PptxSink",
    "RecordingSink",
    "ExportResult",
    "ExportSession",
    "export",
    "export_sync",
]
