from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from .config import ExportOptions
from .exceptions import Diagnostic
from .provider import load_snapshot
from .rasterizer import PillowRasterizer, Rasterizer
from .sink import PptxSink
from .walker import ExportResult, export_sync

logger = logging.getLogger(__name__)


def convert(
    snapshot: Union[str, Path],
    output_pptx: Union[str, Path],
    notes: Optional[str] = None,
    options: Optional[ExportOptions] = None,
    rasterizer: Optional[Rasterizer] = None,
    on_diagnostic: Optional[Callable[[Diagnostic], None]] = None,
) -> ExportResult:
    """Convert a JSON or HTML snapshot file into a ``.pptx`` file."""
    options = options or ExportOptions()
    root = load_snapshot(snapshot)
    sink = PptxSink()
    result = export_sync(
        root,
        sink,
        options,
        rasterizer or PillowRasterizer(options.raster_scale),
        on_diagnostic,
        notes,
    )
    sink.save(output_pptx)
    if result.diagnostics:
        logger.info(f"{len(result.diagnostics)} diagnostic(s) reported for {Path(snapshot).name}")
    return result
