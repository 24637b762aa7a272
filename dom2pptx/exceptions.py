"""Error taxonomy and diagnostics for dom2pptx exports."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

UNRESOLVABLE_COLOR = "unresolvable_color"
RASTERIZATION_FAILURE = "rasterization_failure"
OVERFLOWING_TABLE = "overflowing_table"


class ExportError(Exception):
    """Base exception for export errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class InputMissingError(ExportError):
    """Raised when there is no styled tree or no export target."""

    pass


class UnresolvableColorError(ExportError):
    """Raised when a color representation cannot be parsed."""

    pass


class RasterizationError(ExportError):
    """Raised by rasterizers that cannot produce a bitmap."""

    pass


@dataclass
class Diagnostic:
    kind: str
    message: str
    node: Any = None


@dataclass
class Diagnostics:
    """Collects recoverable conditions of one export.

    Every report is logged, kept in ``items`` and forwarded to ``callback``
    when one is given. Reporting never interrupts emission.
    """

    callback: Optional[Callable[[Diagnostic], None]] = None
    items: List[Diagnostic] = field(default_factory=list)

    def report(self, kind: str, message: str, node: Any = None) -> Diagnostic:
        diagnostic = Diagnostic(kind, message, node)
        logger.warning(f"{kind}: {message}")
        self.items.append(diagnostic)
        if self.callback is not None:
            try:
                self.callback(diagnostic)
            except Exception as exc:
                logger.error(f"Diagnostics callback failed on {kind}: {exc}")
        return diagnostic

    def of_kind(self, kind: str) -> List[Diagnostic]:
        return [d for d in self.items if d.kind == kind]
