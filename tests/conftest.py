"""
Pytest configuration for dom2pptx
"""

import logging
import sys
from pathlib import Path

import pytest

from dom2pptx.model import Rect, ResolvedStyle, StyledBox, TextLeaf


@pytest.fixture(autouse=True)
def configure_logging():
    """Console-only logging, warnings and up."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(name)s - %(levelname)s - %(message)s"))

    root_logger.addHandler(console_handler)
    root_logger.setLevel(logging.WARNING)

    yield

    root_logger.handlers.clear()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    import tempfile

    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


def _box(tag="div", x=0.0, y=0.0, w=100.0, h=50.0, children=None, z=0, **style):
    kids = []
    for child in children or []:
        kids.append(TextLeaf(child) if isinstance(child, str) else child)
    return StyledBox(tag=tag, rect=Rect(x, y, w, h), style=ResolvedStyle(**style), z_index=z, children=kids)


@pytest.fixture
def make_box():
    """Factory for styled boxes; strings in ``children`` become text leaves."""
    return _box


@pytest.fixture
def make_root():
    """Factory for a full-slide root box."""

    def factory(children=None, **style):
        return _box("body", 0, 0, 960, 540, children=children, **style)

    return factory
