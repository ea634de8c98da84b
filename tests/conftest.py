from __future__ import annotations

import sys
from pathlib import Path

import fitz
import pytest


# Make the flat top-level modules importable when running `pytest` from anywhere.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


def _make_pdf(pages, rotation=0):
    """Build an in-memory PDF; ``pages`` is a list of [(x, y, text), ...] per page."""
    doc = fitz.open()
    for spans in pages:
        page = doc.new_page()
        for x, y, text in spans:
            page.insert_text((x, y), text, fontsize=11)
        if rotation:
            page.set_rotation(rotation)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def make_pdf():
    return _make_pdf


@pytest.fixture
def sample_pdf_bytes():
    return _make_pdf([[(72, 72, "Hello PDF Tool Sample")]])
