# pdf_document.py
"""
Document access on top of PyMuPDF.

Opens a PDF from raw bytes and hands the text layer of one page to the line
reconstructor as a flat list of positioned text items, in PDF user space
(origin bottom-left, larger Y is higher on the page), together with a
font -> style map and the page's declared rotation.
"""

import logging
import math
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)


# ----------------------------
# Errors
# ----------------------------

class PdfTextError(Exception):
    """Base class for extraction failures the caller is expected to handle."""


class PageOutOfRangeError(PdfTextError, IndexError):
    def __init__(self, page, page_count: int):
        self.page = page
        self.page_count = page_count
        super().__init__(
            f"Requested page {page} is out of range. Valid range is 1-{page_count}."
        )


class DocumentDecodeError(PdfTextError):
    """The bytes could not be opened as a PDF, or a page could not be read."""


class WorkspaceEscapeError(PdfTextError, ValueError):
    pass


# ----------------------------
# Data shapes
# ----------------------------

IDENTITY_TRANSFORM: Tuple[float, ...] = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


@dataclass(frozen=True)
class TextItem:
    text: str
    transform: Sequence[float] = IDENTITY_TRANSFORM  # [a, b, c, d, e, f]
    height: float = 0.0  # nominal glyph height, 0 = unknown
    font_name: Optional[str] = None


@dataclass(frozen=True)
class FontStyle:
    vertical: bool = False


@dataclass
class PageContent:
    items: List[TextItem]
    styles: Dict[str, FontStyle] = field(default_factory=dict)
    rotation: int = 0  # declared /Rotate, degrees


# ----------------------------
# Workspace sandboxing
# ----------------------------

def resolve_in_workspace(path: str, workspace: str) -> Path:
    """Resolve ``path`` against ``workspace`` and refuse anything outside it."""
    root = Path(workspace).resolve()
    target = (root / path).resolve()
    if target != root and root not in target.parents:
        raise WorkspaceEscapeError(f"Path escapes workspace root: {path}")
    return target


# ----------------------------
# Open / release
# ----------------------------

def _release_document(doc: fitz.Document) -> None:
    # cleanup: MuPDF has no per-document store, so this shrinks the process-wide one
    try:
        fitz.TOOLS.store_shrink(100)
    except Exception as e:
        logger.warning("pdf doc cleanup warning: %s", e)
    # destroy
    try:
        doc.close()
    except Exception as e:
        logger.warning("pdf doc destroy warning: %s", e)


@contextmanager
def open_document(data: bytes) -> Iterator[fitz.Document]:
    """Open ``data`` as a PDF and guarantee release on every exit path."""
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        # FileDataError / EmptyFileError both derive from these
        raise DocumentDecodeError(f"Cannot open document: {e}") from e
    logger.debug("opened pdf: %d bytes, %d pages", len(data), doc.page_count)
    try:
        yield doc
    finally:
        _release_document(doc)


# ----------------------------
# Text layer (one page)
# ----------------------------

def _page_to_pdf_matrix(page: fitz.Page) -> fitz.Matrix:
    # get_text() reports the unrotated, y-down view; flip back to PDF space
    return ~page.transformation_matrix


def _map_vector(m: fitz.Matrix, dx: float, dy: float) -> Tuple[float, float]:
    return dx * m.a + dy * m.c, dx * m.b + dy * m.d


def _span_transform(span: Dict, line_dir: Tuple[float, float], to_pdf: fitz.Matrix) -> Tuple[float, ...]:
    size = float(span.get("size", 0.0)) or 1.0
    dx, dy = line_dir
    norm = math.hypot(dx, dy) or 1.0
    dx, dy = dx / norm, dy / norm
    # writing direction, and the glyph "up" vector perpendicular to it (y-down view)
    ax, ay = _map_vector(to_pdf, dx * size, dy * size)
    ux, uy = _map_vector(to_pdf, dy * size, -dx * size)
    origin = fitz.Point(span.get("origin", (0.0, 0.0))) * to_pdf
    return (ax, ay, ux, uy, origin.x, origin.y)


def read_page_content(doc: fitz.Document, page_number: int) -> PageContent:
    """Collect span-level text items, font styles and rotation for a 1-based page."""
    try:
        page = doc.load_page(page_number - 1)
        d = page.get_text("dict")
    except (RuntimeError, ValueError) as e:
        raise DocumentDecodeError(f"Cannot read page {page_number}: {e}") from e

    to_pdf = _page_to_pdf_matrix(page)
    items: List[TextItem] = []
    styles: Dict[str, FontStyle] = {}
    for block in d.get("blocks", []):
        if block.get("type") != 0:
            continue
        for ln in block.get("lines", []):
            line_dir = tuple(ln.get("dir", (1.0, 0.0)))
            vertical = ln.get("wmode", 0) == 1
            for span in ln.get("spans", []):
                font = span.get("font") or None
                if font is not None and (vertical or font not in styles):
                    styles[font] = FontStyle(vertical=vertical or styles.get(font, FontStyle()).vertical)
                items.append(TextItem(
                    text=str(span.get("text", "")),
                    transform=_span_transform(span, line_dir, to_pdf),
                    height=float(span.get("size", 0.0)),
                    font_name=font,
                ))

    rotation = page.rotation % 360
    logger.debug("page %d: %d items, %d fonts, rotation %d", page_number, len(items), len(styles), rotation)
    return PageContent(items=items, styles=styles, rotation=rotation)


def read_file_bytes(path: str, workspace: Optional[str] = None) -> bytes:
    if workspace:
        target = resolve_in_workspace(path, workspace)
    else:
        target = Path(os.path.abspath(path))
    return target.read_bytes()
