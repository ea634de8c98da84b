# pdf_page_text.py
"""
Reading-order text for a single PDF page, plus a layout quality report.

Key principles:
- Lines are rebuilt from span-level text items by baseline clustering with an
  adaptive (height based) tolerance; first matching line wins
- Line order follows the page rotation; items inside a line run left to right
- Diagnostics (angles, skew, vertical writing, baseline jitter, tiny items) are
  gathered in the same pass and reduced to boolean flags
"""

import dataclasses
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from pdf_document import (
    IDENTITY_TRANSFORM,
    FontStyle,
    PageOutOfRangeError,
    TextItem,
    open_document,
    read_file_bytes,
    read_page_content,
)

logger = logging.getLogger(__name__)


# ----------------------------
# Config
# ----------------------------

@dataclass
class ExtractorConfig:
    # angle classification
    angle_tolerance_deg: float = 0.5
    skew_epsilon: float = 1e-3

    # line clustering
    default_item_height: float = 9.0
    line_tol_factor: float = 0.5
    line_tol_min: float = 2.0
    line_tol_max: float = 8.0

    # flags
    jitter_floor: float = 6.0
    jitter_height_factor: float = 0.75
    tiny_items_min_count: int = 400
    tiny_items_max_median_len: float = 2.0
    suspicious_angle_share: float = 0.02

    @classmethod
    def from_env(cls, prefix: str = "PDF_TEXT_") -> "ExtractorConfig":
        """Override defaults from ``PDF_TEXT_<FIELD>`` environment variables."""
        overrides: Dict[str, Any] = {}
        for f in dataclasses.fields(cls):
            raw = os.environ.get(prefix + f.name.upper())
            if raw is None or not raw.strip():
                continue
            caster = int if f.type in (int, "int") else float
            try:
                overrides[f.name] = caster(raw)
            except ValueError:
                raise ValueError(f"Invalid value for {prefix}{f.name.upper()}: {raw!r}") from None
        return cls(**overrides)


# ----------------------------
# Line model
# ----------------------------

@dataclass
class LineItem:
    x: float
    text: str
    y: float
    height: float


@dataclass
class Line:
    baseline: float  # Y of the first item, never updated
    items: List[LineItem] = field(default_factory=list)
    rep_x: float = 0.0  # median item X, filled after clustering

    def text(self) -> str:
        return " ".join(t for t in (i.text.strip() for i in self.items) if t)


@dataclass
class DiagnosticCounters:
    total_items: int = 0
    angles: Dict[str, int] = field(default_factory=lambda: {
        "deg0": 0, "deg90": 0, "deg180": 0, "deg270": 0, "other": 0,
    })
    skew_count: int = 0
    vertical_count: int = 0
    heights: List[float] = field(default_factory=list)
    str_lens: List[int] = field(default_factory=list)
    y_offsets: List[float] = field(default_factory=list)


# ----------------------------
# Angles / statistics
# ----------------------------

def normalize_deg(deg: float) -> float:
    return deg % 360.0


def deg_near(a: float, b: float, eps: float = 0.5) -> bool:
    return abs(((a - b + 540.0) % 360.0) - 180.0) <= eps


def angle_from_transform(a: float, b: float) -> float:
    # atan2(b, a) is the rotation of the text matrix
    return normalize_deg(math.degrees(math.atan2(b, a)))


def classify_angle(deg: float, eps: float = 0.5) -> str:
    for bucket, ref in (("deg0", 0.0), ("deg90", 90.0), ("deg180", 180.0), ("deg270", 270.0)):
        if deg_near(deg, ref, eps):
            return bucket
    return "other"


def quantile(sorted_nums: Sequence[float], q: float) -> float:
    """Piecewise-linear quantile of an ascending sample; 0 for an empty one."""
    if not sorted_nums:
        return 0
    pos = (len(sorted_nums) - 1) * q
    base = int(math.floor(pos))
    rest = pos - base
    if base + 1 < len(sorted_nums):
        return sorted_nums[base] + rest * (sorted_nums[base + 1] - sorted_nums[base])
    return sorted_nums[base]


def median(nums: Sequence[float]) -> float:
    return quantile(sorted(nums), 0.5)


# ----------------------------
# Clustering (line reconstruction)
# ----------------------------

def _line_tolerance(h: float, cfg: ExtractorConfig) -> float:
    return max(cfg.line_tol_min, min(cfg.line_tol_max, h * cfg.line_tol_factor))


def _is_vertical(item: TextItem, styles: Optional[Mapping[str, FontStyle]]) -> bool:
    if not styles or not item.font_name:
        return False
    style = styles.get(item.font_name)
    return bool(style is not None and style.vertical)


def _sort_lines(lines: List[Line], page_rotation: float) -> None:
    # PDF space: larger Y is higher on the page, so visual top-first means Y descending
    rot = normalize_deg(page_rotation)
    if rot == 180:
        lines.sort(key=lambda L: L.baseline)
    elif rot == 90:
        lines.sort(key=lambda L: L.rep_x)
    elif rot == 270:
        lines.sort(key=lambda L: -L.rep_x)
    else:
        lines.sort(key=lambda L: -L.baseline)


def cluster_lines_with_diagnostics(
    items: Sequence[TextItem],
    styles: Optional[Mapping[str, FontStyle]] = None,
    page_rotation: float = 0,
    cfg: Optional[ExtractorConfig] = None,
) -> Tuple[List[Line], DiagnosticCounters]:
    """
    Group text items into lines by baseline Y and put them in reading order.

    Returns:
      - lines: visual top-to-bottom order, items left-to-right within each line
      - diag: counters covering every input item exactly once
    """
    cfg = cfg or ExtractorConfig()
    lines: List[Line] = []
    diag = DiagnosticCounters()

    for it in items:
        a, b, c, d, e, f = it.transform or IDENTITY_TRANSFORM
        x, y = e, f
        h = it.height or abs(d) or cfg.default_item_height
        text = it.text if isinstance(it.text, str) else ""

        diag.total_items += 1
        diag.heights.append(h)
        diag.str_lens.append(len(text))
        diag.angles[classify_angle(angle_from_transform(a, b), cfg.angle_tolerance_deg)] += 1
        if abs(b) > cfg.skew_epsilon or abs(c) > cfg.skew_epsilon:
            diag.skew_count += 1
        if _is_vertical(it, styles):
            diag.vertical_count += 1

        tol = _line_tolerance(h, cfg)
        chosen = next((L for L in lines if abs(L.baseline - y) <= tol), None)
        if chosen is None:
            chosen = Line(baseline=y)
            lines.append(chosen)
        chosen.items.append(LineItem(x=x, text=text, y=y, height=h))
        diag.y_offsets.append(abs(chosen.baseline - y))

    for L in lines:
        L.rep_x = median([i.x for i in L.items])

    _sort_lines(lines, page_rotation)
    for L in lines:
        L.items.sort(key=lambda i: i.x)

    return lines, diag


# ----------------------------
# Diagnostics summary
# ----------------------------

def summarize_diagnostics(
    diag: DiagnosticCounters,
    total_lines: int,
    page_rotation: float = 0,
    cfg: Optional[ExtractorConfig] = None,
) -> Tuple[Dict[str, bool], Dict[str, Any]]:
    cfg = cfg or ExtractorConfig()
    heights_median = median(diag.heights)
    jitter_p95 = quantile(sorted(diag.y_offsets), 0.95)
    median_str_len = median(diag.str_lens)

    angles = dict(diag.angles)
    angle_total = sum(angles.values())
    non_orth_frac = angles["other"] / angle_total if angle_total else 0.0

    flags = {
        "pageRotated": normalize_deg(page_rotation) != 0,
        "rotatedTextDetected": (angles["deg90"] + angles["deg270"] + angles["other"]) > 0,
        "nonOrthogonalAnglesDetected": angles["other"] > 0,
        "skewDetected": diag.skew_count > 0,
        "verticalTextDetected": diag.vertical_count > 0,
        "highLineJitter": jitter_p95 > max(cfg.jitter_floor, heights_median * cfg.jitter_height_factor),
        "manyTinyItems": diag.total_items >= cfg.tiny_items_min_count
        and median_str_len <= cfg.tiny_items_max_median_len,
        "suspiciousAnglesShare": non_orth_frac > cfg.suspicious_angle_share,
    }
    metrics = {
        "totalItems": diag.total_items,
        "totalLines": total_lines,
        "angles": angles,
        "jitterPxP95": round(jitter_p95, 2),
        "medianItemHeight": round(heights_median, 2),
        "medianItemStrLen": median_str_len,
    }
    return flags, metrics


# ----------------------------
# Result
# ----------------------------

@dataclass(frozen=True)
class PageExtraction:
    page: int
    page_count: int
    text: str
    flags: Dict[str, bool]
    metrics: Dict[str, Any]

    @property
    def has_more(self) -> bool:
        return self.page < self.page_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "pageCount": self.page_count,
            "text": self.text,
            "flags": dict(self.flags),
            "metrics": dict(self.metrics),
        }


def build_page_text(lines: Sequence[Line]) -> str:
    return "\n".join(L.text() for L in lines)


def _validate_page_number(page_number: Any, page_count: int) -> None:
    if isinstance(page_number, bool) or not isinstance(page_number, int):
        raise PageOutOfRangeError(page_number, page_count)
    if page_number < 1 or page_number > page_count:
        raise PageOutOfRangeError(page_number, page_count)


# ----------------------------
# Entry points
# ----------------------------

def extract_pdf_page(data: bytes, page_number: int = 1, cfg: Optional[ExtractorConfig] = None) -> PageExtraction:
    cfg = cfg or ExtractorConfig()
    with open_document(data) as doc:
        page_count = doc.page_count
        _validate_page_number(page_number, page_count)
        content = read_page_content(doc, page_number)

    lines, diag = cluster_lines_with_diagnostics(content.items, content.styles, content.rotation, cfg)
    flags, metrics = summarize_diagnostics(diag, len(lines), content.rotation, cfg)
    logger.debug("page %d/%d: %d items -> %d lines", page_number, page_count, diag.total_items, len(lines))
    return PageExtraction(
        page=page_number,
        page_count=page_count,
        text=build_page_text(lines),
        flags=flags,
        metrics=metrics,
    )


def extract_pdf_file(
    path: str,
    page_number: int = 1,
    *,
    workspace: Optional[str] = None,
    cfg: Optional[ExtractorConfig] = None,
) -> PageExtraction:
    return extract_pdf_page(read_file_bytes(path, workspace), page_number, cfg)


def iter_pdf_pages(data: bytes, cfg: Optional[ExtractorConfig] = None) -> Iterator[PageExtraction]:
    page = 1
    while True:
        res = extract_pdf_page(data, page, cfg)
        yield res
        if not res.has_more:
            return
        page += 1
