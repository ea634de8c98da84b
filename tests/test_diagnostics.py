# tests/test_diagnostics.py
"""Tests for quantile/median and summarize_diagnostics"""

import math

import pytest

from pdf_document import TextItem
from pdf_page_text import (
    ExtractorConfig,
    cluster_lines_with_diagnostics,
    median,
    quantile,
    summarize_diagnostics,
)


def summarize(items, rotation=0, styles=None, cfg=None):
    lines, diag = cluster_lines_with_diagnostics(items, styles or {}, rotation, cfg)
    return summarize_diagnostics(diag, len(lines), rotation, cfg)


def item(text, x, y, h=10.0, transform=None):
    return TextItem(text=text, transform=transform or (h, 0.0, 0.0, h, x, y), height=h)


# =============================================================================
# Tests: Statistics
# =============================================================================

class TestQuantile:
    """Tests for linear-interpolation quantiles"""

    def test_median_even(self):
        assert median([4, 1, 3, 2]) == 2.5

    def test_median_odd(self):
        assert median([5, 1, 3]) == 3

    def test_empty_is_zero(self):
        assert quantile([], 0.5) == 0
        assert quantile([], 0.95) == 0
        assert median([]) == 0

    def test_interpolates_between_ranks(self):
        assert quantile([0, 10], 0.95) == pytest.approx(9.5)
        assert quantile([1, 2, 3, 4, 5], 0.25) == 2

    def test_single_value(self):
        assert quantile([7], 0.95) == 7

    def test_upper_bound(self):
        assert quantile([1, 2, 3], 1.0) == 3


# =============================================================================
# Tests: Flags
# =============================================================================

class TestFlags:
    """Tests for boolean quality flags"""

    def test_empty_page_all_false(self):
        flags, metrics = summarize([])
        assert not any(flags.values())
        assert metrics == {
            "totalItems": 0,
            "totalLines": 0,
            "angles": {"deg0": 0, "deg90": 0, "deg180": 0, "deg270": 0, "other": 0},
            "jitterPxP95": 0,
            "medianItemHeight": 0,
            "medianItemStrLen": 0,
        }

    def test_flag_names(self):
        flags, _ = summarize([item("Hello", 0, 0)])
        assert set(flags) == {
            "pageRotated", "rotatedTextDetected", "nonOrthogonalAnglesDetected", "skewDetected",
            "verticalTextDetected", "highLineJitter", "manyTinyItems", "suspiciousAnglesShare",
        }

    @pytest.mark.parametrize("rotation,expected", [(0, False), (360, False), (90, True), (-180, True)])
    def test_page_rotated(self, rotation, expected):
        flags, _ = summarize([item("x", 0, 0)], rotation=rotation)
        assert flags["pageRotated"] is expected

    def test_many_tiny_items(self):
        items = [item("a", (i % 50) * 10, (i // 50) * 20) for i in range(500)]
        flags, metrics = summarize(items)
        assert flags["manyTinyItems"] is True
        assert metrics["totalItems"] == 500
        assert metrics["medianItemStrLen"] == 1

    def test_tiny_items_below_count(self):
        items = [item("a", i * 10, 0) for i in range(399)]
        flags, _ = summarize(items)
        assert flags["manyTinyItems"] is False

    def test_45_degree_item(self):
        c = math.cos(math.radians(45)) * 10
        flags, metrics = summarize([item("x", 0, 0, transform=(c, c, -c, c, 0, 0))])
        assert flags["nonOrthogonalAnglesDetected"] is True
        assert flags["rotatedTextDetected"] is True
        assert flags["suspiciousAnglesShare"] is True
        assert flags["skewDetected"] is True
        assert metrics["angles"]["other"] == 1

    def test_suspicious_share_threshold(self):
        c = math.cos(math.radians(45)) * 10
        odd = [item("x", 0, 0, transform=(c, c, -c, c, 0, 0))]
        # 1 of 50 is exactly 2%, not above it
        flags, _ = summarize(odd + [item("y", 0, i * 20) for i in range(49)])
        assert flags["nonOrthogonalAnglesDetected"] is True
        assert flags["suspiciousAnglesShare"] is False
        flags, _ = summarize(odd + [item("y", 0, i * 20) for i in range(48)])
        assert flags["suspiciousAnglesShare"] is True

    def test_rotated_180_text_is_not_rotated_text(self):
        flags, _ = summarize([item("x", 0, 0, transform=(-10, 0, 0, -10, 0, 0))])
        assert flags["rotatedTextDetected"] is False
        assert flags["skewDetected"] is False

    def test_high_line_jitter(self):
        items = [item("s", 0, y, h=4.0) for y in (200, 300, 400, 500)]
        items += [item("a", 0, 100, h=16.0), item("b", 10, 107.5, h=16.0), item("c", 20, 92.5, h=16.0)]
        flags, metrics = summarize(items)
        assert metrics["medianItemHeight"] == 4.0
        assert metrics["jitterPxP95"] == 7.5
        assert flags["highLineJitter"] is True

    def test_low_jitter(self):
        flags, metrics = summarize([item("a", 0, 100), item("b", 10, 104)])
        assert metrics["jitterPxP95"] == pytest.approx(3.8)
        assert flags["highLineJitter"] is False

    def test_metrics_rounding(self):
        _, metrics = summarize([item("a", 0, 0, h=10.121), item("b", 0, 50, h=10.123)])
        assert metrics["medianItemHeight"] == 10.12

    def test_configurable_thresholds(self):
        cfg = ExtractorConfig(tiny_items_min_count=3)
        flags, _ = summarize([item("a", i * 10, 0) for i in range(3)], cfg=cfg)
        assert flags["manyTinyItems"] is True


class TestExtractorConfigFromEnv:
    """Tests for ExtractorConfig.from_env"""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PDF_TEXT_TINY_ITEMS_MIN_COUNT", raising=False)
        assert ExtractorConfig.from_env() == ExtractorConfig()

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("PDF_TEXT_TINY_ITEMS_MIN_COUNT", "10")
        monkeypatch.setenv("PDF_TEXT_SUSPICIOUS_ANGLE_SHARE", "0.5")
        cfg = ExtractorConfig.from_env()
        assert cfg.tiny_items_min_count == 10
        assert isinstance(cfg.tiny_items_min_count, int)
        assert cfg.suspicious_angle_share == 0.5

    def test_malformed_value_names_the_variable(self, monkeypatch):
        monkeypatch.setenv("PDF_TEXT_TINY_ITEMS_MIN_COUNT", "abc")
        with pytest.raises(ValueError, match="PDF_TEXT_TINY_ITEMS_MIN_COUNT"):
            ExtractorConfig.from_env()
