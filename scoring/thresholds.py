"""
scoring/thresholds.py

Static threshold tables used to rate individual metrics.
Values follow the Core Web Vitals and common SEO guidance.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Threshold:
    """Upper bounds for lower-is-better metrics."""

    good: float
    poor: float


@dataclass(frozen=True)
class RangeThreshold:
    """Target window for metrics that should fall inside [min, max]."""

    min: float
    max: float


# Tolerance applied around a RangeThreshold before a value is rated poor.
RANGE_TOLERANCE: float = 0.2


PERFORMANCE_THRESHOLDS: dict[str, Threshold] = {
    "load_ms": Threshold(good=2500, poor=4000),
    "fcp": Threshold(good=1800, poor=3000),
    "lcp": Threshold(good=2500, poor=4000),
    "cls": Threshold(good=0.1, poor=0.25),
    "fid": Threshold(good=100, poor=300),
    "tti": Threshold(good=3800, poor=7300),
    "ttfb": Threshold(good=600, poor=1800),
    "tbt": Threshold(good=200, poor=600),
}

# (confidence, benchmark) per performance metric
PERFORMANCE_BENCHMARKS: dict[str, tuple[float, float]] = {
    "load_ms": (0.9, 2000),
    "fcp": (0.9, 1500),
    "lcp": (0.9, 2000),
    "cls": (0.9, 0.05),
    "fid": (0.8, 50),
    "tti": (0.85, 3000),
    "ttfb": (0.9, 400),
    "tbt": (0.85, 150),
}

PAGE_SIZE_THRESHOLDS: dict[str, Threshold] = {
    "total": Threshold(good=2_000_000, poor=5_000_000),
    "document": Threshold(good=100_000, poor=250_000),
}

PAGE_SIZE_BENCHMARKS: dict[str, float] = {
    "total": 1_500_000,
    "document": 75_000,
}

SEO_RANGES: dict[str, RangeThreshold] = {
    "title_length": RangeThreshold(min=30, max=60),
    "description_length": RangeThreshold(min=120, max=160),
    "h1_count": RangeThreshold(min=1, max=1),
}

SEO_BENCHMARKS: dict[str, float] = {
    "title_length": 55,
    "description_length": 150,
    "h1_count": 1,
}

ALT_TEXT_RATIO_GOOD: float = 1.0

SECURITY_HEADER_GOOD: float = 0.6
SECURITY_HEADER_NEEDS_IMPROVEMENT: float = 0.4
SECURITY_HEADER_BENCHMARK: float = 0.7
