"""
scoring/weighted_validator.py

Rates projected phase metrics against static thresholds.

Each recognised metric produces one MetricValidation carrying the value,
the threshold it was compared to, a three-level rating, a confidence and
an industry benchmark.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Mapping

from app.domain.evaluation import MetricValue
from app.domain.phases import Phase, parse_phase
from scoring.security_headers import score_security_headers
from scoring.thresholds import (
    ALT_TEXT_RATIO_GOOD,
    PAGE_SIZE_BENCHMARKS,
    PAGE_SIZE_THRESHOLDS,
    PERFORMANCE_BENCHMARKS,
    PERFORMANCE_THRESHOLDS,
    RANGE_TOLERANCE,
    SECURITY_HEADER_BENCHMARK,
    SECURITY_HEADER_GOOD,
    SEO_BENCHMARKS,
    SEO_RANGES,
    RangeThreshold,
    Threshold,
)

logger = logging.getLogger(__name__)

GOOD = "good"
NEEDS_IMPROVEMENT = "needs-improvement"
POOR = "poor"


@dataclass(frozen=True)
class MetricValidation:
    metric: str
    value: float
    threshold: float
    rating: str
    confidence: float
    benchmark: float
    debug: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        if payload["debug"] is None:
            payload.pop("debug")
        return payload


def rate(value: float, threshold: Threshold) -> str:
    """Rate a lower-is-better metric."""
    if value <= threshold.good:
        return GOOD
    if value <= threshold.poor:
        return NEEDS_IMPROVEMENT
    return POOR


def rate_range(value: float, threshold: RangeThreshold) -> str:
    """Rate a metric that should fall inside ``[min, max]``."""
    if threshold.min <= value <= threshold.max:
        return GOOD
    lower = threshold.min * (1 - RANGE_TOLERANCE)
    upper = threshold.max * (1 + RANGE_TOLERANCE)
    if lower <= value <= upper:
        return NEEDS_IMPROVEMENT
    return POOR


def _as_number(value: MetricValue) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _as_mapping(value: MetricValue) -> Mapping[str, MetricValue]:
    return value if isinstance(value, Mapping) else {}


class WeightedValidator:
    """Stateless metric rater over projected phase subsets."""

    def validate_phase(
        self,
        phase: Phase | str,
        metrics_subset: Mapping[str, MetricValue],
    ) -> list[MetricValidation]:
        """
        Rate every recognised metric in a projected subset.

        Unknown phases and unrecognised metrics are ignored.
        """

        resolved = parse_phase(phase)
        if resolved is Phase.PERFORMANCE:
            validations = self.validate_performance(metrics_subset)
            validations.extend(self.validate_security(_as_mapping(metrics_subset.get("security"))))
            return validations
        if resolved is Phase.SEO:
            return self.validate_seo(_as_mapping(metrics_subset.get("seo")))
        if resolved in (Phase.UI, Phase.FUNCTIONALITY):
            return self.validate_accessibility(_as_mapping(metrics_subset.get("accessibility")))
        return []

    def validate_performance(self, metrics: Mapping[str, MetricValue]) -> list[MetricValidation]:
        validations: list[MetricValidation] = []
        for key, threshold in PERFORMANCE_THRESHOLDS.items():
            value = _as_number(metrics.get(key))
            if value is None:
                continue
            confidence, benchmark = PERFORMANCE_BENCHMARKS[key]
            validations.append(
                MetricValidation(
                    metric=key,
                    value=value,
                    threshold=threshold.good,
                    rating=rate(value, threshold),
                    confidence=confidence,
                    benchmark=benchmark,
                )
            )
        validations.extend(self._validate_page_size(metrics.get("page_size")))
        return validations

    def _validate_page_size(self, page_size: MetricValue) -> list[MetricValidation]:
        # The capture service reports either a bare byte count or a breakdown.
        if _as_number(page_size) is not None:
            sizes: Mapping[str, MetricValue] = {"total": page_size}
        else:
            sizes = _as_mapping(page_size)

        validations: list[MetricValidation] = []
        for part, threshold in PAGE_SIZE_THRESHOLDS.items():
            value = _as_number(sizes.get(part))
            if value is None:
                continue
            validations.append(
                MetricValidation(
                    metric=f"page_size.{part}",
                    value=value,
                    threshold=threshold.good,
                    rating=rate(value, threshold),
                    confidence=0.9,
                    benchmark=PAGE_SIZE_BENCHMARKS[part],
                )
            )
        return validations

    def validate_security(self, security: Mapping[str, MetricValue]) -> list[MetricValidation]:
        if not security:
            return []

        validations: list[MetricValidation] = []
        https = security.get("https")
        if isinstance(https, bool):
            validations.append(
                MetricValidation(
                    metric="https",
                    value=1.0 if https else 0.0,
                    threshold=1.0,
                    rating=GOOD if https else POOR,
                    confidence=1.0,
                    benchmark=1.0,
                )
            )

        headers = _as_mapping(security.get("headers"))
        header_score = score_security_headers(headers)
        validations.append(
            MetricValidation(
                metric="security_headers",
                value=header_score.weighted_score,
                threshold=SECURITY_HEADER_GOOD,
                rating=header_score.rating,
                confidence=0.95,
                benchmark=SECURITY_HEADER_BENCHMARK,
                debug={
                    "achieved_weight": header_score.achieved_weight,
                    "max_weight": header_score.max_weight,
                    "header_presence": header_score.presence,
                },
            )
        )
        logger.debug(
            "Security header score %.3f (%s/%s)",
            header_score.weighted_score,
            header_score.achieved_weight,
            header_score.max_weight,
        )
        return validations

    def validate_seo(self, seo: Mapping[str, MetricValue]) -> list[MetricValidation]:
        lengths: dict[str, float] = {}
        title = seo.get("title")
        if isinstance(title, str) and title:
            lengths["title_length"] = float(len(title))
        description = seo.get("description")
        if isinstance(description, str) and description:
            lengths["description_length"] = float(len(description))
        h1_count = _as_number(_as_mapping(seo.get("headings")).get("h1_count"))
        if h1_count is None:
            h1_count = _as_number(seo.get("h1_count"))
        if h1_count is not None:
            lengths["h1_count"] = h1_count

        validations: list[MetricValidation] = []
        for key, value in lengths.items():
            window = SEO_RANGES[key]
            validations.append(
                MetricValidation(
                    metric=key,
                    value=value,
                    threshold=window.max,
                    rating=rate_range(value, window),
                    confidence=1.0,
                    benchmark=SEO_BENCHMARKS[key],
                )
            )
        return validations

    def validate_accessibility(self, accessibility: Mapping[str, MetricValue]) -> list[MetricValidation]:
        with_alt = _as_number(accessibility.get("images_with_alt"))
        total = _as_number(accessibility.get("total_images"))
        if with_alt is None or not total:
            return []
        ratio = with_alt / total
        return [
            MetricValidation(
                metric="alt_text_ratio",
                value=round(ratio, 2),
                threshold=ALT_TEXT_RATIO_GOOD,
                rating=GOOD if ratio >= ALT_TEXT_RATIO_GOOD else POOR,
                confidence=1.0,
                benchmark=1.0,
            )
        ]


_default_validator = WeightedValidator()


def validate_phase(
    phase: Phase | str,
    metrics_subset: Mapping[str, MetricValue],
) -> list[MetricValidation]:
    return _default_validator.validate_phase(phase, metrics_subset)
