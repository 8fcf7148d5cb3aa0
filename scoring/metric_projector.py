"""
scoring/metric_projector.py

Selects and normalizes the metric subset relevant to one phase from a
full evaluation snapshot. Deterministic, no side effects.
"""

from __future__ import annotations

import math
import re
from typing import Mapping

from app.domain.errors import MetricsValidationError
from app.domain.evaluation import EvaluationSnapshot, MetricValue
from app.domain.phases import Phase, parse_phase

# ---------------------------------------------------------------------------
# Static projection tables
# ---------------------------------------------------------------------------

PHASE_FIELDS: dict[Phase, tuple[str, ...]] = {
    Phase.VISION: (),
    Phase.UI: (
        "colorContrast",
        "fontSizes",
        "responsiveness",
        "accessibility",
    ),
    Phase.FUNCTIONALITY: (
        "brokenLinks",
        "formFunctionality",
        "interactiveElements",
        "accessibility",
    ),
    Phase.PERFORMANCE: (
        "loadTime",
        "domContentLoaded",
        "firstPaint",
        "firstContentfulPaint",
        "largestContentfulPaint",
        "cumulativeLayoutShift",
        "timeToInteractive",
        "totalBlockingTime",
        "ttfb",
        "pageSize",
        "requests",
        "security",
    ),
    Phase.SEO: (
        "seo",
        "lighthouse",
    ),
    Phase.OVERALL: (),
    Phase.RECOMMENDATIONS: (),
}

KEY_ABBREVIATIONS: dict[str, str] = {
    "loadTime": "load_ms",
    "domContentLoaded": "dcl_ms",
    "firstPaint": "fp",
    "firstContentfulPaint": "fcp",
    "largestContentfulPaint": "lcp",
    "cumulativeLayoutShift": "cls",
    "timeToInteractive": "tti",
    "totalBlockingTime": "tbt",
    "firstInputDelay": "fid",
    "estimatedFid": "fid",
    "securityHeaders": "headers",
    "isHttps": "https",
    "colorContrast": "contrast",
    "lowContrastElements": "low_contrast",
    "formFunctionality": "forms",
    "formsWithSubmitButton": "forms_with_submit",
    "metaDescription": "description",
    "imagesWithAltText": "images_with_alt",
    "ariaAttributesCount": "aria_count",
    "keyboardNavigable": "keyboard_nav",
}

DECIMAL_PLACES = 2

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def canonical_key(key: str) -> str:
    """
    Rewrite one metric key into its compact canonical form.

    Known keys use the abbreviation table; anything else becomes
    snake_case. Hyphenated keys such as header names keep their hyphens.
    """

    abbreviated = KEY_ABBREVIATIONS.get(key)
    if abbreviated is not None:
        return abbreviated
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def normalize_value(value: object) -> MetricValue:
    """
    Recursively round numeric leaves and canonicalize mapping keys.

    Raises:
        MetricsValidationError: If the value is not a metric value.
    """

    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return round(value, DECIMAL_PLACES)
    if isinstance(value, Mapping):
        normalized: dict[str, MetricValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise MetricsValidationError(f"metric keys must be strings, got {type(key).__name__}")
            normalized[canonical_key(key)] = normalize_value(item)
        return normalized
    if isinstance(value, (list, tuple)):
        return [normalize_value(item) for item in value]
    raise MetricsValidationError(f"unsupported metric value type: {type(value).__name__}")


class MetricProjector:
    """Projects evaluation snapshots onto per-phase allowlists."""

    def __init__(self, phase_fields: Mapping[Phase, tuple[str, ...]] | None = None) -> None:
        self._phase_fields = dict(phase_fields or PHASE_FIELDS)

    def fields_for(self, phase: Phase | str) -> tuple[str, ...]:
        resolved = parse_phase(phase)
        if resolved is None:
            return ()
        return self._phase_fields.get(resolved, ())

    def project(self, phase: Phase | str, snapshot: EvaluationSnapshot) -> dict[str, MetricValue]:
        """Return the normalized metric subset for ``phase``.

        Unrecognised phases yield an empty subset. Fields missing from
        the snapshot are omitted rather than reported as None.

        Args:
            phase: Phase enum member or phase name.
            snapshot: Full evaluation snapshot.

        Returns:
            A new dict keyed by canonical metric names.
        """
        subset: dict[str, MetricValue] = {}
        for field_name in self.fields_for(phase):
            if field_name not in snapshot.metrics:
                continue
            subset[canonical_key(field_name)] = normalize_value(snapshot.metrics[field_name])
        return subset


_default_projector = MetricProjector()


def project(phase: Phase | str, snapshot: EvaluationSnapshot) -> dict[str, MetricValue]:
    """Module-level shortcut using the default allowlists."""
    return _default_projector.project(phase, snapshot)
