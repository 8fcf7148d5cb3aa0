"""
tests/test_metric_projector.py

Pytest unit tests for MetricProjector.

Coverage
--------
- Per-phase allowlists (SEO, Performance, UI)
- Empty subsets for Vision, Overall, Recommendations and unknown phases
- Key canonicalization and 2-decimal rounding
- Snapshot immutability
"""

from __future__ import annotations

import pytest

from app.domain.errors import MetricsValidationError
from app.domain.evaluation import EvaluationSnapshot
from app.domain.phases import Phase
from scoring.metric_projector import MetricProjector, canonical_key, normalize_value, project


@pytest.fixture()
def projector() -> MetricProjector:
    return MetricProjector()


class TestAllowlists:
    def test_seo_contains_only_seo_and_lighthouse(self, projector, snapshot) -> None:
        subset = projector.project(Phase.SEO, snapshot)
        assert set(subset) == {"seo", "lighthouse"}

    def test_seo_numeric_leaves_are_rounded(self, projector, snapshot) -> None:
        subset = projector.project("SEO", snapshot)
        assert subset["lighthouse"]["performance"] == 0.91
        assert subset["lighthouse"]["best_practices"] == 0.87

    def test_performance_pulls_timings_sizes_and_security(self, projector, snapshot) -> None:
        subset = projector.project(Phase.PERFORMANCE, snapshot)
        assert subset["load_ms"] == 1234.57
        assert subset["fcp"] == 812.35
        assert subset["cls"] == 0.05
        assert subset["tbt"] == 150.13
        assert subset["page_size"] == {"total": 1_500_000, "document": 40_000}
        assert subset["security"]["https"] is True
        assert "seo" not in subset

    def test_ui_rewrites_nested_keys(self, projector, snapshot) -> None:
        subset = projector.project(Phase.UI, snapshot)
        assert subset["contrast"] == {"low_contrast": 3, "ratio": 4.57}
        assert subset["accessibility"]["images_with_alt"] == 8
        assert subset["accessibility"]["total_images"] == 10
        assert subset["accessibility"]["aria_count"] == 12

    @pytest.mark.parametrize("phase", [Phase.VISION, Phase.OVERALL, Phase.RECOMMENDATIONS])
    def test_non_metric_phases_are_empty(self, projector, snapshot, phase) -> None:
        assert projector.project(phase, snapshot) == {}

    def test_unknown_phase_yields_empty_subset(self, projector, snapshot) -> None:
        assert projector.project("Branding", snapshot) == {}

    def test_missing_fields_are_omitted(self, projector) -> None:
        partial = EvaluationSnapshot(url="https://a.example", metrics={"loadTime": 900})
        assert projector.project(Phase.PERFORMANCE, partial) == {"load_ms": 900}


class TestNormalization:
    def test_canonical_key_uses_abbreviations(self) -> None:
        assert canonical_key("largestContentfulPaint") == "lcp"
        assert canonical_key("securityHeaders") == "headers"

    def test_canonical_key_falls_back_to_snake_case(self) -> None:
        assert canonical_key("totalImages") == "total_images"
        assert canonical_key("x-frame-options") == "x-frame-options"

    def test_non_finite_floats_become_none(self) -> None:
        assert normalize_value(float("nan")) is None

    def test_unsupported_values_raise(self) -> None:
        with pytest.raises(MetricsValidationError):
            normalize_value({"bad": object()})


def test_projection_does_not_mutate_snapshot(snapshot) -> None:
    before = snapshot.to_payload()
    subset = project(Phase.PERFORMANCE, snapshot)
    subset["security"]["https"] = False
    assert snapshot.to_payload() == before


def test_snapshot_metrics_are_read_only(snapshot) -> None:
    with pytest.raises(TypeError):
        snapshot.metrics["loadTime"] = 1  # type: ignore[index]
