"""
tests/test_weighted_validator.py

Pytest unit tests for threshold rating, security-header scoring and
report confidence validation.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.domain.phases import Phase
from scoring.metric_projector import project
from scoring.report_validator import ReportValidator
from scoring.security_headers import HEADER_RULES, score_security_headers
from scoring.thresholds import RangeThreshold, Threshold
from scoring.weighted_validator import (
    GOOD,
    NEEDS_IMPROVEMENT,
    POOR,
    WeightedValidator,
    rate,
    rate_range,
    validate_phase,
)


def _by_metric(validations):
    return {validation.metric: validation for validation in validations}


# ---------------------------------------------------------------------------
# Rating primitives
# ---------------------------------------------------------------------------


class TestRate:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(100, GOOD), (200, GOOD), (250, NEEDS_IMPROVEMENT), (300, NEEDS_IMPROVEMENT), (301, POOR)],
    )
    def test_lower_is_better(self, value, expected) -> None:
        assert rate(value, Threshold(good=200, poor=300)) == expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(45, GOOD), (30, GOOD), (60, GOOD), (25, NEEDS_IMPROVEMENT), (70, NEEDS_IMPROVEMENT), (23, POOR), (73, POOR)],
    )
    def test_range_with_tolerance(self, value, expected) -> None:
        assert rate_range(value, RangeThreshold(min=30, max=60)) == expected


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------


class TestPerformance:
    def test_fast_page_rates_good(self) -> None:
        results = _by_metric(validate_phase(Phase.PERFORMANCE, {"load_ms": 500, "cls": 0.05}))
        assert results["load_ms"].rating == GOOD
        assert results["load_ms"].threshold == 2500
        assert results["cls"].rating == GOOD
        assert results["cls"].benchmark == 0.05

    def test_slow_page_rates_poor(self) -> None:
        results = _by_metric(validate_phase("Performance", {"load_ms": 9000, "tbt": 450}))
        assert results["load_ms"].rating == POOR
        assert results["tbt"].rating == NEEDS_IMPROVEMENT

    def test_page_size_accepts_bare_total(self) -> None:
        results = _by_metric(validate_phase(Phase.PERFORMANCE, {"page_size": 6_000_000}))
        assert results["page_size.total"].rating == POOR
        assert "page_size.document" not in results

    def test_page_size_breakdown(self) -> None:
        results = _by_metric(validate_phase(Phase.PERFORMANCE, {"page_size": {"total": 1_000_000, "document": 150_000}}))
        assert results["page_size.total"].rating == GOOD
        assert results["page_size.document"].rating == NEEDS_IMPROVEMENT

    def test_non_numeric_values_are_skipped(self) -> None:
        assert validate_phase(Phase.PERFORMANCE, {"load_ms": "fast", "cls": True}) == []

    def test_projected_snapshot_has_no_poor_ratings(self, snapshot) -> None:
        results = validate_phase(Phase.PERFORMANCE, project(Phase.PERFORMANCE, snapshot))
        assert results
        assert all(result.rating != POOR for result in results)


# ---------------------------------------------------------------------------
# Security headers
# ---------------------------------------------------------------------------


class TestSecurityHeaders:
    def test_weights_sum_to_nine(self) -> None:
        assert sum(rule.weight for rule in HEADER_RULES) == 9.0

    def test_only_critical_headers_needs_improvement(self) -> None:
        score = score_security_headers(
            {"strict-transport-security": "max-age=63072000", "content-security-policy-report-only": "default-src 'self'"}
        )
        assert score.achieved_weight == 4.0
        assert score.max_weight == 9.0
        assert score.weighted_score == pytest.approx(0.444, abs=1e-3)
        assert score.rating == NEEDS_IMPROVEMENT

    def test_csp_also_stands_in_for_frame_options(self) -> None:
        score = score_security_headers({"Strict-Transport-Security": True, "Content-Security-Policy": True})
        assert score.presence["x-frame-options"] is True
        assert score.achieved_weight == 5.5
        assert score.rating == GOOD

    def test_legacy_feature_policy_counts_as_permissions_policy(self) -> None:
        score = score_security_headers({"feature-policy": "camera 'none'"})
        assert score.presence["permissions-policy"] is True
        assert score.achieved_weight == 1.0
        assert score.rating == POOR

    def test_falsy_values_are_absent(self) -> None:
        score = score_security_headers({"x-content-type-options": False, "referrer_policy": ""})
        assert score.achieved_weight == 0.0
        assert score.weighted_score == 0.0

    def test_all_headers_present(self) -> None:
        headers = {rule.header: True for rule in HEADER_RULES}
        score = score_security_headers(headers)
        assert score.weighted_score == 1.0
        assert score.rating == GOOD

    def test_security_validation_carries_debug(self) -> None:
        validations = WeightedValidator().validate_security(
            {"https": True, "headers": {"strict-transport-security": True}}
        )
        results = _by_metric(validations)
        assert results["https"].rating == GOOD
        header_result = results["security_headers"].to_dict()
        assert header_result["debug"]["achieved_weight"] == 2.0
        assert header_result["debug"]["max_weight"] == 9.0
        assert "debug" not in results["https"].to_dict()


# ---------------------------------------------------------------------------
# SEO and accessibility
# ---------------------------------------------------------------------------


class TestSeo:
    def test_title_length_45_is_good(self) -> None:
        results = _by_metric(validate_phase(Phase.SEO, {"seo": {"title": "t" * 45}}))
        assert results["title_length"].rating == GOOD
        assert results["title_length"].threshold == 60

    def test_title_length_25_needs_improvement(self) -> None:
        results = _by_metric(validate_phase(Phase.SEO, {"seo": {"title": "t" * 25}}))
        assert results["title_length"].rating == NEEDS_IMPROVEMENT

    def test_h1_count_from_headings(self) -> None:
        results = _by_metric(validate_phase(Phase.SEO, {"seo": {"headings": {"h1_count": 3}}}))
        assert results["h1_count"].rating == POOR

    def test_missing_seo_section_yields_nothing(self) -> None:
        assert validate_phase(Phase.SEO, {"lighthouse": {"seo": 0.9}}) == []


class TestAccessibility:
    def test_full_alt_coverage_is_good(self) -> None:
        results = _by_metric(validate_phase(Phase.UI, {"accessibility": {"images_with_alt": 4, "total_images": 4}}))
        assert results["alt_text_ratio"].rating == GOOD

    def test_partial_alt_coverage_is_poor(self) -> None:
        results = _by_metric(
            validate_phase(Phase.FUNCTIONALITY, {"accessibility": {"images_with_alt": 2, "total_images": 3}})
        )
        assert results["alt_text_ratio"].value == 0.67
        assert results["alt_text_ratio"].rating == POOR

    def test_no_images_yields_nothing(self) -> None:
        assert validate_phase(Phase.UI, {"accessibility": {"images_with_alt": 0, "total_images": 0}}) == []


def test_unrated_phases_return_empty() -> None:
    assert validate_phase(Phase.VISION, {"load_ms": 500}) == []
    assert validate_phase("Unknown", {"load_ms": 500}) == []


# ---------------------------------------------------------------------------
# Report validation
# ---------------------------------------------------------------------------


class TestReportValidator:
    def test_complete_report_confidence(self, snapshot) -> None:
        phase_metrics = {phase: project(phase, snapshot) for phase in (Phase.UI, Phase.PERFORMANCE, Phase.SEO)}
        validation = ReportValidator().validate_report(snapshot.url, datetime.now(timezone.utc), phase_metrics)

        assert validation.overall.is_valid is True
        # Short meta description and 80% alt coverage are both rated poor.
        assert validation.sections["performance"].confidence == 1.0
        assert validation.sections["seo"].confidence == pytest.approx(0.8)
        assert validation.sections["accessibility"].confidence == pytest.approx(0.8)
        assert validation.overall.confidence == 0.64

    def test_missing_sections_invalidate_report(self) -> None:
        validation = ReportValidator().validate_report("https://a.example", datetime.now(timezone.utc), {})
        payload = validation.to_dict()
        assert payload["overall"]["is_valid"] is False
        assert payload["sections"]["performance"]["issues"] == ["Missing performance metrics"]

    def test_missing_description_is_a_warning(self) -> None:
        validation = ReportValidator().validate_report(
            "https://a.example",
            datetime.now(timezone.utc),
            {Phase.SEO: {"seo": {"title": "t" * 45}}},
        )
        seo = validation.sections["seo"]
        assert seo.is_valid is True
        assert seo.warnings == ["Missing meta description"]
        assert seo.confidence == pytest.approx(0.9)
        assert "Missing meta description" in validation.overall.warnings

    def test_missing_url_fails_overall(self) -> None:
        validation = ReportValidator().validate_report(None, datetime.now(timezone.utc), {})
        assert "Missing website URL" in validation.overall.issues
