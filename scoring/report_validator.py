"""
scoring/report_validator.py

Confidence checks for generated reports.

Each section is rated through the WeightedValidator; poor ratings and
missing data lower the section confidence multiplicatively, and the
overall confidence is the product of all section confidences.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Mapping

from app.domain.evaluation import MetricValue
from app.domain.phases import Phase
from scoring.weighted_validator import POOR, WeightedValidator

POOR_RATING_PENALTY = 0.8
WARNING_PENALTY = 0.9


@dataclass
class SectionValidation:
    is_valid: bool = True
    confidence: float = 1.0
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def fail(self, issue: str) -> None:
        self.is_valid = False
        self.issues.append(issue)

    def warn(self, warning: str) -> None:
        self.warnings.append(warning)
        self.confidence *= WARNING_PENALTY


@dataclass
class ReportValidation:
    overall: SectionValidation
    sections: dict[str, SectionValidation]

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": asdict(self.overall),
            "sections": {name: asdict(section) for name, section in self.sections.items()},
        }


def _as_mapping(value: MetricValue) -> Mapping[str, MetricValue]:
    return value if isinstance(value, Mapping) else {}


class ReportValidator:
    def __init__(self, validator: WeightedValidator | None = None) -> None:
        self._validator = validator or WeightedValidator()

    def validate_report(
        self,
        url: str | None,
        generated_at: Any,
        phase_metrics: Mapping[Phase, Mapping[str, MetricValue]],
    ) -> ReportValidation:
        """
        Validate report inputs assembled from persisted phase results.

        Args:
            url: Evaluated website URL.
            generated_at: Report timestamp; falsy values are reported.
            phase_metrics: Projected metric subset per phase.

        Returns:
            ReportValidation with per-section and overall verdicts.
        """

        sections = {
            "performance": self._validate_performance(phase_metrics.get(Phase.PERFORMANCE)),
            "seo": self._validate_seo(phase_metrics.get(Phase.SEO)),
            "accessibility": self._validate_accessibility(
                phase_metrics.get(Phase.UI) or phase_metrics.get(Phase.FUNCTIONALITY)
            ),
        }

        overall = SectionValidation()
        if not url:
            overall.fail("Missing website URL")
        if not generated_at:
            overall.fail("Missing timestamp")

        overall.is_valid = overall.is_valid and all(section.is_valid for section in sections.values())
        confidence = 1.0
        for section in sections.values():
            confidence *= section.confidence
            overall.warnings.extend(section.warnings)
        overall.confidence = round(confidence, 4)
        return ReportValidation(overall=overall, sections=sections)

    def _apply_ratings(self, result: SectionValidation, phase: Phase, subset: Mapping[str, MetricValue]) -> None:
        for validation in self._validator.validate_phase(phase, subset):
            if validation.rating == POOR:
                result.issues.append(f"{validation.metric} value {validation.value} is outside the acceptable range")
                result.confidence *= POOR_RATING_PENALTY

    def _validate_performance(self, subset: Mapping[str, MetricValue] | None) -> SectionValidation:
        result = SectionValidation()
        if not subset:
            result.fail("Missing performance metrics")
            return result
        self._apply_ratings(result, Phase.PERFORMANCE, subset)
        return result

    def _validate_seo(self, subset: Mapping[str, MetricValue] | None) -> SectionValidation:
        result = SectionValidation()
        seo = _as_mapping((subset or {}).get("seo"))
        if not seo:
            result.fail("Missing SEO metrics")
            return result
        self._apply_ratings(result, Phase.SEO, subset or {})
        if not seo.get("title"):
            result.fail("Missing page title")
        if not seo.get("description"):
            result.warn("Missing meta description")
        return result

    def _validate_accessibility(self, subset: Mapping[str, MetricValue] | None) -> SectionValidation:
        result = SectionValidation()
        accessibility = _as_mapping((subset or {}).get("accessibility"))
        if not accessibility:
            result.fail("Missing accessibility metrics")
            return result
        self._apply_ratings(result, Phase.UI, subset or {})
        return result
