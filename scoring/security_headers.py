"""
scoring/security_headers.py

Equivalence-aware weighted scoring of HTTP security response headers.

Different deployment stacks emit different but functionally equivalent
header sets, so each header may be satisfied by one of its declared
alternatives.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from scoring.thresholds import SECURITY_HEADER_GOOD, SECURITY_HEADER_NEEDS_IMPROVEMENT


@dataclass(frozen=True)
class HeaderRule:
    header: str
    tier: str
    weight: float
    alternatives: tuple[str, ...] = ()


TIER_WEIGHTS: dict[str, float] = {
    "critical": 2.0,
    "important": 1.5,
    "optional": 1.0,
}

HEADER_RULES: tuple[HeaderRule, ...] = (
    HeaderRule(
        header="strict-transport-security",
        tier="critical",
        weight=TIER_WEIGHTS["critical"],
        alternatives=("content-security-policy-report-only",),
    ),
    HeaderRule(
        header="content-security-policy",
        tier="critical",
        weight=TIER_WEIGHTS["critical"],
        alternatives=("content-security-policy-report-only",),
    ),
    HeaderRule(
        header="x-frame-options",
        tier="important",
        weight=TIER_WEIGHTS["important"],
        alternatives=("content-security-policy",),
    ),
    HeaderRule(
        header="x-content-type-options",
        tier="important",
        weight=TIER_WEIGHTS["important"],
    ),
    HeaderRule(
        header="referrer-policy",
        tier="optional",
        weight=TIER_WEIGHTS["optional"],
    ),
    HeaderRule(
        header="permissions-policy",
        tier="optional",
        weight=TIER_WEIGHTS["optional"],
        alternatives=("feature-policy",),
    ),
)


@dataclass(frozen=True)
class SecurityHeaderScore:
    achieved_weight: float
    max_weight: float
    weighted_score: float
    rating: str
    presence: dict[str, bool] = field(default_factory=dict)


def _present_headers(headers: Mapping[str, object]) -> set[str]:
    """Lower-cased names of headers reported as present (truthy)."""
    return {
        str(name).strip().lower().replace("_", "-")
        for name, value in headers.items()
        if value not in (None, False, "", 0)
    }


def rate_security_score(weighted_score: float) -> str:
    if weighted_score >= SECURITY_HEADER_GOOD:
        return "good"
    if weighted_score >= SECURITY_HEADER_NEEDS_IMPROVEMENT:
        return "needs-improvement"
    return "poor"


def score_security_headers(
    headers: Mapping[str, object],
    rules: tuple[HeaderRule, ...] = HEADER_RULES,
) -> SecurityHeaderScore:
    """Compute the weighted security-header score.

    A rule contributes its full weight when its header or any of its
    alternatives is present. ``weighted_score = achieved / max``.

    Args:
        headers: Mapping of header name to a presence flag or raw value.
        rules: Header rules to score against.

    Returns:
        SecurityHeaderScore with weights, ratio, rating and per-rule presence.
    """
    present = _present_headers(headers)
    achieved = 0.0
    maximum = 0.0
    presence: dict[str, bool] = {}

    for rule in rules:
        satisfied = rule.header in present or any(alt in present for alt in rule.alternatives)
        presence[rule.header] = satisfied
        if satisfied:
            achieved += rule.weight
        maximum += rule.weight

    weighted_score = achieved / maximum if maximum > 0 else 0.0
    return SecurityHeaderScore(
        achieved_weight=achieved,
        max_weight=maximum,
        weighted_score=weighted_score,
        rating=rate_security_score(weighted_score),
        presence=presence,
    )
