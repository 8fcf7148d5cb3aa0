"""
app/domain/phases.py

Fixed phase ordering for website evaluation sessions.
"""

from __future__ import annotations

from enum import Enum


class Phase(str, Enum):
    VISION = "Vision"
    UI = "UI"
    FUNCTIONALITY = "Functionality"
    PERFORMANCE = "Performance"
    SEO = "SEO"
    OVERALL = "Overall"
    RECOMMENDATIONS = "Recommendations"


PHASE_ORDER: tuple[Phase, ...] = (
    Phase.VISION,
    Phase.UI,
    Phase.FUNCTIONALITY,
    Phase.PERFORMANCE,
    Phase.SEO,
    Phase.OVERALL,
    Phase.RECOMMENDATIONS,
)

SCORED_PHASES: frozenset[Phase] = frozenset(
    {
        Phase.VISION,
        Phase.UI,
        Phase.FUNCTIONALITY,
        Phase.PERFORMANCE,
        Phase.SEO,
    }
)

TERMINAL_PHASE: Phase = PHASE_ORDER[-1]


def parse_phase(value: str | Phase | None) -> Phase | None:
    """
    Resolve a phase name case-insensitively. Unknown names return None.
    """

    if value is None:
        return None
    if isinstance(value, Phase):
        return value
    normalized = value.strip().lower()
    for phase in PHASE_ORDER:
        if phase.value.lower() == normalized:
            return phase
    return None


def next_phase(current: Phase | None) -> Phase | None:
    """
    Return the phase after ``current``; the first phase when idle,
    None after the terminal phase.
    """

    if current is None:
        return PHASE_ORDER[0]
    index = PHASE_ORDER.index(current)
    if index + 1 >= len(PHASE_ORDER):
        return None
    return PHASE_ORDER[index + 1]


def is_scored(phase: Phase) -> bool:
    return phase in SCORED_PHASES
