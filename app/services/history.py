"""
Bounded conversation history passed to the narrative analyzer.
"""

from __future__ import annotations

from typing import Sequence

from app.domain.evaluation import ConversationTurn
from app.domain.phases import Phase

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_RECENT_USER_TURNS = 3


def bounded_history(
    conversation: Sequence[ConversationTurn],
    current_phase: Phase | None,
    *,
    limit: int = DEFAULT_HISTORY_LIMIT,
    recent_user_turns: int = DEFAULT_RECENT_USER_TURNS,
) -> list[ConversationTurn]:
    """
    Select at most ``limit`` turns from ``conversation``.

    Always kept, newest first when they alone exceed the limit: system
    turns, turns tagged with ``current_phase`` and the last
    ``recent_user_turns`` user turns. Remaining capacity is filled with
    the most recent other turns. The result keeps chronological order.
    """

    if limit <= 0:
        return []
    if len(conversation) <= limit:
        return list(conversation)

    user_indexes = [index for index, turn in enumerate(conversation) if turn.role == "user"]
    recent_users = set(user_indexes[-recent_user_turns:]) if recent_user_turns > 0 else set()

    pinned: list[int] = []
    others: list[int] = []
    for index, turn in enumerate(conversation):
        is_pinned = (
            turn.role == "system"
            or (current_phase is not None and turn.phase == current_phase)
            or index in recent_users
        )
        (pinned if is_pinned else others).append(index)

    if len(pinned) >= limit:
        selected = set(pinned[-limit:])
    else:
        remaining = limit - len(pinned)
        selected = set(pinned) | set(others[-remaining:])

    return [conversation[index] for index in sorted(selected)]
