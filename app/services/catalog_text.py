"""
Plain-text catalog editor format.

Objectives: one label per line.
Activities: one `label | points` pair per line, points 1-5.

Blank lines are ignored and surrounding whitespace is trimmed. Parsing is
pure (no DB) and all-or-nothing: the first bad activity line raises
InvalidActivityError carrying that line.
"""
from __future__ import annotations

import math
from typing import Iterable

from app.core.errors import InvalidActivityError
from app.schemas.document import MIN_POINTS, MAX_POINTS, ActivityDefinition

MISSING_LABEL = "Missing label"
POINTS_OUT_OF_RANGE = f"Points must be {MIN_POINTS}-{MAX_POINTS}"


def _lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def parse_objective_lines(text: str) -> list[str]:
    return _lines(text)


def format_objective_lines(labels: Iterable[str]) -> str:
    return "\n".join(labels)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_activity_lines(text: str) -> list[ActivityDefinition]:
    """
    Fractional points inside the range are rounded half-up (2.5 -> 3).
    Anything after a second `|` is ignored.
    """
    parsed: list[ActivityDefinition] = []
    for line in _lines(text):
        parts = [part.strip() for part in line.split("|")]
        label = parts[0]
        points_raw = parts[1] if len(parts) > 1 else ""
        if not label:
            raise InvalidActivityError(line=line, reason=MISSING_LABEL)
        try:
            points = float(points_raw)
        except ValueError:
            raise InvalidActivityError(line=line, reason=POINTS_OUT_OF_RANGE) from None
        if not math.isfinite(points) or points < MIN_POINTS or points > MAX_POINTS:
            raise InvalidActivityError(line=line, reason=POINTS_OUT_OF_RANGE)
        parsed.append(ActivityDefinition(label=label, points=_round_half_up(points)))
    return parsed


def format_activity_lines(catalog: Iterable[ActivityDefinition]) -> str:
    return "\n".join(f"{entry.label} | {entry.points}" for entry in catalog)
