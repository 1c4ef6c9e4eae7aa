"""
SLA calculator.

Single source of truth for stage deadlines. Both the transition table and the
SLA monitor read from here.

    deadline_for(Stage.REVISAO)           -> timedelta(hours=48)
    deadline_for(Stage.POSTADO)           -> None
    deadline_at(Stage.AUDIO, now)         -> now + 24h
    classify(deadline, now)               -> SLAStatus.AT_RISK
    hours_from_deadline(deadline, now)    -> 3  (2.5h remaining)
"""

from __future__ import annotations

import enum
import math
from datetime import datetime, timedelta, timezone

from osflow.models.workflow import Stage, as_utc

# Hours granted on entering a stage. POSTADO is absent: no deadline.
SLA_HOURS: dict[Stage, int] = {
    Stage.ROTEIRO: 24,
    Stage.AUDIO: 24,
    Stage.CAPTACAO: 24,
    Stage.EDICAO: 24,
    Stage.REVISAO: 48,
    Stage.APROVACAO: 24,
    Stage.AGENDAMENTO: 24,
}

REWORK_WINDOW = timedelta(hours=24)
AT_RISK_WINDOW = timedelta(hours=4)
NOTIFY_DEDUP_WINDOW = timedelta(hours=4)


class SLAStatus(str, enum.Enum):
    ON_TRACK = "ON_TRACK"
    AT_RISK = "AT_RISK"
    OVERDUE = "OVERDUE"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def deadline_for(stage: Stage) -> timedelta | None:
    """Duration granted on entering *stage*, or None when the stage has no deadline."""
    hours = SLA_HOURS.get(stage)
    if hours is None:
        return None
    return timedelta(hours=hours)


def deadline_at(stage: Stage, now: datetime) -> datetime | None:
    duration = deadline_for(stage)
    if duration is None:
        return None
    return as_utc(now) + duration


def classify(deadline: datetime | None, now: datetime) -> SLAStatus:
    """OVERDUE when the deadline has passed, AT_RISK when it falls within the next 4 hours."""
    if deadline is None:
        return SLAStatus.ON_TRACK
    deadline = as_utc(deadline)
    now = as_utc(now)
    if deadline < now:
        return SLAStatus.OVERDUE
    if deadline < now + AT_RISK_WINDOW:
        return SLAStatus.AT_RISK
    return SLAStatus.ON_TRACK


def hours_from_deadline(deadline: datetime, now: datetime) -> int:
    """Whole hours between *deadline* and *now*, floored on the signed difference.

    Overdue by 3.5h gives 3; 2.5h remaining gives 3 (floor of -2.5 is -3).
    """
    elapsed = (as_utc(now) - as_utc(deadline)).total_seconds() / 3600
    return abs(math.floor(elapsed))
