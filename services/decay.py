"""Freshness weighting for sensory reports."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict

from models.records import ReportCategory, SensoryReport

# Reports at or below this weight are too stale to contribute to any reading.
ACTIVE_WEIGHT_FLOOR = 0.1
# Reports at or below this weight are dropped by compaction.
EXPIRY_WEIGHT_FLOOR = 0.01


@dataclass(frozen=True)
class DecayPolicy:
    max_age_hours: float
    decay_rate: float


DECAY_POLICIES: Dict[ReportCategory, DecayPolicy] = {
    ReportCategory.irregular: DecayPolicy(max_age_hours=6, decay_rate=0.8),
    ReportCategory.regular: DecayPolicy(max_age_hours=168, decay_rate=0.3),
}


def age_hours(report: SensoryReport, now: datetime) -> float:
    return (now - report.timestamp).total_seconds() / 3600


def decay_weight(report: SensoryReport, now: datetime) -> float:
    """Return the report's freshness in ``[0, 1]``; 0 once it reaches its max age."""
    policy = DECAY_POLICIES[report.category]
    age = max(age_hours(report, now), 0.0)
    if age >= policy.max_age_hours:
        return 0.0
    return math.exp(-policy.decay_rate * age / policy.max_age_hours)


def is_active(report: SensoryReport, now: datetime) -> bool:
    return decay_weight(report, now) > ACTIVE_WEIGHT_FLOOR


def is_expired(report: SensoryReport, now: datetime) -> bool:
    return decay_weight(report, now) <= EXPIRY_WEIGHT_FLOOR
