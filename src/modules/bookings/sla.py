"""Response-time SLA projection for booking requests.

The clock counts business hours from creation until the first operator
response (the second history entry). Nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from src.core.config import settings
from src.shared.clock import as_utc


@dataclass(frozen=True)
class SlaPolicy:
    response_hours: float
    timezone: ZoneInfo
    day_start: time
    day_end: time
    business_days: frozenset[int]

    @classmethod
    def from_settings(cls) -> "SlaPolicy":
        return cls(
            response_hours=settings.sla_response_hours,
            timezone=ZoneInfo(settings.default_timezone),
            day_start=settings.sla_business_day_start,
            day_end=settings.sla_business_day_end,
            business_days=frozenset(settings.sla_business_days),
        )


@dataclass(frozen=True)
class SlaSnapshot:
    hours_elapsed: float
    hours_remaining: float
    is_overdue: bool


def business_hours_between(start: datetime, end: datetime, policy: SlaPolicy) -> float:
    start, end = as_utc(start), as_utc(end)
    if end <= start:
        return 0.0
    local_start = start.astimezone(policy.timezone)
    local_end = end.astimezone(policy.timezone)

    total = timedelta()
    day = local_start.date()
    while day <= local_end.date():
        if day.weekday() in policy.business_days:
            window_start = datetime.combine(day, policy.day_start, policy.timezone)
            window_end = datetime.combine(day, policy.day_end, policy.timezone)
            overlap_start = max(window_start, local_start)
            overlap_end = min(window_end, local_end)
            if overlap_end > overlap_start:
                total += overlap_end - overlap_start
        day += timedelta(days=1)
    return total.total_seconds() / 3600


def compute_sla(
    created_at: datetime,
    first_response_at: datetime | None,
    now: datetime,
    policy: SlaPolicy,
) -> SlaSnapshot:
    stop = first_response_at if first_response_at is not None else now
    elapsed = business_hours_between(created_at, stop, policy)
    return SlaSnapshot(
        hours_elapsed=round(elapsed, 1),
        hours_remaining=round(max(policy.response_hours - elapsed, 0.0), 1),
        is_overdue=elapsed > policy.response_hours,
    )
