"""Day-of-week averages over the recent window of an export.

Buckets are Sunday-first.  Each bucket is sum/count of its samples and
reads 0 when nothing fell on that weekday.  Wellness zeros are treated
as missing readings, not as samples.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple

import pandas as pd

from analytics.daily_series import activity_day, recent, resolve_ref_date, sleep_day, wellness_day
from export_config import INSIGHT_WINDOW_DAYS
from export_schema import GarminExport

log = logging.getLogger("weekly_patterns")

DAYS_OF_WEEK = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
WEEKEND = (0, 6)
WEEKDAYS = (1, 2, 3, 4, 5)

METRICS = ("sleep_hours", "steps", "stress", "activity_minutes", "resting_hr", "body_battery")


@dataclass(frozen=True)
class DayAverages:
    day: str
    sleep_hours: float = 0.0
    steps: float = 0.0
    stress: float = 0.0
    activity_minutes: float = 0.0
    resting_hr: float = 0.0
    body_battery: float = 0.0


@dataclass
class WeeklyPatterns:
    averages: List[DayAverages]
    # per-metric sample counts, Sunday first
    sample_counts: dict = field(default_factory=dict)
    best_sleep_day: Optional[DayAverages] = None
    worst_sleep_day: Optional[DayAverages] = None
    least_stress_day: Optional[DayAverages] = None
    most_active_day: Optional[DayAverages] = None
    better_sleep_on: str = "Weekday"

    def day(self, name: str) -> DayAverages:
        return self.averages[DAYS_OF_WEEK.index(name)]


def sunday_first_index(day: date) -> int:
    return (day.weekday() + 1) % 7


def bucket_means(samples: List[Tuple[date, float]]) -> Tuple[List[float], List[int]]:
    """Mean and count per Sunday-first weekday; empty buckets read 0."""
    if not samples:
        return [0.0] * 7, [0] * 7
    df = pd.DataFrame(samples, columns=["day", "value"])
    dow = df["day"].map(sunday_first_index)
    grouped = df["value"].groupby(dow).agg(["sum", "count"]).reindex(range(7))
    counts = grouped["count"].fillna(0).astype(int)
    sums = grouped["sum"].fillna(0.0)
    means = [float(s / c) if c > 0 else 0.0 for s, c in zip(sums, counts)]
    return means, counts.tolist()


def weekly_patterns(export: GarminExport, ref_date: Optional[date] = None,
                    window_days: int = INSIGHT_WINDOW_DAYS) -> WeeklyPatterns:
    ref = resolve_ref_date(ref_date)
    sleeps = recent(export.sleep, sleep_day, ref, window_days)
    wellness = recent(export.wellness, wellness_day, ref, window_days)
    activities = recent(export.activities, activity_day, ref, window_days)

    samples = {
        "sleep_hours": [(sleep_day(s), (s.total_sleep_seconds or 0) / 3600) for s in sleeps],
        "steps": [(w.calendar_date, w.total_steps) for w in wellness if w.total_steps],
        "stress": [(w.calendar_date, w.average_stress_level) for w in wellness if w.average_stress_level],
        "resting_hr": [(w.calendar_date, w.resting_heart_rate) for w in wellness if w.resting_heart_rate],
        "body_battery": [(w.calendar_date, w.latest_body_battery) for w in wellness if w.latest_body_battery],
        "activity_minutes": [(activity_day(a), (a.duration or 0) / 60) for a in activities],
    }

    means = {}
    counts = {}
    for metric in METRICS:
        means[metric], counts[metric] = bucket_means(samples[metric])

    averages = [
        DayAverages(day=name, **{metric: means[metric][i] for metric in METRICS})
        for i, name in enumerate(DAYS_OF_WEEK)
    ]

    with_sleep = [averages[i] for i in range(7) if counts["sleep_hours"][i]]
    with_stress = [averages[i] for i in range(7) if counts["stress"][i]]
    with_activity = [averages[i] for i in range(7) if counts["activity_minutes"][i]]

    by_sleep = sorted(with_sleep, key=lambda d: d.sleep_hours, reverse=True)
    by_stress = sorted(with_stress, key=lambda d: d.stress)
    by_activity = sorted(with_activity, key=lambda d: d.activity_minutes, reverse=True)

    weekend_sleep = sum(averages[i].sleep_hours for i in WEEKEND) / len(WEEKEND)
    weekday_sleep = sum(averages[i].sleep_hours for i in WEEKDAYS) / len(WEEKDAYS)

    log.debug("Weekly patterns from %d sleeps, %d wellness days, %d activities",
              len(sleeps), len(wellness), len(activities))

    return WeeklyPatterns(
        averages=averages,
        sample_counts=counts,
        best_sleep_day=by_sleep[0] if by_sleep else None,
        worst_sleep_day=by_sleep[-1] if by_sleep else None,
        least_stress_day=by_stress[0] if by_stress else None,
        most_active_day=by_activity[0] if by_activity else None,
        better_sleep_on="Weekend" if weekend_sleep > weekday_sleep else "Weekday",
    )
