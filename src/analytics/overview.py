"""Headline numbers and the sleep-stage breakdown for one export."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from analytics.daily_series import (
    activity_day,
    recent,
    resolve_ref_date,
    sleep_day,
    wellness_day,
)
from export_config import INSIGHT_WINDOW_DAYS, SLEEP_WINDOW_DAYS
from export_schema import GarminExport, SleepRecord


@dataclass(frozen=True)
class OverviewStats:
    avg_sleep_hours: float
    avg_resting_hr: float
    avg_stress: float
    activity_count: int
    avg_steps: float
    latest_body_battery: float


@dataclass(frozen=True)
class NightStages:
    date: date  # sleep start date (GMT), as in the daily series
    deep_hours: float
    light_hours: float
    rem_hours: float
    awake_hours: float
    total_hours: float
    efficiency: float


@dataclass
class SleepStageSummary:
    nights: List[NightStages] = field(default_factory=list)
    averages: Dict[str, float] = field(default_factory=dict)
    best_night: Optional[NightStages] = None
    worst_night: Optional[NightStages] = None


def _truthy_mean(values) -> float:
    kept = [v for v in values if v]
    return sum(kept) / len(kept) if kept else 0.0


def overview_stats(export: GarminExport, ref_date: Optional[date] = None,
                   window_days: int = INSIGHT_WINDOW_DAYS) -> OverviewStats:
    ref = resolve_ref_date(ref_date)
    sleeps = recent(export.sleep, sleep_day, ref, window_days)
    wellness = recent(export.wellness, wellness_day, ref, window_days)
    activities = recent(export.activities, activity_day, ref, window_days)

    avg_sleep = sum((s.total_sleep_seconds or 0) for s in sleeps) / 3600 / (len(sleeps) or 1)
    avg_steps = sum((w.total_steps or 0) for w in wellness) / (len(wellness) or 1)

    with_battery = [w.latest_body_battery for w in wellness if w.latest_body_battery is not None]
    return OverviewStats(
        avg_sleep_hours=avg_sleep,
        avg_resting_hr=_truthy_mean(w.resting_heart_rate for w in wellness),
        avg_stress=_truthy_mean(w.average_stress_level for w in wellness),
        activity_count=len(activities),
        avg_steps=avg_steps,
        latest_body_battery=with_battery[-1] if with_battery else 0,
    )


def night_stages(rec: SleepRecord) -> NightStages:
    deep = (rec.deep_sleep_seconds or 0) / 3600
    light = (rec.light_sleep_seconds or 0) / 3600
    rem = (rec.rem_sleep_seconds or 0) / 3600
    awake = (rec.awake_sleep_seconds or 0) / 3600
    total = deep + light + rem
    return NightStages(
        date=sleep_day(rec),
        deep_hours=deep,
        light_hours=light,
        rem_hours=rem,
        awake_hours=awake,
        total_hours=total,
        efficiency=(total - awake) / total * 100 if total > 0 else 0.0,
    )


def sleep_stage_summary(export: GarminExport, ref_date: Optional[date] = None,
                        window_days: int = SLEEP_WINDOW_DAYS) -> SleepStageSummary:
    """Per-night stage hours over the window, with averages and best/worst night by total."""
    sleeps = recent(export.sleep, sleep_day, resolve_ref_date(ref_date), window_days)
    nights = [night_stages(s) for s in sleeps]
    if not nights:
        return SleepStageSummary()

    count = len(nights)
    averages = {
        "deep_hours": sum(n.deep_hours for n in nights) / count,
        "light_hours": sum(n.light_hours for n in nights) / count,
        "rem_hours": sum(n.rem_hours for n in nights) / count,
        "total_hours": sum(n.total_hours for n in nights) / count,
        "efficiency": sum(n.efficiency for n in nights) / count,
    }
    by_total = sorted(nights, key=lambda n: n.total_hours, reverse=True)
    return SleepStageSummary(
        nights=nights,
        averages=averages,
        best_night=by_total[0],
        worst_night=by_total[-1],
    )
