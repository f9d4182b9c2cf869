"""Rule-based health observations over the recent window of an export.

``INSIGHT_RULES`` is a flat list: every rule sees the same
``InsightContext`` and independently returns an ``Insight`` or ``None``.
Rules that need data the window does not hold never fire.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional

from analytics.daily_series import (
    recent,
    resolve_ref_date,
    sleep_daily,
    sleep_day,
    wellness_daily,
    wellness_day,
)
from correlation_engine import align_series, correlate
from export_config import INSIGHT_WINDOW_DAYS, MIN_ALIGNED_SAMPLES
from export_schema import GarminExport

log = logging.getLogger("insight_rules")

# Thresholds
SLEEP_MIN_HOURS = 7
SLEEP_MAX_HOURS = 9
REM_MIN_PCT = 20
STRESS_HIGH = 75
STRESS_LOW = 25
STEPS_LOW = 5000
STEPS_HIGH = 10000
STRESS_SLEEP_R = -0.3
BODY_BATTERY_LOW = 50
RESTING_HR_TREND_READINGS = 7
RESTING_HR_RISE_BPM = 5


@dataclass(frozen=True)
class Insight:
    kind: str  # positive | negative | warning | info
    title: str
    description: str
    recommendation: Optional[str] = None


@dataclass
class InsightContext:
    """Window aggregates shared by every rule."""

    sleep_count: int = 0
    avg_sleep_hours: float = 0.0
    avg_rem_hours: float = 0.0
    wellness_count: int = 0
    avg_stress: Optional[float] = None
    avg_steps: Optional[float] = None
    avg_body_battery: Optional[float] = None
    avg_resting_hr: Optional[float] = None
    resting_hr_readings: List[float] = field(default_factory=list)
    stress_sleep_days: int = 0
    stress_sleep_r: Optional[float] = None


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def build_context(export: GarminExport, ref_date: Optional[date] = None,
                  window_days: int = INSIGHT_WINDOW_DAYS,
                  min_samples: int = MIN_ALIGNED_SAMPLES) -> InsightContext:
    ref = resolve_ref_date(ref_date)
    sleeps = recent(export.sleep, sleep_day, ref, window_days)
    wellness = recent(export.wellness, wellness_day, ref, window_days)

    ctx = InsightContext(sleep_count=len(sleeps), wellness_count=len(wellness))

    if sleeps:
        ctx.avg_sleep_hours = sum((s.total_sleep_seconds or 0) for s in sleeps) / 3600 / len(sleeps)
        ctx.avg_rem_hours = sum((s.rem_sleep_seconds or 0) for s in sleeps) / 3600 / len(sleeps)

    if wellness:
        ctx.avg_stress = _mean([w.average_stress_level for w in wellness if w.average_stress_level])
        # steps average over every day in the window, missing counts as 0
        ctx.avg_steps = sum((w.total_steps or 0) for w in wellness) / len(wellness)
        ctx.avg_body_battery = _mean(
            [w.latest_body_battery for w in wellness if w.latest_body_battery is not None]
        )
        ctx.resting_hr_readings = [w.resting_heart_rate for w in wellness if w.resting_heart_rate]
        ctx.avg_resting_hr = _mean(ctx.resting_hr_readings)

    aligned = align_series(
        wellness_daily(export, wellness), sleep_daily(export, sleeps), "stress", "total_hours"
    )
    ctx.stress_sleep_days = len(aligned)
    if len(aligned) >= min_samples:
        ctx.stress_sleep_r = correlate(aligned.x, aligned.y).r

    return ctx


# ─── Rules ───

def sleep_duration_rule(ctx: InsightContext) -> Optional[Insight]:
    if not ctx.sleep_count:
        return None
    hours = ctx.avg_sleep_hours
    if hours < SLEEP_MIN_HOURS:
        return Insight(
            "warning",
            "Below Recommended Sleep Duration",
            f"You're averaging {hours:.1f} hours of sleep, below the recommended "
            f"{SLEEP_MIN_HOURS}-{SLEEP_MAX_HOURS} hours.",
            "Try establishing a consistent bedtime routine and avoiding screens 1 hour before bed.",
        )
    if hours <= SLEEP_MAX_HOURS:
        return Insight(
            "positive",
            "Healthy Sleep Duration",
            f"Great job! Your average sleep of {hours:.1f} hours is within the recommended range.",
            "Keep maintaining this healthy sleep schedule.",
        )
    return None


def rem_share_rule(ctx: InsightContext) -> Optional[Insight]:
    if not ctx.sleep_count or ctx.avg_sleep_hours <= 0:
        return None
    rem_pct = ctx.avg_rem_hours / ctx.avg_sleep_hours * 100
    if rem_pct >= REM_MIN_PCT:
        return None
    return Insight(
        "warning",
        "Low REM Sleep",
        f"Your REM sleep is {rem_pct:.0f}% of total sleep, below the ideal 20-25%.",
        "REM sleep is crucial for memory and mood. Try reducing alcohol and maintaining consistent sleep times.",
    )


def stress_level_rule(ctx: InsightContext) -> Optional[Insight]:
    if ctx.avg_stress is None:
        return None
    if ctx.avg_stress > STRESS_HIGH:
        return Insight(
            "negative",
            "High Stress Levels",
            f"Your average stress level is {round(ctx.avg_stress)}, which is considered high.",
            "Consider stress-reduction techniques like meditation, exercise, or deep breathing exercises.",
        )
    if ctx.avg_stress < STRESS_LOW:
        return Insight(
            "positive",
            "Excellent Stress Management",
            f"Your average stress level is {round(ctx.avg_stress)}, indicating great stress management.",
            "Continue your current stress management practices.",
        )
    return None


def daily_steps_rule(ctx: InsightContext) -> Optional[Insight]:
    if ctx.avg_steps is None:
        return None
    if ctx.avg_steps < STEPS_LOW:
        return Insight(
            "warning",
            "Low Daily Steps",
            f"You're averaging {round(ctx.avg_steps):,} steps per day.",
            "Try to increase your daily activity. Even a 10-minute walk can make a difference!",
        )
    if ctx.avg_steps >= STEPS_HIGH:
        return Insight(
            "positive",
            "Excellent Activity Level",
            f"Great work! You're averaging {round(ctx.avg_steps):,} steps per day.",
            "Keep up the active lifestyle!",
        )
    return None


def stress_sleep_rule(ctx: InsightContext) -> Optional[Insight]:
    if ctx.stress_sleep_r is None or ctx.stress_sleep_r >= STRESS_SLEEP_R:
        return None
    return Insight(
        "info",
        "Stress Affects Your Sleep",
        f"There's a negative correlation (r={ctx.stress_sleep_r:.2f}) between your stress levels "
        f"and sleep duration.",
        "Focus on stress reduction in the evening to improve sleep quality.",
    )


def body_battery_rule(ctx: InsightContext) -> Optional[Insight]:
    if ctx.avg_body_battery is None or ctx.avg_body_battery >= BODY_BATTERY_LOW:
        return None
    return Insight(
        "warning",
        "Low Body Battery",
        f"Your average body battery is {round(ctx.avg_body_battery)}, indicating inadequate recovery.",
        "Prioritize sleep and recovery. Consider reducing training intensity temporarily.",
    )


def resting_hr_trend_rule(ctx: InsightContext) -> Optional[Insight]:
    trend = ctx.resting_hr_readings[-RESTING_HR_TREND_READINGS:]
    if len(trend) < RESTING_HR_TREND_READINGS or ctx.avg_resting_hr is None:
        return None
    recent_avg = sum(trend) / len(trend)
    if recent_avg <= ctx.avg_resting_hr + RESTING_HR_RISE_BPM:
        return None
    return Insight(
        "warning",
        "Elevated Resting Heart Rate",
        f"Your resting HR has increased recently ({round(recent_avg)} vs {round(ctx.avg_resting_hr)} bpm).",
        "This could indicate stress, overtraining, or illness. Monitor closely and consider rest.",
    )


INSIGHT_RULES: List[Callable[[InsightContext], Optional[Insight]]] = [
    sleep_duration_rule,
    rem_share_rule,
    stress_level_rule,
    daily_steps_rule,
    stress_sleep_rule,
    body_battery_rule,
    resting_hr_trend_rule,
]


def generate_insights(export: GarminExport, ref_date: Optional[date] = None,
                      window_days: int = INSIGHT_WINDOW_DAYS,
                      min_samples: int = MIN_ALIGNED_SAMPLES) -> List[Insight]:
    ctx = build_context(export, ref_date, window_days, min_samples)
    insights = []
    for rule in INSIGHT_RULES:
        insight = rule(ctx)
        if insight is not None:
            insights.append(insight)
    log.info("Generated %d insights from %d sleeps and %d wellness days",
             len(insights), ctx.sleep_count, ctx.wellness_count)
    return insights
