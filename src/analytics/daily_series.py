"""Per-day metric series built from a GarminExport.

Every builder returns a list of plain dict rows ``{"date": "YYYY-MM-DD", ...}``
sorted by date, one row per calendar day, ready for
``correlation_engine.align_series``.  Missing values are zero-filled here,
at the point of use, never in the records themselves.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List, Optional, TypeVar

import pandas as pd

from export_schema import ActivityRecord, GarminExport, SleepRecord, WellnessRecord

T = TypeVar("T")

SLEEP_COLUMNS = ["date", "total_hours", "rem_hours", "deep_hours", "light_hours", "awake_hours", "efficiency"]
WELLNESS_COLUMNS = ["date", "steps", "resting_hr", "stress", "body_battery", "active_calories"]
ACTIVITY_COLUMNS = ["date", "duration_minutes", "calories", "avg_hr"]


# ─── Record dates ───

def sleep_day(rec: SleepRecord) -> date:
    return rec.start_time_gmt.date()


def wellness_day(rec: WellnessRecord) -> date:
    return rec.calendar_date


def activity_day(rec: ActivityRecord) -> date:
    return rec.start_time_gmt.date()


def resolve_ref_date(ref_date: Optional[date] = None) -> date:
    if ref_date is None:
        return date.today()
    if isinstance(ref_date, datetime):
        return ref_date.date()
    return ref_date


def recent(records: Iterable[T], date_of: Callable[[T], date],
           ref_date: Optional[date] = None, window_days: int = 30) -> List[T]:
    """Keep records dated strictly after ``ref_date - window_days``."""
    cutoff = resolve_ref_date(ref_date) - timedelta(days=window_days)
    return [rec for rec in records if date_of(rec) > cutoff]


# ─── Row builders ───

def sleep_efficiency(rec: SleepRecord) -> float:
    """Percent of the night not spent awake; 100 when no awake time was logged."""
    awake = rec.awake_sleep_seconds or 0
    if not awake:
        return 100.0
    in_bed = (rec.deep_sleep_seconds or 0) + (rec.light_sleep_seconds or 0) + (rec.rem_sleep_seconds or 0) + awake
    return (1 - awake / in_bed) * 100


def _sleep_row(rec: SleepRecord) -> dict:
    return {
        "date": sleep_day(rec).isoformat(),
        "total_hours": (rec.total_sleep_seconds or 0) / 3600,
        "rem_hours": (rec.rem_sleep_seconds or 0) / 3600,
        "deep_hours": (rec.deep_sleep_seconds or 0) / 3600,
        "light_hours": (rec.light_sleep_seconds or 0) / 3600,
        "awake_hours": (rec.awake_sleep_seconds or 0) / 3600,
        "efficiency": sleep_efficiency(rec),
    }


def _wellness_row(rec: WellnessRecord) -> dict:
    return {
        "date": wellness_day(rec).isoformat(),
        "steps": rec.total_steps or 0,
        "resting_hr": rec.resting_heart_rate or 0,
        "stress": rec.average_stress_level or 0,
        "body_battery": rec.latest_body_battery or 0,
        "active_calories": rec.active_kilocalories or 0,
    }


def _activity_row(rec: ActivityRecord) -> dict:
    return {
        "date": activity_day(rec).isoformat(),
        "duration_minutes": (rec.duration or 0) / 60,
        "calories": rec.calories or 0,
        # zero heart rates are excluded from the daily mean
        "avg_hr": rec.average_hr if rec.average_hr else None,
    }


def _last_per_day(rows: List[dict], columns: List[str]) -> List[dict]:
    if not rows:
        return []
    df = pd.DataFrame(rows, columns=columns)
    daily = df.groupby("date", sort=True).last().reset_index()
    return daily.to_dict("records")


# ─── Public series ───

def sleep_daily(export: GarminExport, records: Optional[List[SleepRecord]] = None) -> List[dict]:
    """One row per sleep start date; a later record on the same date wins."""
    sleeps = export.sleep if records is None else records
    return _last_per_day([_sleep_row(r) for r in sleeps], SLEEP_COLUMNS)


def wellness_daily(export: GarminExport, records: Optional[List[WellnessRecord]] = None) -> List[dict]:
    days = export.wellness if records is None else records
    return _last_per_day([_wellness_row(r) for r in days], WELLNESS_COLUMNS)


def activity_daily(export: GarminExport, records: Optional[List[ActivityRecord]] = None) -> List[dict]:
    """Daily activity totals: summed minutes and calories, mean of non-zero HRs."""
    activities = export.activities if records is None else records
    if not activities:
        return []
    df = pd.DataFrame([_activity_row(r) for r in activities], columns=ACTIVITY_COLUMNS)
    df["avg_hr"] = pd.to_numeric(df["avg_hr"], errors="coerce")
    daily = df.groupby("date", sort=True).agg(
        duration_minutes=("duration_minutes", "sum"),
        calories=("calories", "sum"),
        avg_hr=("avg_hr", "mean"),
    )
    daily["avg_hr"] = daily["avg_hr"].fillna(0.0)
    return daily.reset_index().to_dict("records")
