"""
Garmin Export Schema
====================
Typed records produced by the bulk-export ingestion pipeline.

Collections held by one GarminExport:
  - sleep          (SleepRecord,        ordered by start_time_gmt)
  - wellness       (WellnessRecord,     ordered by calendar_date)
  - hydration      (HydrationRecord,    ordered by calendar_date)
  - activities     (ActivityRecord,     ordered by start_time_gmt)
  - body_metrics   (BodyMetricsRecord,  ordered by calendar_date)

Optional numeric fields are either a finite number or None.  Missing
values are never coerced to 0 here; analytics code zero-fills at the
point of use when a chart or average needs it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class RecordCategory(str, Enum):
    SLEEP = "sleep"
    WELLNESS = "wellness"
    HYDRATION = "hydration"
    ACTIVITY = "activity"
    BODY_METRICS = "body_metrics"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SleepRecord:
    start_time_gmt: datetime
    end_time_gmt: Optional[datetime] = None
    start_time_local: Optional[datetime] = None
    end_time_local: Optional[datetime] = None
    calendar_date: Optional[date] = None
    deep_sleep_seconds: Optional[float] = None
    light_sleep_seconds: Optional[float] = None
    rem_sleep_seconds: Optional[float] = None
    awake_sleep_seconds: Optional[float] = None
    unmeasurable_sleep_seconds: Optional[float] = None
    average_respiration: Optional[float] = None
    lowest_respiration: Optional[float] = None
    highest_respiration: Optional[float] = None
    avg_sleep_stress: Optional[float] = None
    overall_score: Optional[float] = None
    sleep_window_confirmation_type: Optional[str] = None
    sleep_score_feedback: Optional[str] = None

    @property
    def total_sleep_seconds(self) -> Optional[float]:
        """Deep + light + REM; None only when every stage is missing."""
        stages = (self.deep_sleep_seconds, self.light_sleep_seconds, self.rem_sleep_seconds)
        if all(s is None for s in stages):
            return None
        return sum(s or 0 for s in stages)

    @property
    def sleep_date(self) -> date:
        return self.calendar_date or self.start_time_gmt.date()


@dataclass(frozen=True)
class WellnessRecord:
    calendar_date: date
    total_steps: Optional[int] = None
    total_distance_meters: Optional[float] = None
    total_kilocalories: Optional[float] = None
    active_kilocalories: Optional[float] = None
    bmr_kilocalories: Optional[float] = None
    wellness_kilocalories: Optional[float] = None
    floors_ascended: Optional[float] = None
    floors_descended: Optional[float] = None
    min_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None
    resting_heart_rate: Optional[int] = None
    last_seven_days_avg_resting_heart_rate: Optional[int] = None
    # Whole-day (TOTAL) stress aggregate
    average_stress_level: Optional[float] = None
    max_stress_level: Optional[float] = None
    stress_duration: Optional[float] = None
    rest_stress_duration: Optional[float] = None
    activity_stress_duration: Optional[float] = None
    uncategorized_stress_duration: Optional[float] = None
    total_stress_duration: Optional[float] = None
    low_stress_duration: Optional[float] = None
    medium_stress_duration: Optional[float] = None
    high_stress_duration: Optional[float] = None
    # Nested structures, passed through untouched
    all_day_stress: Optional[Dict[str, Any]] = None
    body_battery: Optional[Dict[str, Any]] = None

    @property
    def latest_body_battery(self) -> Optional[float]:
        """Level of the last entry in bodyBatteryStatList, if any."""
        if not isinstance(self.body_battery, dict):
            return None
        stats = self.body_battery.get("bodyBatteryStatList")
        if not isinstance(stats, list) or not stats or not isinstance(stats[-1], dict):
            return None
        last = stats[-1]
        level = last.get("bodyBatteryLevel", last.get("statsValue"))
        if isinstance(level, bool) or not isinstance(level, (int, float)):
            return None
        return level


@dataclass(frozen=True)
class HydrationRecord:
    calendar_date: date
    timestamp: datetime
    value_in_ml: float
    estimated_sweat_loss_ml: Optional[float] = None
    hydration_source: Optional[str] = None


@dataclass(frozen=True)
class ActivityRecord:
    start_time_gmt: datetime
    start_time_local: Optional[datetime] = None
    activity_type: Optional[str] = None
    activity_id: Optional[int] = None
    name: Optional[str] = None
    duration: Optional[float] = None
    elapsed_duration: Optional[float] = None
    moving_duration: Optional[float] = None
    distance: Optional[float] = None
    calories: Optional[float] = None
    average_hr: Optional[float] = None
    max_hr: Optional[float] = None
    average_speed: Optional[float] = None
    max_speed: Optional[float] = None
    elevation_gain: Optional[float] = None
    elevation_loss: Optional[float] = None
    average_run_cadence: Optional[float] = None
    max_run_cadence: Optional[float] = None
    average_bike_cadence: Optional[float] = None
    avg_power: Optional[float] = None
    max_power: Optional[float] = None
    norm_power: Optional[float] = None
    training_stress_score: Optional[float] = None
    location_name: Optional[str] = None

    @property
    def start_time_iso(self) -> str:
        return self.start_time_gmt.isoformat()


@dataclass(frozen=True)
class BodyMetricsRecord:
    calendar_date: date
    vo2_max: Optional[float] = None
    max_met: Optional[float] = None
    fitness_age: Optional[float] = None
    bmi: Optional[float] = None
    weight: Optional[float] = None
    percent_body_fat: Optional[float] = None
    muscle_mass_weight: Optional[float] = None
    bone_mass_weight: Optional[float] = None
    body_water_percentage: Optional[float] = None
    physique_rating: Optional[float] = None
    visceral_fat_rating: Optional[float] = None
    metabolic_age: Optional[float] = None


@dataclass
class GarminExport:
    """The five normalized collections built from one export archive."""

    sleep: List[SleepRecord] = field(default_factory=list)
    wellness: List[WellnessRecord] = field(default_factory=list)
    hydration: List[HydrationRecord] = field(default_factory=list)
    activities: List[ActivityRecord] = field(default_factory=list)
    body_metrics: List[BodyMetricsRecord] = field(default_factory=list)

    def collection(self, category: RecordCategory) -> list:
        """Return the list that stores records of *category*."""
        return {
            RecordCategory.SLEEP: self.sleep,
            RecordCategory.WELLNESS: self.wellness,
            RecordCategory.HYDRATION: self.hydration,
            RecordCategory.ACTIVITY: self.activities,
            RecordCategory.BODY_METRICS: self.body_metrics,
        }[category]

    def counts(self) -> Dict[str, int]:
        return {
            "sleep": len(self.sleep),
            "wellness": len(self.wellness),
            "hydration": len(self.hydration),
            "activities": len(self.activities),
            "body_metrics": len(self.body_metrics),
        }

    def total_records(self) -> int:
        return sum(self.counts().values())

    def is_empty(self) -> bool:
        return self.total_records() == 0
