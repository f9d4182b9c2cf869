"""
Record Extractors
=================
Turn one parsed export file into typed records.

Each category has an explicit, ordered list of ``ShapeMatcher`` objects,
one per historical JSON layout.  The first matcher whose predicate
accepts the payload selects the raw item dicts; a per-category builder
then converts each item into a record, dropping items that carry no
usable temporal field.

All ``extract_*`` functions are total: a payload matching no known shape
yields ``[]``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from export_schema import (
    ActivityRecord,
    BodyMetricsRecord,
    HydrationRecord,
    RecordCategory,
    SleepRecord,
    WellnessRecord,
)
from pipeline.coercion import (
    finite_number,
    first_number,
    first_present,
    midnight_utc,
    parse_calendar_date,
    parse_local_timestamp,
    parse_timestamp,
)

log = logging.getLogger("record_extractors")

# Tag of the whole-day entry in allDayStress.aggregatorList
WHOLE_DAY_STRESS_TAG = "TOTAL"

SLEEP_WRAPPER_KEYS = ("sleepData", "data", "records", "items")
ACTIVITY_WRAPPER_KEY = "summarizedActivitiesExport"
ACTIVITY_OBJECT_KEYS = ("summarizedActivities", "summarizedActivitiesExport", "activities", "data", "records")


@dataclass(frozen=True)
class ShapeMatcher:
    """One recognised JSON layout: a predicate plus the item selector."""

    name: str
    matches: Callable[[Any], bool]
    extract: Callable[[Any], list]


# ─── Shape helpers ───

def _dicts(items: Any) -> list[dict]:
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _has_list(key: str) -> Callable[[Any], bool]:
    return lambda payload: isinstance(payload, dict) and isinstance(payload.get(key), list)


def _list_under(key: str) -> Callable[[Any], list]:
    return lambda payload: _dicts(payload[key])


def _wrapper_shapes(keys: Sequence[str]) -> list[ShapeMatcher]:
    return [ShapeMatcher(f"wrapper:{key}", _has_list(key), _list_under(key)) for key in keys]


def _is_list(payload: Any) -> bool:
    return isinstance(payload, list)


def _match_first(shapes: Sequence[ShapeMatcher], payload: Any, label: str) -> list[dict]:
    for shape in shapes:
        if shape.matches(payload):
            items = shape.extract(payload)
            log.debug("%s payload matched shape %s (%d items)", label, shape.name, len(items))
            return items
    log.debug("%s payload matched no known shape (%s)", label, type(payload).__name__)
    return []


def _as_int(value: Any) -> Optional[int]:
    num = finite_number(value)
    return int(num) if num is not None else None


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _has_date_field(item: Any, *keys: str) -> bool:
    return isinstance(item, dict) and first_present(item, *keys) is not None


# ─── Sleep ───

SLEEP_SHAPES: list[ShapeMatcher] = [
    ShapeMatcher("bare_list", _is_list, _dicts),
    *_wrapper_shapes(SLEEP_WRAPPER_KEYS),
]


def _sleep_score(d: dict) -> Optional[float]:
    flat = finite_number(d.get("overallScore"))
    if flat is not None:
        return flat
    scores = d.get("sleepScores")
    if isinstance(scores, dict) and isinstance(scores.get("overall"), dict):
        return finite_number(scores["overall"].get("value"))
    return None


def build_sleep(d: dict) -> Optional[SleepRecord]:
    calendar_date = parse_calendar_date(d.get("calendarDate"))
    start = parse_timestamp(d.get("sleepStartTimestampGMT")) or parse_timestamp(d.get("sleepStartTimestampLocal"))
    if start is None and calendar_date is not None:
        start = midnight_utc(calendar_date)
    if start is None:
        return None

    return SleepRecord(
        start_time_gmt=start,
        end_time_gmt=parse_timestamp(d.get("sleepEndTimestampGMT")),
        start_time_local=parse_local_timestamp(d.get("sleepStartTimestampLocal")),
        end_time_local=parse_local_timestamp(d.get("sleepEndTimestampLocal")),
        calendar_date=calendar_date,
        deep_sleep_seconds=finite_number(d.get("deepSleepSeconds")),
        light_sleep_seconds=finite_number(d.get("lightSleepSeconds")),
        rem_sleep_seconds=finite_number(d.get("remSleepSeconds")),
        awake_sleep_seconds=finite_number(d.get("awakeSleepSeconds")),
        unmeasurable_sleep_seconds=first_number(d, "unmeasurableSeconds", "unmeasurableSleepSeconds"),
        average_respiration=first_number(d, "averageRespiration", "averageRespirationValue"),
        lowest_respiration=first_number(d, "lowestRespiration", "lowestRespirationValue"),
        highest_respiration=first_number(d, "highestRespiration", "highestRespirationValue"),
        avg_sleep_stress=finite_number(d.get("avgSleepStress")),
        overall_score=_sleep_score(d),
        sleep_window_confirmation_type=_as_str(d.get("sleepWindowConfirmationType")),
        sleep_score_feedback=_as_str(d.get("sleepScoreFeedback")),
    )


def extract_sleep(payload: Any) -> list[SleepRecord]:
    items = _match_first(SLEEP_SHAPES, payload, "sleep")
    return [rec for rec in map(build_sleep, items) if rec is not None]


# ─── Wellness (daily user summary) ───

WELLNESS_SHAPES: list[ShapeMatcher] = [
    ShapeMatcher("single_day", lambda p: _has_date_field(p, "calendarDate"), lambda p: [p]),
    ShapeMatcher("day_list", _is_list, lambda p: [d for d in _dicts(p) if _has_date_field(d, "calendarDate")]),
]

# WellnessRecord field -> key inside the TOTAL stress aggregate
STRESS_FIELDS = {
    "average_stress_level": "averageStressLevel",
    "max_stress_level": "maxStressLevel",
    "stress_duration": "stressDuration",
    "rest_stress_duration": "restDuration",
    "activity_stress_duration": "activityDuration",
    "uncategorized_stress_duration": "uncategorizedDuration",
    "total_stress_duration": "totalDuration",
    "low_stress_duration": "lowDuration",
    "medium_stress_duration": "mediumDuration",
    "high_stress_duration": "highDuration",
}


def whole_day_stress(all_day_stress: Any) -> Optional[dict]:
    """Pick the aggregate tagged TOTAL; its position in the list is not fixed."""
    if not isinstance(all_day_stress, dict):
        return None
    for agg in _dicts(all_day_stress.get("aggregatorList")):
        if agg.get("type") == WHOLE_DAY_STRESS_TAG:
            return agg
    return None


def build_wellness(d: dict) -> Optional[WellnessRecord]:
    calendar_date = parse_calendar_date(d.get("calendarDate"))
    if calendar_date is None:
        return None

    all_day_stress = d.get("allDayStress") if isinstance(d.get("allDayStress"), dict) else None
    body_battery = d.get("bodyBattery") if isinstance(d.get("bodyBattery"), dict) else None
    total = whole_day_stress(all_day_stress) or {}
    stress = {field: finite_number(total.get(key)) for field, key in STRESS_FIELDS.items()}

    return WellnessRecord(
        calendar_date=calendar_date,
        total_steps=_as_int(d.get("totalSteps")),
        total_distance_meters=finite_number(d.get("totalDistanceMeters")),
        total_kilocalories=finite_number(d.get("totalKilocalories")),
        active_kilocalories=finite_number(d.get("activeKilocalories")),
        bmr_kilocalories=finite_number(d.get("bmrKilocalories")),
        wellness_kilocalories=finite_number(d.get("wellnessKilocalories")),
        floors_ascended=first_number(d, "floorsAscended", "floorsAscendedInMeters"),
        floors_descended=first_number(d, "floorsDescended", "floorsDescendedInMeters"),
        min_heart_rate=_as_int(d.get("minHeartRate")),
        max_heart_rate=_as_int(d.get("maxHeartRate")),
        resting_heart_rate=_as_int(first_number(d, "restingHeartRate", "currentDayRestingHeartRate")),
        last_seven_days_avg_resting_heart_rate=_as_int(d.get("lastSevenDaysAvgRestingHeartRate")),
        all_day_stress=all_day_stress,
        body_battery=body_battery,
        **stress,
    )


def extract_wellness(payload: Any) -> list[WellnessRecord]:
    items = _match_first(WELLNESS_SHAPES, payload, "wellness")
    return [rec for rec in map(build_wellness, items) if rec is not None]


# ─── Hydration ───

HYDRATION_SHAPES: list[ShapeMatcher] = [
    ShapeMatcher("bare_list", _is_list, _dicts),
]


def build_hydration(d: dict) -> Optional[HydrationRecord]:
    value = finite_number(d.get("valueInML"))
    if value is None:
        return None

    calendar_date = parse_calendar_date(d.get("calendarDate"))
    timestamp = parse_timestamp(d.get("timestampGMT")) or parse_timestamp(d.get("timestampLocal"))
    if timestamp is None and calendar_date is not None:
        timestamp = midnight_utc(calendar_date)
    if timestamp is None:
        return None

    return HydrationRecord(
        calendar_date=calendar_date or timestamp.date(),
        timestamp=timestamp,
        value_in_ml=value,
        estimated_sweat_loss_ml=first_number(d, "estimatedSweatLossInML", "sweatLossInML"),
        hydration_source=_as_str(d.get("hydrationSource")),
    )


def extract_hydration(payload: Any) -> list[HydrationRecord]:
    items = _match_first(HYDRATION_SHAPES, payload, "hydration")
    return [rec for rec in map(build_hydration, items) if rec is not None]


# ─── Activities ───

def _is_wrapper_list(payload: Any) -> bool:
    return isinstance(payload, list) and any(
        isinstance(item, dict) and isinstance(item.get(ACTIVITY_WRAPPER_KEY), list) for item in payload
    )


def _flatten_wrappers(payload: list) -> list[dict]:
    flat: list[dict] = []
    for item in payload:
        if isinstance(item, dict) and isinstance(item.get(ACTIVITY_WRAPPER_KEY), list):
            flat.extend(_dicts(item[ACTIVITY_WRAPPER_KEY]))
    return flat


ACTIVITY_SHAPES: list[ShapeMatcher] = [
    ShapeMatcher("wrapper_list", _is_wrapper_list, _flatten_wrappers),
    ShapeMatcher("bare_list", _is_list, _dicts),
    *_wrapper_shapes(ACTIVITY_OBJECT_KEYS),
]

# ActivityRecord field -> accepted source spellings, first found wins
ACTIVITY_NUMERIC_FIELDS = {
    "duration": ("duration",),
    "elapsed_duration": ("elapsedDuration",),
    "moving_duration": ("movingDuration",),
    "distance": ("distance",),
    "calories": ("calories",),
    "average_hr": ("averageHR", "avgHr"),
    "max_hr": ("maxHR", "maxHr"),
    "average_speed": ("averageSpeed", "avgSpeed"),
    "max_speed": ("maxSpeed", "maxSpeedMps"),
    "elevation_gain": ("elevationGain", "totalAscent"),
    "elevation_loss": ("elevationLoss", "totalDescent"),
    "average_run_cadence": ("averageRunningCadenceInStepsPerMinute", "avgRunCadence"),
    "max_run_cadence": ("maxRunningCadenceInStepsPerMinute", "maxRunCadence"),
    "average_bike_cadence": ("averageBikingCadenceInRevPerMinute", "avgBikeCadence"),
    "avg_power": ("avgPower", "averagePower"),
    "max_power": ("maxPower",),
    "norm_power": ("normPower", "normalizedPower"),
    "training_stress_score": ("trainingStressScore", "tss"),
}


def _activity_type(d: dict) -> Optional[str]:
    raw = d.get("activityType")
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict) and isinstance(raw.get("typeKey"), str):
        return raw["typeKey"]
    return _as_str(d.get("sportType"))


def build_activity(d: dict) -> Optional[ActivityRecord]:
    start = parse_timestamp(first_present(d, "startTimeGMT", "startTimeGmt"))
    if start is None:
        start = parse_timestamp(d.get("beginTimestamp"))
    if start is None:
        return None

    numeric = {field: first_number(d, *keys) for field, keys in ACTIVITY_NUMERIC_FIELDS.items()}
    return ActivityRecord(
        start_time_gmt=start,
        start_time_local=parse_local_timestamp(d.get("startTimeLocal")),
        activity_type=_activity_type(d),
        activity_id=_as_int(d.get("activityId")),
        name=_as_str(first_present(d, "name", "activityName")),
        location_name=_as_str(d.get("locationName")),
        **numeric,
    )


def extract_activities(payload: Any) -> list[ActivityRecord]:
    items = _match_first(ACTIVITY_SHAPES, payload, "activity")
    return [rec for rec in map(build_activity, items) if rec is not None]


# ─── Body metrics ───

BODY_METRICS_DATE_KEYS = ("calendarDate", "metricsDate")

BODY_METRICS_SHAPES: list[ShapeMatcher] = [
    ShapeMatcher("single_object", lambda p: _has_date_field(p, *BODY_METRICS_DATE_KEYS), lambda p: [p]),
    ShapeMatcher(
        "first_of_list",
        lambda p: isinstance(p, list) and bool(p) and _has_date_field(p[0], *BODY_METRICS_DATE_KEYS),
        lambda p: [p[0]],
    ),
]

BODY_METRICS_NUMERIC_FIELDS = {
    "vo2_max": ("vo2Max", "vo2MaxValue"),
    "max_met": ("maxMet",),
    "fitness_age": ("fitnessAge",),
    "bmi": ("bmi",),
    "weight": ("weight",),
    "percent_body_fat": ("bodyFat", "percentBodyFat"),
    "muscle_mass_weight": ("muscleMass", "muscleMassWeight"),
    "bone_mass_weight": ("boneMass", "boneMassWeight"),
    "body_water_percentage": ("bodyWater", "bodyWaterPercentage"),
    "physique_rating": ("physiqueRating",),
    "visceral_fat_rating": ("visceralFat", "visceralFatRating"),
    "metabolic_age": ("metabolicAge",),
}


def build_body_metrics(d: dict) -> Optional[BodyMetricsRecord]:
    calendar_date = parse_calendar_date(d.get("calendarDate"))
    if calendar_date is None:
        calendar_date = parse_calendar_date(d.get("metricsDate"))
    if calendar_date is None:
        return None
    numeric = {field: first_number(d, *keys) for field, keys in BODY_METRICS_NUMERIC_FIELDS.items()}
    return BodyMetricsRecord(calendar_date=calendar_date, **numeric)


def extract_body_metrics(payload: Any) -> list[BodyMetricsRecord]:
    items = _match_first(BODY_METRICS_SHAPES, payload, "body_metrics")
    return [rec for rec in map(build_body_metrics, items) if rec is not None]


EXTRACTORS: dict[RecordCategory, Callable[[Any], list]] = {
    RecordCategory.SLEEP: extract_sleep,
    RecordCategory.WELLNESS: extract_wellness,
    RecordCategory.HYDRATION: extract_hydration,
    RecordCategory.ACTIVITY: extract_activities,
    RecordCategory.BODY_METRICS: extract_body_metrics,
}
