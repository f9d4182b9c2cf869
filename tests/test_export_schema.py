"""
Tests for record-level derived properties and the export container.
"""
from datetime import date, datetime, timezone

from export_schema import GarminExport, RecordCategory, SleepRecord, WellnessRecord

START = datetime(2024, 3, 2, 22, 30, tzinfo=timezone.utc)


class TestSleepRecord:

    def test_total_counts_missing_stages_as_zero(self):
        rec = SleepRecord(start_time_gmt=START, deep_sleep_seconds=3600, rem_sleep_seconds=1800)
        assert rec.total_sleep_seconds == 5400

    def test_total_none_when_no_stage(self):
        assert SleepRecord(start_time_gmt=START).total_sleep_seconds is None

    def test_sleep_date_prefers_calendar_date(self):
        assert SleepRecord(start_time_gmt=START).sleep_date == date(2024, 3, 2)
        assert SleepRecord(start_time_gmt=START, calendar_date=date(2024, 3, 3)).sleep_date == date(2024, 3, 3)


class TestWellnessRecord:

    def test_latest_body_battery_uses_last_entry(self):
        rec = WellnessRecord(
            calendar_date=date(2024, 3, 2),
            body_battery={"bodyBatteryStatList": [{"bodyBatteryLevel": 90}, {"bodyBatteryLevel": 35}]},
        )
        assert rec.latest_body_battery == 35

    def test_latest_body_battery_absent(self):
        assert WellnessRecord(calendar_date=date(2024, 3, 2)).latest_body_battery is None
        rec = WellnessRecord(calendar_date=date(2024, 3, 2), body_battery={"bodyBatteryStatList": []})
        assert rec.latest_body_battery is None


class TestGarminExport:

    def test_empty(self):
        export = GarminExport()
        assert export.is_empty()
        assert export.total_records() == 0
        assert set(export.counts()) == {"sleep", "wellness", "hydration", "activities", "body_metrics"}

    def test_collection_by_category(self):
        export = GarminExport()
        export.collection(RecordCategory.SLEEP).append(SleepRecord(start_time_gmt=START))
        assert export.counts()["sleep"] == 1
        assert not export.is_empty()
