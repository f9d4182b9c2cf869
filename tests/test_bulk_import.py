"""
Tests for the export aggregator and the import CLI.

Covers: per-entry failure isolation, progress reporting, sorting,
idempotence, nested archives, observer callbacks, and CLI exit codes.
"""
import asyncio
import json
import logging

import pytest

from bulk_import import (
    IngestObserver,
    IngestSummary,
    _progress_logger,
    aggregate,
    load_export,
    main,
    sort_export,
)
from export_reader import ArchiveReadError, ZipArchiveReader
from export_schema import GarminExport, RecordCategory


def _aggregate_bytes(data: bytes, **kwargs) -> GarminExport:
    with ZipArchiveReader(data) as reader:
        return asyncio.run(aggregate(reader.entries(), **kwargs))


class _Recorder(IngestObserver):

    def __init__(self):
        self.events = []

    def entry_skipped(self, name, reason):
        self.events.append(("skipped", name))

    def entry_classified(self, name, category):
        self.events.append(("classified", name, category))

    def records_extracted(self, name, category, count):
        self.events.append(("extracted", name, category, count))


@pytest.fixture
def export_zip(make_zip, sleep_items):
    return make_zip({
        "DI_CONNECT/": b"",
        "DI_CONNECT/DI-Connect-Wellness/2024_sleepData.json": sleep_items,
        "DI_CONNECT/DI-Connect-Wellness/corrupt_sleepData.json": "{not json",
        "DI_CONNECT/DI-Connect-Aggregator/UDSFile_2024.json": [
            {"calendarDate": "2024-03-02", "totalSteps": 9000},
            {"calendarDate": "2024-03-01", "totalSteps": 7000},
        ],
        "DI_CONNECT/DI-Connect-Aggregator/HydrationLogFile_2024.json": [
            {"calendarDate": "2024-03-02", "valueInML": 300},
        ],
        "DI_CONNECT/DI-Connect-Fitness/user_summarizedActivities.json": [
            {"summarizedActivitiesExport": [
                {"activityId": 2, "startTimeGmt": 1709362800000, "duration": 1800},
                {"activityId": 1, "startTimeGmt": 1709276400000, "duration": 2400},
            ]},
        ],
        "DI_CONNECT/DI-Connect-Metrics/MetricsMaxMetData_2024.json": [
            {"calendarDate": "2024-03-01", "vo2MaxValue": 50.0},
        ],
        "DI_CONNECT/DI-Connect-User/user_profile.json": {"userName": "runner"},
    })


class TestAggregate:

    def test_corrupt_file_is_skipped(self, make_zip, sleep_items):
        data = make_zip({"a_sleepData.json": sleep_items, "b_sleepData.json": "{oops"})
        progress = []
        export = _aggregate_bytes(data, on_progress=progress.append)
        assert len(export.sleep) == len(sleep_items)
        assert progress[-1] == 1.0

    def test_every_category_collected(self, export_zip):
        export = _aggregate_bytes(export_zip)
        assert export.counts() == {
            "sleep": 2, "wellness": 2, "hydration": 1, "activities": 2, "body_metrics": 1,
        }
        assert export.total_records() == 8
        assert not export.is_empty()

    def test_collections_sorted(self, export_zip):
        export = _aggregate_bytes(export_zip)
        assert [s.start_time_gmt for s in export.sleep] == sorted(s.start_time_gmt for s in export.sleep)
        assert [w.total_steps for w in export.wellness] == [7000, 9000]
        assert [a.activity_id for a in export.activities] == [1, 2]

    def test_progress_excludes_directories_and_is_monotonic(self, export_zip):
        progress = []
        _aggregate_bytes(export_zip, on_progress=progress.append)
        # 7 file entries, 1 directory
        assert len(progress) == 7
        assert progress == sorted(progress)
        assert progress[-1] == 1.0

    def test_empty_archive(self, make_zip):
        progress = []
        export = _aggregate_bytes(make_zip({"DI_CONNECT/": b""}), on_progress=progress.append)
        assert export.is_empty()
        assert progress == [1.0]

    def test_only_unknown_files_gives_empty_result(self, make_zip):
        export = _aggregate_bytes(make_zip({"user_profile.json": {"a": 1}, "notes.txt": "hello"}))
        assert export.is_empty()

    def test_failing_progress_callback_is_ignored(self, make_zip, sleep_items):
        def boom(_value):
            raise RuntimeError("ui went away")

        export = _aggregate_bytes(make_zip({"sleepData.json": sleep_items}), on_progress=boom)
        assert len(export.sleep) == 2

    def test_idempotent(self, export_zip):
        assert _aggregate_bytes(export_zip) == _aggregate_bytes(export_zip)

    def test_nested_archive(self, make_zip, sleep_items):
        inner = make_zip({"DI-Connect-Wellness/sleepData.json": sleep_items})
        export = _aggregate_bytes(make_zip({"garmin_part1.zip": inner}))
        assert len(export.sleep) == 2

    def test_several_nested_archives_read_lazily(self, make_zip, sleep_items):
        parts = {
            f"garmin_part{i}.zip": make_zip({f"DI-Connect-Wellness/{i}_sleepData.json": [sleep_items[i % 2]]})
            for i in range(3)
        }
        progress = []
        export = _aggregate_bytes(make_zip(parts), on_progress=progress.append)
        assert len(export.sleep) == 3
        assert progress == pytest.approx([1 / 3, 2 / 3, 1.0])

    def test_plain_entry_list_accepted(self, make_zip, sleep_items):
        with ZipArchiveReader(make_zip({"DI/": b"", "sleepData.json": sleep_items})) as reader:
            entries = list(reader.entries())
            export = asyncio.run(aggregate(entries))
        assert len(export.sleep) == 2

    def test_overlong_integer_literal_is_skipped(self, make_zip, sleep_items):
        data = make_zip({"a_sleepData.json": sleep_items, "b_sleepData.json": "[" + "1" * 5000 + "]"})
        progress = []
        export = _aggregate_bytes(data, on_progress=progress.append)
        assert len(export.sleep) == 2
        assert progress[-1] == 1.0

    def test_deeply_nested_json_is_skipped(self, make_zip, sleep_items):
        depth = 200000
        data = make_zip({"a_sleepData.json": sleep_items, "b_sleepData.json": "[" * depth + "]" * depth})
        recorder = _Recorder()
        export = _aggregate_bytes(data, observer=recorder)
        assert len(export.sleep) == 2
        assert ("skipped", "b_sleepData.json") in recorder.events


class TestObserver:

    def test_outcomes_reported(self, make_zip, sleep_items):
        data = make_zip({"s_sleepData.json": sleep_items, "bad.json": "nope", "profile.json": {}})
        recorder = _Recorder()
        _aggregate_bytes(data, observer=recorder)
        assert ("extracted", "s_sleepData.json", RecordCategory.SLEEP, 2) in recorder.events
        assert ("skipped", "bad.json") in recorder.events
        assert ("classified", "profile.json", RecordCategory.UNKNOWN) in recorder.events

    def test_summary_tallies(self, export_zip):
        summary = IngestSummary()
        _aggregate_bytes(export_zip, observer=summary)
        assert summary.files_seen == 7
        assert list(summary.skipped) == ["DI_CONNECT/DI-Connect-Wellness/corrupt_sleepData.json"]
        assert summary.unknown == ["DI_CONNECT/DI-Connect-User/user_profile.json"]
        assert summary.records["sleep"] == 2


class TestSortExport:

    def test_returns_same_object(self):
        export = GarminExport()
        assert sort_export(export) is export


class TestLoadExport:

    def test_from_path(self, export_zip, tmp_path):
        path = tmp_path / "export.zip"
        path.write_bytes(export_zip)
        assert load_export(path).total_records() == 8

    def test_bad_archive_raises(self):
        with pytest.raises(ArchiveReadError):
            load_export(b"garbage")


class TestProgressLogger:

    def test_logs_once_per_step(self, caplog):
        caplog.set_level(logging.INFO, logger="bulk_import")
        on_progress = _progress_logger(step=0.1)
        for value in (0.05, 0.1, 0.15, 0.2, 1.0):
            on_progress(value)
        lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Progress")]
        assert lines == ["Progress:   5%", "Progress:  10%", "Progress:  20%", "Progress: 100%"]


class TestCli:

    def test_json_output(self, export_zip, tmp_path, capsys):
        path = tmp_path / "export.zip"
        path.write_bytes(export_zip)
        main(["--zip-path", str(path), "--json", "--ref-date", "2024-03-03"])
        payload = json.loads(capsys.readouterr().out)
        assert payload["counts"]["sleep"] == 2
        assert payload["overview"]["activity_count"] == 2
        assert "insights" in payload

    def test_bad_archive_exits_1(self, tmp_path):
        path = tmp_path / "broken.zip"
        path.write_bytes(b"not a zip")
        with pytest.raises(SystemExit) as exc:
            main(["--zip-path", str(path)])
        assert exc.value.code == 1

    def test_empty_export_exits_1(self, make_zip, tmp_path):
        path = tmp_path / "empty.zip"
        path.write_bytes(make_zip({"readme.txt": "nothing here"}))
        with pytest.raises(SystemExit) as exc:
            main(["--zip-path", str(path)])
        assert exc.value.code == 1
