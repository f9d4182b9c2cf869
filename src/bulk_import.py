"""
Garmin Bulk Import Orchestrator
===============================

Flow for one export archive:
1. Open the export ZIP (nested per-area ZIPs are expanded in memory).
2. For every file entry, one at a time: read text, parse JSON, classify
   by file name, run the category extractor, append the records.
3. Sort the five collections by their temporal field.
4. (CLI) Run the correlation battery, weekly patterns and insight rules
   and log a digest, or print everything as JSON.

Entry-level failures (unreadable member, invalid JSON, extractor error)
are reported to the observer and skipped.  Only an unreadable archive is
fatal.

Usage:
    python src/bulk_import.py --zip-path ~/Downloads/garmin_export.zip
    python src/bulk_import.py --zip-path export.zip --window-days 60 --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from analytics.insight_rules import generate_insights
from analytics.overview import overview_stats, sleep_stage_summary
from analytics.weekly_patterns import weekly_patterns
from correlation_engine import compute_health_correlations, rank_by_strength
from export_config import INSIGHT_WINDOW_DAYS, LOG_LEVEL, SLEEP_WINDOW_DAYS
from export_reader import ArchiveEntries, ArchiveEntry, ArchiveReadError, open_export_archive
from export_schema import GarminExport, RecordCategory
from pipeline.coercion import date_sort_key
from pipeline.record_classifier import classify
from pipeline.record_extractors import EXTRACTORS

log = logging.getLogger("bulk_import")

ProgressCallback = Callable[[float], None]


# ─── Observers ───

class IngestObserver:
    """Receives per-entry outcomes from ``aggregate``. Default: ignore them."""

    def entry_skipped(self, name: str, reason: str) -> None:
        pass

    def entry_classified(self, name: str, category: RecordCategory) -> None:
        pass

    def records_extracted(self, name: str, category: RecordCategory, count: int) -> None:
        pass


class LoggingObserver(IngestObserver):
    """Forwards entry outcomes to the ``bulk_import`` logger."""

    def entry_skipped(self, name: str, reason: str) -> None:
        log.warning("Skipped %s: %s", name, reason)

    def entry_classified(self, name: str, category: RecordCategory) -> None:
        if category is RecordCategory.UNKNOWN:
            log.info("Unrecognized JSON file %s (not merged)", name)
        else:
            log.debug("Classified %s as %s", name, category.value)

    def records_extracted(self, name: str, category: RecordCategory, count: int) -> None:
        log.info("  [%s] %d records from %s", category.value, count, name)


@dataclass
class IngestSummary(LoggingObserver):
    """Logging observer that also tallies outcomes for the CLI digest."""

    skipped: Dict[str, str] = field(default_factory=dict)
    unknown: List[str] = field(default_factory=list)
    classified: int = 0
    records: Counter = field(default_factory=Counter)

    @property
    def files_seen(self) -> int:
        return self.classified + len(self.skipped)

    def entry_skipped(self, name: str, reason: str) -> None:
        super().entry_skipped(name, reason)
        self.skipped[name] = reason

    def entry_classified(self, name: str, category: RecordCategory) -> None:
        super().entry_classified(name, category)
        self.classified += 1
        if category is RecordCategory.UNKNOWN:
            self.unknown.append(name)

    def records_extracted(self, name: str, category: RecordCategory, count: int) -> None:
        super().records_extracted(name, category, count)
        self.records[category.value] += count


# ─── Aggregation ───

def _report_progress(on_progress: Optional[ProgressCallback], value: float) -> None:
    if on_progress is None:
        return
    try:
        on_progress(value)
    except Exception as e:
        log.warning("Progress callback failed (ignored): %s", e)


async def _ingest_entry(entry: ArchiveEntry, export: GarminExport, observer: IngestObserver) -> None:
    try:
        text = await entry.read_text()
    except UnicodeDecodeError as e:
        observer.entry_skipped(entry.name, f"not UTF-8 text ({e.reason})")
        return
    except Exception as e:
        observer.entry_skipped(entry.name, f"unreadable ({e})")
        return

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        observer.entry_skipped(entry.name, f"not JSON ({e.msg})")
        return
    except (ValueError, RecursionError) as e:
        # over-long integer literals, or nesting deeper than the decoder allows
        observer.entry_skipped(entry.name, f"JSON not decodable ({type(e).__name__})")
        return

    category = classify(entry.basename, payload)
    observer.entry_classified(entry.name, category)
    if category is RecordCategory.UNKNOWN:
        return

    try:
        records = EXTRACTORS[category](payload)
    except Exception as e:
        observer.entry_skipped(entry.name, f"{category.value} extraction failed ({e})")
        return

    export.collection(category).extend(records)
    observer.records_extracted(entry.name, category, len(records))


def sort_export(export: GarminExport) -> GarminExport:
    """Sort every collection ascending by its temporal field (stable)."""
    export.sleep.sort(key=lambda r: date_sort_key(r.start_time_gmt))
    export.wellness.sort(key=lambda r: date_sort_key(r.calendar_date))
    export.hydration.sort(key=lambda r: (date_sort_key(r.calendar_date), date_sort_key(r.timestamp)))
    export.activities.sort(key=lambda r: date_sort_key(r.start_time_gmt))
    export.body_metrics.sort(key=lambda r: date_sort_key(r.calendar_date))
    return export


async def aggregate(entries: Iterable[ArchiveEntry],
                    on_progress: Optional[ProgressCallback] = None,
                    observer: Optional[IngestObserver] = None) -> GarminExport:
    """Build a GarminExport from archive entries.

    Entries are processed strictly one at a time in enumeration order.
    Progress is the fraction of file entries done (directories are not
    counted), so the last call is exactly 1.0.  An export with no
    recognizable data is returned as-is; callers check ``is_empty()``.

    ``ArchiveEntries`` from a reader are counted up front and then walked
    lazily, so only one nested archive is held open at a time.  Any other
    iterable is listed first.
    """
    observer = observer or LoggingObserver()
    if isinstance(entries, ArchiveEntries):
        total = entries.file_count()
    else:
        entries = list(entries)
        total = sum(1 for entry in entries if not entry.is_dir)
    export = GarminExport()

    if not total:
        _report_progress(on_progress, 1.0)
        return export

    done = 0
    for entry in entries:
        if entry.is_dir:
            continue
        await _ingest_entry(entry, export, observer)
        done += 1
        _report_progress(on_progress, min(done / total, 1.0))

    sort_export(export)
    log.info("Ingest complete: %s", export.counts())
    return export


def load_export(source: str | Path | bytes,
                on_progress: Optional[ProgressCallback] = None,
                observer: Optional[IngestObserver] = None,
                max_depth: Optional[int] = None) -> GarminExport:
    """Open *source* and aggregate it; raises ArchiveReadError for a bad archive."""
    with open_export_archive(source, max_depth=max_depth) as reader:
        return asyncio.run(aggregate(reader.entries(), on_progress=on_progress, observer=observer))


# ─── Analysis digest ───

def run_analysis(export: GarminExport, ref_date: Optional[date] = None,
                 window_days: int = INSIGHT_WINDOW_DAYS) -> dict:
    """Correlations, weekly patterns, insights and overview for one export."""
    correlations = compute_health_correlations(export)
    return {
        "correlations": correlations,
        "significant": rank_by_strength(correlations),
        "weekly": weekly_patterns(export, ref_date, window_days),
        "insights": generate_insights(export, ref_date, window_days),
        "overview": overview_stats(export, ref_date, window_days),
        "sleep_stages": sleep_stage_summary(export, ref_date, max(window_days, SLEEP_WINDOW_DAYS)),
    }


def _log_digest(summary: IngestSummary, export: GarminExport, analysis: dict, window_days: int) -> None:
    log.info("Files processed: %d (%d skipped, %d unrecognized)",
             summary.files_seen, len(summary.skipped), len(summary.unknown))
    for category, count in export.counts().items():
        log.info("  %-13s %d", category, count)

    overview = analysis["overview"]
    log.info("Last %d days: sleep %.1f h | resting HR %.0f bpm | stress %.0f | steps %.0f | %d activities",
             window_days, overview.avg_sleep_hours, overview.avg_resting_hr, overview.avg_stress,
             overview.avg_steps, overview.activity_count)

    significant = analysis["significant"]
    log.info("Significant correlations: %d of %d", len(significant), len(analysis["correlations"]))
    for res in significant:
        log.info("  %s ↔ %s: r=%+.2f (%s, p≈%.3f, n=%d)",
                 res.metric1, res.metric2, res.correlation, res.strength, res.p_value, res.sample_size)

    weekly = analysis["weekly"]
    if weekly.best_sleep_day:
        log.info("Best sleep day: %s (%.1f h), worst: %s (%.1f h), better sleep on %ss",
                 weekly.best_sleep_day.day, weekly.best_sleep_day.sleep_hours,
                 weekly.worst_sleep_day.day, weekly.worst_sleep_day.sleep_hours,
                 weekly.better_sleep_on.lower())
    if weekly.most_active_day:
        log.info("Most active day: %s (%.0f min)", weekly.most_active_day.day,
                 weekly.most_active_day.activity_minutes)

    for insight in analysis["insights"]:
        log.info("[%s] %s: %s", insight.kind.upper(), insight.title, insight.description)


def _json_payload(export: GarminExport, analysis: dict) -> dict:
    return {
        "counts": export.counts(),
        "overview": asdict(analysis["overview"]),
        "correlations": [
            {**asdict(res), "strength": res.strength} for res in analysis["correlations"]
        ],
        "weekly": asdict(analysis["weekly"]),
        "insights": [asdict(i) for i in analysis["insights"]],
        "sleep_stages": asdict(analysis["sleep_stages"]),
    }


def _progress_logger(step: float = 0.1) -> ProgressCallback:
    last = -1

    def on_progress(value: float) -> None:
        nonlocal last
        bucket = int(value / step + 1e-9)
        if bucket > last:
            last = bucket
            log.info("Progress: %3.0f%%", value * 100)

    return on_progress


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Garmin Export Import & Analysis")
    parser.add_argument("--zip-path", required=True, help="Path to the Garmin export zip file")
    parser.add_argument("--window-days", type=int, default=INSIGHT_WINDOW_DAYS,
                        help="Look-back window for patterns and insights")
    parser.add_argument("--ref-date", type=date.fromisoformat, default=None,
                        help="Window end date (YYYY-MM-DD); defaults to today")
    parser.add_argument("--json", action="store_true", help="Print counts and analysis as JSON on stdout")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    summary = IngestSummary()
    try:
        export = load_export(args.zip_path, on_progress=_progress_logger(), observer=summary)
    except ArchiveReadError as e:
        log.error("Import failed: %s", e)
        sys.exit(1)

    if export.is_empty():
        log.error("No recognizable Garmin data found in %s", args.zip_path)
        sys.exit(1)

    analysis = run_analysis(export, args.ref_date, args.window_days)
    if args.json:
        print(json.dumps(_json_payload(export, analysis), indent=2, default=str))
    else:
        _log_digest(summary, export, analysis, args.window_days)


if __name__ == "__main__":
    main()
