"""Decide which record category an export file belongs to.

Garmin export file names follow a handful of loose conventions, e.g.::

    DI_CONNECT/DI-Connect-Wellness/2024-01-01_2024-04-10_123_sleepData.json
    DI_CONNECT/DI-Connect-Aggregator/UDSFile_2024-01-01_2024-04-10.json
    DI_CONNECT/DI-Connect-Aggregator/HydrationLogFile_2024-01-01_2024-04-10.json
    DI_CONNECT/DI-Connect-Fitness/user_summarizedActivities.json
    DI_CONNECT/DI-Connect-Metrics/MetricsMaxMetData_20240101_20240410_123.json

Only the base name is inspected, so directory names never decide the
category.  The first matching rule wins.
"""

from __future__ import annotations

from typing import Any

from export_schema import RecordCategory

# (category, tokens, require_json_suffix); order is significant
CLASSIFICATION_RULES: list[tuple[RecordCategory, tuple[str, ...], bool]] = [
    (RecordCategory.SLEEP, ("sleep",), True),
    (RecordCategory.WELLNESS, ("udsfile_", "uds"), False),
    (RecordCategory.HYDRATION, ("hydration",), False),
    (RecordCategory.ACTIVITY, ("activities", "summarized"), False),
    (RecordCategory.BODY_METRICS, ("metricsmaxmetdata_", "metrics"), False),
]


def classify(filename: str, payload: Any = None) -> RecordCategory:
    """Return the category for *filename*, or ``RecordCategory.UNKNOWN``.

    *payload* is the already-parsed JSON document.  The rules only look at
    the name; a parsed file that matches none of them is UNKNOWN.
    """
    name = filename.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1].lower()
    for category, tokens, require_json in CLASSIFICATION_RULES:
        if require_json and not name.endswith(".json"):
            continue
        if any(token in name for token in tokens):
            return category
    return RecordCategory.UNKNOWN
