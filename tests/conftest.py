"""
Shared test configuration.

Adds src/ to sys.path so the flat modules (bulk_import, correlation_engine,
export_reader, ...) and the pipeline/ and analytics/ module directories
import the same way they do when run from src/.

Also provides in-memory export archive builders used across test files.
"""

import io
import json
import os
import sys
import zipfile

import pytest

_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_src_dir = os.path.join(_project_root, "src")

if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)


def build_zip(files: dict) -> bytes:
    """Build a ZIP in memory.

    *files* maps member names to str/bytes content, or to any other value,
    which is JSON-encoded.  Names ending in '/' become directory entries.
    """
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            if name.endswith("/"):
                zf.writestr(zipfile.ZipInfo(name), b"")
            elif isinstance(content, bytes):
                zf.writestr(name, content)
            elif isinstance(content, str):
                zf.writestr(name, content.encode("utf-8"))
            else:
                zf.writestr(name, json.dumps(content).encode("utf-8"))
    return buf.getvalue()


@pytest.fixture
def make_zip():
    return build_zip


@pytest.fixture
def sleep_items():
    return [
        {
            "sleepStartTimestampGMT": "2024-03-02T22:30:00.0",
            "sleepEndTimestampGMT": "2024-03-03T06:30:00.0",
            "calendarDate": "2024-03-03",
            "deepSleepSeconds": 5400,
            "lightSleepSeconds": 14400,
            "remSleepSeconds": 5400,
            "awakeSleepSeconds": 1200,
        },
        {
            "sleepStartTimestampGMT": "2024-03-01T23:00:00.0",
            "sleepEndTimestampGMT": "2024-03-02T06:00:00.0",
            "calendarDate": "2024-03-02",
            "deepSleepSeconds": 3600,
            "lightSleepSeconds": 12600,
            "remSleepSeconds": 4800,
        },
    ]
