"""
Correlation Engine
==================
Pearson correlation between daily health series built from a Garmin
export.

Layers:
  Layer 0 - Alignment:  pair two irregular daily series on the dates
            both of them carry a value for.
  Layer 1 - Pearson:    same-day r with a closed-form approximate p-value,
            plus lag-1 ("yesterday predicts today") re-pairing.
  Layer 2 - Ranking:    threshold filter sorted by |r|.
  Layer 3 - Battery:    the fixed list of sleep / stress / activity pairs
            evaluated over one export.

Notes on the p-value:
  • ``approximate_p_value`` is a cheap closed-form approximation of the
    two-tailed Student-t test on n-2 degrees of freedom.  It is coarse and
    must not be read as an exact test.
  • ``reference_p_value`` is the exact two-tailed value from scipy and is
    reported next to it on every CorrelationResult.
"""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence

import numpy as np
from scipy import stats as sp_stats

from analytics.daily_series import activity_daily, sleep_daily, wellness_daily
from export_config import CORRELATION_MAX_P, CORRELATION_MIN_ABS_R, MIN_ALIGNED_SAMPLES
from export_schema import GarminExport

log = logging.getLogger("correlation_engine")


# ═══════════════════════════════════════════════════════════════
#  CONSTANTS
# ═══════════════════════════════════════════════════════════════

MIN_PAIRED_POINTS = 3

# (label1, source1, key1, label2, source2, key2); sources are the
# daily_series builders below
HEALTH_PAIRS = [
    # REM sleep
    ("REM Sleep", "sleep", "rem_hours", "Stress Level", "wellness", "stress"),
    ("REM Sleep", "sleep", "rem_hours", "Body Battery", "wellness", "body_battery"),
    ("REM Sleep", "sleep", "rem_hours", "Resting HR", "wellness", "resting_hr"),
    ("REM Sleep", "sleep", "rem_hours", "Exercise Duration", "activity", "duration_minutes"),
    # Sleep quality
    ("Total Sleep", "sleep", "total_hours", "Stress Level", "wellness", "stress"),
    ("Total Sleep", "sleep", "total_hours", "Body Battery", "wellness", "body_battery"),
    ("Deep Sleep", "sleep", "deep_hours", "Stress Level", "wellness", "stress"),
    ("Sleep Efficiency", "sleep", "efficiency", "Stress Level", "wellness", "stress"),
    # General health
    ("Stress Level", "wellness", "stress", "Body Battery", "wellness", "body_battery"),
    ("Daily Steps", "wellness", "steps", "Total Sleep", "sleep", "total_hours"),
    ("Resting HR", "wellness", "resting_hr", "Stress Level", "wellness", "stress"),
    ("Exercise Duration", "activity", "duration_minutes", "Total Sleep", "sleep", "total_hours"),
]

# |r| lower bounds, checked in order
STRENGTH_BANDS = [
    (0.7, "Very Strong"),
    (0.5, "Strong"),
    (0.3, "Moderate"),
    (0.1, "Weak"),
]


class PearsonFit(NamedTuple):
    r: float
    p_value: float


@dataclass(frozen=True)
class AlignedSeries:
    x: List[float]
    y: List[float]
    dates: List[str]

    def __len__(self) -> int:
        return len(self.dates)


@dataclass(frozen=True)
class CorrelationResult:
    metric1: str
    metric2: str
    correlation: float
    p_value: float
    sample_size: int
    lag_days: int = 0
    reference_p_value: Optional[float] = None

    @property
    def strength(self) -> str:
        return strength_label(self.correlation)

    @property
    def direction(self) -> str:
        return "positive" if self.correlation > 0 else "negative" if self.correlation < 0 else "none"


def strength_label(r: float) -> str:
    magnitude = abs(r)
    for bound, label in STRENGTH_BANDS:
        if magnitude > bound:
            return label
    return "Negligible"


# ─── LAYER 0: Alignment ───────────────────────────────────────

def _series_value(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return None
    try:
        value = float(value)
    except OverflowError:
        return None
    return value if math.isfinite(value) else None


def _date_key(value: Any) -> Optional[str]:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and value:
        return value
    return None


def align_series(series_a: Sequence[Mapping[str, Any]], series_b: Sequence[Mapping[str, Any]],
                 key_a: str, key_b: str, date_field: str = "date") -> AlignedSeries:
    """Pair ``key_a`` from *series_a* with ``key_b`` from *series_b* by date.

    Only dates with a finite value on both sides survive.  A later row for
    the same date overrides an earlier one.  Output is ordered by ascending
    lexical date, which is chronological for zero-padded ISO dates.
    """
    by_date: Dict[str, Dict[str, float]] = {}

    for rows, key, slot in ((series_a, key_a, "a"), (series_b, key_b, "b")):
        for row in rows:
            day = _date_key(row.get(date_field))
            value = _series_value(row.get(key))
            if day is None or value is None:
                continue
            by_date.setdefault(day, {})[slot] = value

    dates = sorted(d for d, pair in by_date.items() if "a" in pair and "b" in pair)
    return AlignedSeries(
        x=[by_date[d]["a"] for d in dates],
        y=[by_date[d]["b"] for d in dates],
        dates=dates,
    )


# ─── LAYER 1: Pearson ─────────────────────────────────────────

def approximate_p_value(r: float, n: int) -> float:
    """Closed-form two-tailed p-value approximation for Pearson r.

    t = r·√((n-2)/(1-r²)) on df = n-2, then
    p ≈ 2·√(π·df)·(1 + t²/df)^(-(df+1)/2) / √df, clamped to [0, 1].
    A perfect correlation gives an infinite t and p = 0.
    """
    df = n - 2
    if df <= 0:
        return 1.0
    if abs(r) >= 1.0:
        return 0.0
    t = r * math.sqrt(df / (1 - r * r))
    beta = math.sqrt(math.pi * df) * (1 + t * t / df) ** (-(df + 1) / 2) / math.sqrt(df)
    return min(1.0, max(0.0, 2 * beta))


def reference_p_value(r: float, n: int) -> float:
    """Exact two-tailed p-value from the Student-t survival function."""
    if n < MIN_PAIRED_POINTS:
        return 1.0
    if abs(r) >= 1.0:
        return 0.0
    t_stat = r * math.sqrt((n - 2) / (1 - r * r))
    return float(2 * sp_stats.t.sf(abs(t_stat), n - 2))


def correlate(x: Sequence[float], y: Sequence[float]) -> PearsonFit:
    """Pearson r from raw sums, with the approximate p-value.

    Returns (0, 1) for mismatched lengths, fewer than 3 points, or a
    zero-variance input.
    """
    n = len(x)
    if n != len(y) or n < MIN_PAIRED_POINTS:
        return PearsonFit(0.0, 1.0)

    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    sum_x, sum_y = xs.sum(), ys.sum()
    sum_xy = (xs * ys).sum()
    sum_x2, sum_y2 = (xs * xs).sum(), (ys * ys).sum()

    var_x = n * sum_x2 - sum_x * sum_x
    var_y = n * sum_y2 - sum_y * sum_y
    if var_x <= 0 or var_y <= 0:
        return PearsonFit(0.0, 1.0)
    denominator = math.sqrt(var_x * var_y)
    if denominator == 0 or not math.isfinite(denominator):
        return PearsonFit(0.0, 1.0)

    r = float((n * sum_xy - sum_x * sum_y) / denominator)
    r = max(-1.0, min(1.0, r))
    return PearsonFit(r, approximate_p_value(r, n))


def lagged_correlate(x: Sequence[float], y: Sequence[float], dates: Sequence[str],
                     lag_days: int) -> PearsonFit:
    """Correlate ``x[i - lag_days]`` with ``y[i]``.

    The shift is by position in the aligned sequence; gaps between
    aligned dates are not re-expanded.
    """
    lagged_x: List[float] = []
    lagged_y: List[float] = []
    for i in range(max(lag_days, 0), len(dates)):
        j = i - lag_days
        if 0 <= j < len(x) and i < len(y):
            lagged_x.append(x[j])
            lagged_y.append(y[i])
    return correlate(lagged_x, lagged_y)


# ─── LAYER 2: Ranking ─────────────────────────────────────────

def rank_by_strength(results: Sequence[CorrelationResult],
                     min_abs_r: float = CORRELATION_MIN_ABS_R,
                     max_p_value: float = CORRELATION_MAX_P) -> List[CorrelationResult]:
    """Keep results with |r| >= min_abs_r and p <= max_p_value, strongest first."""
    kept = [res for res in results
            if abs(res.correlation) >= min_abs_r and res.p_value <= max_p_value]
    return sorted(kept, key=lambda res: abs(res.correlation), reverse=True)


# ─── LAYER 3: Health correlation battery ──────────────────────

def _pair_result(label1: str, label2: str, fit: PearsonFit, n: int, lag_days: int = 0) -> CorrelationResult:
    return CorrelationResult(
        metric1=label1,
        metric2=label2,
        correlation=fit.r,
        p_value=fit.p_value,
        sample_size=n,
        lag_days=lag_days,
        reference_p_value=reference_p_value(fit.r, n),
    )


def compute_health_correlations(export: GarminExport,
                                min_samples: int = MIN_ALIGNED_SAMPLES) -> List[CorrelationResult]:
    """Evaluate HEALTH_PAIRS over *export*, sorted by descending |r|.

    A pair needs ``min_samples`` aligned days.  With more aligned days than
    that, the lag-1 variant is added as "<metric1> (prev day)" vs
    "<metric2> (today)".
    """
    series = {
        "sleep": sleep_daily(export),
        "wellness": wellness_daily(export),
        "activity": activity_daily(export),
    }
    log.info(
        "   Daily series: %d sleep, %d wellness, %d activity days",
        len(series["sleep"]), len(series["wellness"]), len(series["activity"]),
    )

    results: List[CorrelationResult] = []
    for label1, src1, key1, label2, src2, key2 in HEALTH_PAIRS:
        aligned = align_series(series[src1], series[src2], key1, key2)
        n = len(aligned)
        if n < min_samples:
            log.debug("   skip %s vs %s: %d aligned days", label1, label2, n)
            continue

        results.append(_pair_result(label1, label2, correlate(aligned.x, aligned.y), n))

        if n > min_samples:
            lagged = lagged_correlate(aligned.x, aligned.y, aligned.dates, 1)
            results.append(
                _pair_result(f"{label1} (prev day)", f"{label2} (today)", lagged, n - 1, lag_days=1)
            )

    results.sort(key=lambda res: abs(res.correlation), reverse=True)
    log.info("   ✓ %d correlation results", len(results))
    return results
