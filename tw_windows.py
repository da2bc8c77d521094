from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from tw_errors import EmptyInput, InvalidConfiguration, MalformedValue, MissingRequiredField
from tw_extract import Trackpoint


DEFAULT_WINDOW_S = 600
DEFAULT_QDH_LEN_M = 50.0
# Trailing windows holding at most this fraction of a window are dropped.
TRAILING_EPSILON = 1e-6
QDH_SCALE = 10.0


# -----------------
# Configuration
# -----------------

class GroupMetric(Enum):
    DURATION = "duration"
    DISTANCE = "distance"


class SizingMode(Enum):
    LENGTH = "length"
    COUNT = "count"


@dataclass(frozen=True)
class GroupingConfig:
    metric: GroupMetric = GroupMetric.DURATION
    mode: SizingMode = SizingMode.LENGTH
    value: Union[int, float] = DEFAULT_WINDOW_S

    @classmethod
    def parse(cls, metric: str, mode: str, value: Union[int, float]) -> "GroupingConfig":
        try:
            return cls(GroupMetric(metric.lower()), SizingMode(mode.lower()), value)
        except ValueError as exc:
            raise InvalidConfiguration(f"Unknown grouping '{metric}/{mode}'") from exc


# -----------------
# Increments and accumulators
# -----------------

@dataclass(frozen=True)
class Increment:
    group: float = 0.0
    duration: float = 0.0
    distance: float = 0.0
    elevation: float = 0.0
    power: float = 0.0
    heartrate: float = 0.0

    def scaled(self, f: float) -> "Increment":
        return Increment(
            group=self.group * f,
            duration=self.duration * f,
            distance=self.distance * f,
            elevation=self.elevation * f,
            power=self.power * f,
            heartrate=self.heartrate * f,
        )

    def split(self, f: float) -> Tuple["Increment", "Increment"]:
        """Split into the ``f`` share and the ``1 - f`` remainder."""
        return self.scaled(f), self.scaled(1.0 - f)


@dataclass
class WindowAccumulator:
    metric: float = 0.0
    duration: float = 0.0
    distance: float = 0.0
    elevation: float = 0.0
    power: float = 0.0
    heartrate: float = 0.0

    def accumulate(self, inc: Increment) -> None:
        self.metric += inc.group
        self.duration += inc.duration
        self.distance += inc.distance
        self.elevation += inc.elevation
        self.power += inc.power
        self.heartrate += inc.heartrate


@dataclass
class QdhAccumulator:
    """Gradient-stress score over consecutive distance buckets of ``threshold`` metres.

    Each bucket contributes ``gain**2 / distance * 10``. Increments crossing a
    bucket edge are split at the crossing point, so the score does not depend on
    how the distance arrives.
    """

    threshold: float = DEFAULT_QDH_LEN_M
    score: float = 0.0
    distance: float = 0.0
    elevation: float = 0.0

    def accumulate(self, distance: float, elevation: float) -> None:
        if self.threshold <= 0:
            self.distance += distance
            self.elevation += elevation
            self.flush()
            return
        while distance > 0 and self.distance + distance >= self.threshold:
            need = max(self.threshold - self.distance, 0.0)
            share = min(need / distance, 1.0)
            self.distance += need
            self.elevation += elevation * share
            self.flush()
            distance = max(distance - need, 0.0)
            elevation = elevation * (1.0 - share)
        self.distance += distance
        self.elevation += elevation

    def flush(self) -> None:
        if self.distance > 0:
            self.score += self.elevation * self.elevation / self.distance * QDH_SCALE
        self.distance = 0.0
        self.elevation = 0.0


@dataclass(frozen=True)
class WindowSummary:
    index: int
    avg_power_w: float
    avg_heartrate_bpm: float
    duration_s: float
    distance_m: float
    avg_speed_kmh: float
    elevation_gain_m: float
    gain_per_km: float
    qdh: float

    @classmethod
    def from_accumulators(cls, index: int, window: WindowAccumulator, qdh: QdhAccumulator) -> "WindowSummary":
        duration = window.duration
        distance = window.distance
        return cls(
            index=index,
            avg_power_w=window.power / duration if duration > 0 else 0.0,
            avg_heartrate_bpm=window.heartrate / duration if duration > 0 else 0.0,
            duration_s=duration,
            distance_m=distance,
            avg_speed_kmh=distance / duration * 3.6 if duration > 0 else 0.0,
            elevation_gain_m=window.elevation,
            gain_per_km=window.elevation / distance * 1000.0 if distance > 0 else 0.0,
            qdh=qdh.score,
        )


# -----------------
# Pairwise increments
# -----------------

def _required_series(
    points: Sequence[Trackpoint],
    name: str,
    getter: Callable[[Trackpoint], Optional[float]],
) -> np.ndarray:
    values: List[float] = []
    for idx, point in enumerate(points):
        value = getter(point)
        if value is None:
            raise MissingRequiredField(name, f"trackpoint #{idx} ({point.time.isoformat()})")
        values.append(float(value))
    return np.asarray(values, dtype=np.float64)


def _optional_series(points: Sequence[Trackpoint], getter: Callable[[Trackpoint], Optional[float]]) -> np.ndarray:
    return np.asarray(
        [float(v) if v is not None else 0.0 for v in map(getter, points)],
        dtype=np.float64,
    )


def _elapsed_seconds(points: Sequence[Trackpoint]) -> np.ndarray:
    t0 = points[0].time
    return np.asarray([(p.time - t0).total_seconds() for p in points], dtype=np.float64)


def _check_non_decreasing(deltas: np.ndarray, points: Sequence[Trackpoint], name: str) -> None:
    backwards = np.flatnonzero(deltas < 0)
    if backwards.size:
        i = int(backwards[0]) + 1
        point = points[i]
        raw = point.time.isoformat() if name == "time" else str(point.distance)
        raise MalformedValue(name, raw, f"trackpoint #{i} (runs backwards)")


def pair_increments(points: Sequence[Trackpoint], metric: GroupMetric) -> List[Increment]:
    if len(points) < 2:
        return []
    t = _elapsed_seconds(points)
    dist = _required_series(points, "distance", lambda p: p.distance)
    alt = _required_series(points, "altitude", lambda p: p.altitude)

    dt = np.diff(t)
    _check_non_decreasing(dt, points, "time")
    dd = np.diff(dist)
    if metric is GroupMetric.DISTANCE:
        _check_non_decreasing(dd, points, "distance")
    else:
        # Distance jitter is tolerated when it does not drive the windows.
        dd = np.clip(dd, 0.0, None)
    de = np.clip(np.diff(alt), 0.0, None)

    # Trapezoidal integration over time; absent samples count as zero.
    pw = _optional_series(points, lambda p: p.power)
    hr = _optional_series(points, lambda p: p.heartrate)
    dp = (pw[1:] + pw[:-1]) / 2.0 * dt
    dh = (hr[1:] + hr[:-1]) / 2.0 * dt

    dg = dt if metric is GroupMetric.DURATION else dd
    return [
        Increment(
            group=float(g),
            duration=float(a),
            distance=float(b),
            elevation=float(c),
            power=float(d),
            heartrate=float(e),
        )
        for g, a, b, c, d, e in zip(dg, dt, dd, de, dp, dh)
    ]


# -----------------
# Window sizing and aggregation
# -----------------

def metric_span(points: Sequence[Trackpoint], metric: GroupMetric) -> float:
    first, last = points[0], points[-1]
    if metric is GroupMetric.DURATION:
        return (last.time - first.time).total_seconds()
    if first.distance is None:
        raise MissingRequiredField("distance", "first trackpoint")
    if last.distance is None:
        raise MissingRequiredField("distance", "last trackpoint")
    return float(last.distance) - float(first.distance)


def resolve_window_size(points: Sequence[Trackpoint], config: GroupingConfig) -> float:
    if not points:
        raise EmptyInput("No trackpoints to aggregate.")
    if config.mode is SizingMode.LENGTH:
        size = float(config.value)
        if not math.isfinite(size) or size <= 0:
            raise InvalidConfiguration(f"Window length must be positive, got {config.value!r}")
        return size

    count = config.value
    if (
        isinstance(count, bool)
        or not isinstance(count, (int, float))
        or not float(count).is_integer()
        or count < 1
    ):
        raise InvalidConfiguration(f"Window count must be a positive integer, got {count!r}")
    span = metric_span(points, config.metric)
    if not math.isfinite(span) or span <= 0:
        raise InvalidConfiguration(
            f"Total {config.metric.value} span is {span:g}; cannot divide into {int(count)} window(s)"
        )
    return span / int(count)


def _check_qdh_len(qdh_len: float) -> None:
    if not math.isfinite(qdh_len) or qdh_len < 0:
        raise InvalidConfiguration(f"QDH length must be finite and non-negative, got {qdh_len!r}")


def aggregate_windows(
    points: Sequence[Trackpoint],
    config: GroupingConfig,
    qdh_len: float = DEFAULT_QDH_LEN_M,
    epsilon: float = TRAILING_EPSILON,
) -> List[WindowSummary]:
    _check_qdh_len(qdh_len)
    if not math.isfinite(epsilon) or epsilon < 0:
        raise InvalidConfiguration(f"Trailing epsilon must be finite and non-negative, got {epsilon!r}")
    size = resolve_window_size(points, config)
    logging.debug("Window size: %.3f (%s, %s)", size, config.metric.value, config.mode.value)

    summaries: List[WindowSummary] = []
    window = WindowAccumulator()
    qdh = QdhAccumulator(threshold=qdh_len)

    def _close() -> None:
        qdh.flush()
        summary = WindowSummary.from_accumulators(len(summaries), window, qdh)
        logging.debug(
            "Window %d closed: %.1fs, %.1fm, +%.1fm, QDH %.2f",
            summary.index,
            summary.duration_s,
            summary.distance_m,
            summary.elevation_gain_m,
            summary.qdh,
        )
        summaries.append(summary)

    for inc in pair_increments(points, config.metric):
        # window.metric < size holds on entry, so the split fraction is in (0, 1].
        while window.metric + inc.group >= size:
            f = (size - window.metric) / inc.group
            head, inc = inc.split(f)
            window.accumulate(head)
            qdh.accumulate(head.distance, head.elevation)
            _close()
            window = WindowAccumulator()
            qdh = QdhAccumulator(threshold=qdh_len)
        window.accumulate(inc)
        qdh.accumulate(inc.distance, inc.elevation)

    if window.metric > epsilon * size:
        _close()
    elif window.metric > 0:
        logging.debug("Dropped trailing partial window (%.3g of %.3g)", window.metric, size)

    return summaries
