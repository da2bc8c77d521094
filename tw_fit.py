from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from fitparse import FitFile
from fitparse.utils import FitParseError

from tw_errors import MalformedValue
from tw_extract import Trackpoint, TrackpointField, dedup_consecutive, keep_all


SEMICIRCLE_TO_DEG = 180.0 / 2 ** 31

# Record message keys per field, most preferred first.
FIT_FIELD_KEYS: Dict[TrackpointField, Tuple[str, ...]] = {
    TrackpointField.LATITUDE: ("position_lat",),
    TrackpointField.LONGITUDE: ("position_long",),
    TrackpointField.ALTITUDE: ("enhanced_altitude", "altitude"),
    TrackpointField.DISTANCE: ("distance",),
    TrackpointField.HEARTRATE: ("heart_rate",),
    TrackpointField.CADENCE: ("cadence", "enhanced_running_cadence", "enhanced_cadence"),
    TrackpointField.SPEED: ("enhanced_speed", "speed"),
    TrackpointField.POWER: ("power",),
}

_POSITION_FIELDS = (TrackpointField.LATITUDE, TrackpointField.LONGITUDE)


def _fit_timestamp(ts: Any) -> Optional[datetime]:
    if ts is None:
        return None
    if isinstance(ts, datetime):
        # fitparse hands out naive datetimes in UTC
        return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)
    try:
        return datetime.fromtimestamp(float(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _fit_value(vals: Dict[str, Any], field: TrackpointField, where: str) -> Optional[float]:
    for key in FIT_FIELD_KEYS[field]:
        raw = vals.get(key)
        if raw is None:
            continue
        try:
            value = float(raw)
        except (TypeError, ValueError) as exc:
            raise MalformedValue(field.value, str(raw), where) from exc
        if not math.isfinite(value):
            continue
        if field in _POSITION_FIELDS:
            value *= SEMICIRCLE_TO_DEG
        return value
    return None


def record_to_trackpoint(vals: Dict[str, Any], where: str) -> Optional[Trackpoint]:
    ts = _fit_timestamp(vals.get("timestamp"))
    if ts is None:
        return None
    values = {field: _fit_value(vals, field, where) for field in TrackpointField}
    return Trackpoint.from_fields(ts, values)


def load_fit(path: str, keep: Optional[Callable[[Trackpoint], bool]] = None) -> List[Trackpoint]:
    keep = keep or keep_all
    try:
        fit = FitFile(path)
        fit.parse()
    except FitParseError as exc:
        raise MalformedValue("document", str(exc), path) from exc

    parsed: List[Trackpoint] = []
    skipped = 0
    for idx, msg in enumerate(fit.get_messages("record")):
        point = record_to_trackpoint(msg.get_values(), where=f"record #{idx}")
        if point is None:
            skipped += 1
            continue
        if keep(point):
            parsed.append(point)
    if skipped:
        logging.debug("Skipped %d FIT record(s) without timestamp in %s", skipped, path)
    return dedup_consecutive(parsed)
