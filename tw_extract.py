from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from tw_errors import MalformedValue, MissingRequiredField


# -----------------
# Data structures
# -----------------

class TrackpointField(Enum):
    LATITUDE = "latitude"
    LONGITUDE = "longitude"
    ALTITUDE = "altitude"
    DISTANCE = "distance"
    HEARTRATE = "heartrate"
    CADENCE = "cadence"
    SPEED = "speed"
    POWER = "power"


@dataclass(frozen=True)
class Trackpoint:
    time: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    distance: Optional[float] = None
    heartrate: Optional[float] = None
    cadence: Optional[float] = None
    speed: Optional[float] = None
    power: Optional[float] = None

    @classmethod
    def from_fields(cls, time: datetime, values: Dict[TrackpointField, Optional[float]]) -> "Trackpoint":
        return cls(
            time=time,
            latitude=values.get(TrackpointField.LATITUDE),
            longitude=values.get(TrackpointField.LONGITUDE),
            altitude=values.get(TrackpointField.ALTITUDE),
            distance=values.get(TrackpointField.DISTANCE),
            heartrate=values.get(TrackpointField.HEARTRATE),
            cadence=values.get(TrackpointField.CADENCE),
            speed=values.get(TrackpointField.SPEED),
            power=values.get(TrackpointField.POWER),
        )


TagPath = Tuple[str, ...]

# Sample-relative tag paths, tried in order; the first complete path wins.
FIELD_TAG_PATHS: Dict[TrackpointField, Tuple[TagPath, ...]] = {
    TrackpointField.LATITUDE: (("Position", "LatitudeDegrees"),),
    TrackpointField.LONGITUDE: (("Position", "LongitudeDegrees"),),
    TrackpointField.ALTITUDE: (("AltitudeMeters",),),
    TrackpointField.DISTANCE: (("DistanceMeters",),),
    TrackpointField.HEARTRATE: (("HeartRateBpm", "Value"),),
    TrackpointField.CADENCE: (
        ("Cadence",),
        ("Extensions", "TPX", "RunCadence"),
    ),
    TrackpointField.SPEED: (("Extensions", "TPX", "Speed"),),
    TrackpointField.POWER: (("Extensions", "TPX", "Watts"),),
}

TIME_PATH: TagPath = ("Time",)

# Activities -> Activity -> Lap -> Track -> Trackpoint below the document root.
SAMPLE_NESTING: TagPath = ("Activities", "Activity", "Lap", "Track", "Trackpoint")


# -----------------
# Document helpers
# -----------------

def local_name(tag: str) -> str:
    if not isinstance(tag, str):
        # Comments and processing instructions carry a callable tag.
        return ""
    return tag.rsplit("}", 1)[-1]


def _child(node: ET.Element, name: str) -> Optional[ET.Element]:
    for child in node:
        if local_name(child.tag) == name:
            return child
    return None


def child_text(node: ET.Element, path: Sequence[str]) -> Optional[str]:
    """Text of the descendant reached by ``path``, or None if any hop is missing.

    Tags are matched on their local name so the TCX namespace (or any other)
    does not matter.
    """
    current: Optional[ET.Element] = node
    for name in path:
        if current is None:
            return None
        current = _child(current, name)
    if current is None:
        return None
    return current.text or ""


def iter_sample_nodes(root: ET.Element, nesting: Sequence[str] = SAMPLE_NESTING) -> Iterator[ET.Element]:
    level: Iterable[ET.Element] = [root]
    for name in nesting:
        level = [child for node in level for child in node if local_name(child.tag) == name]
    return iter(level)


# -----------------
# Value parsing
# -----------------

_ISO_FRACTION = re.compile(r"(T\d{2}:\d{2}:\d{2})\.(\d+)")


def _six_digit_fraction(match: "re.Match[str]") -> str:
    return f"{match.group(1)}.{match.group(2)[:6].ljust(6, '0')}"


def parse_timestamp(text: str) -> datetime:
    s = text.strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    # fromisoformat before 3.11 accepts only 3 or 6 fractional digits.
    s = _ISO_FRACTION.sub(_six_digit_fraction, s, count=1)
    ts = datetime.fromisoformat(s)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _parse_float(field: TrackpointField, raw: str, where: str) -> float:
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise MalformedValue(field.value, raw, where) from exc


def resolve_field(node: ET.Element, field: TrackpointField, where: str) -> Optional[float]:
    for path in FIELD_TAG_PATHS[field]:
        raw = child_text(node, path)
        if raw is not None:
            return _parse_float(field, raw, where)
    return None


def parse_trackpoint(node: ET.Element, where: str = "Trackpoint") -> Trackpoint:
    raw_time = child_text(node, TIME_PATH)
    if raw_time is None:
        raise MissingRequiredField("time", where)
    try:
        time = parse_timestamp(raw_time)
    except ValueError as exc:
        raise MalformedValue("time", raw_time, where) from exc
    values = {field: resolve_field(node, field, where) for field in TrackpointField}
    return Trackpoint.from_fields(time, values)


# -----------------
# Extraction
# -----------------

def has_altitude_and_distance(point: Trackpoint) -> bool:
    return point.altitude is not None and point.distance is not None


def keep_all(point: Trackpoint) -> bool:
    return True


def dedup_consecutive(points: Iterable[Trackpoint]) -> List[Trackpoint]:
    out: List[Trackpoint] = []
    for point in points:
        if out and out[-1] == point:
            continue
        out.append(point)
    return out


def extract_trackpoints(
    root: ET.Element,
    keep: Optional[Callable[[Trackpoint], bool]] = None,
) -> List[Trackpoint]:
    keep = keep or keep_all
    parsed: List[Trackpoint] = []
    total = 0
    for idx, node in enumerate(iter_sample_nodes(root)):
        total += 1
        point = parse_trackpoint(node, where=f"Trackpoint #{idx}")
        if keep(point):
            parsed.append(point)
    points = dedup_consecutive(parsed)
    logging.debug(
        "Extracted %d trackpoint(s): %d kept by filter, %d after dedup",
        total,
        len(parsed),
        len(points),
    )
    return points


def load_tcx(path: str, keep: Optional[Callable[[Trackpoint], bool]] = None) -> List[Trackpoint]:
    try:
        tree = ET.parse(path)
    except ET.ParseError as exc:
        raise MalformedValue("document", str(exc), path) from exc
    return extract_trackpoints(tree.getroot(), keep=keep)
