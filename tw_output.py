from __future__ import annotations

import csv
import json
import sys
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from tw_extract import Trackpoint
from tw_windows import WindowSummary


DELIMITER = ";"
DELIMITED_HEADER = DELIMITER.join(
    ["power_w", "heartrate_bpm", "duration_s", "distance_km", "speed_kmh", "gain_m", "gain_m_per_km", "qdh"]
)

TRACKPOINT_COLUMNS = [
    "time",
    "latitude",
    "longitude",
    "altitude",
    "distance",
    "heartrate",
    "cadence",
    "speed",
    "power",
]


# -----------------
# Window summaries
# -----------------

def format_pretty(s: WindowSummary) -> str:
    return (
        f"{s.avg_power_w:6.2f}W / {s.avg_heartrate_bpm:6.2f}bpm for {s.duration_s:.0f}s "
        f"({s.distance_m / 1000.0:5.3f}km, {s.avg_speed_kmh:5.2f}km/h, {s.elevation_gain_m:3.0f}m, "
        f"{s.gain_per_km:5.1f}m/km, QDH {s.qdh:7.1f})"
    )


def format_delimited(s: WindowSummary) -> str:
    return DELIMITER.join(
        [
            f"{s.avg_power_w:6.2f}",
            f"{s.avg_heartrate_bpm:6.2f}",
            f"{s.duration_s:.0f}",
            f"{s.distance_m / 1000.0:5.3f}",
            f"{s.avg_speed_kmh:5.2f}",
            f"{s.elevation_gain_m:5.1f}",
            f"{s.gain_per_km:5.1f}",
            f"{s.qdh:7.1f}",
        ]
    )


def summary_lines(summaries: Sequence[WindowSummary], pretty: bool, header: bool = False) -> List[str]:
    lines: List[str] = []
    if header and not pretty:
        lines.append(DELIMITED_HEADER)
    fmt = format_pretty if pretty else format_delimited
    lines.extend(fmt(s) for s in summaries)
    return lines


def write_summaries(
    summaries: Sequence[WindowSummary],
    pretty: bool,
    output: Optional[str] = None,
    header: bool = False,
) -> None:
    lines = summary_lines(summaries, pretty, header=header)
    if output is None:
        for line in lines:
            sys.stdout.write(line + "\n")
        return
    with open(output, "w", encoding="utf-8") as fh:
        for line in lines:
            fh.write(line + "\n")


def summarize_totals(summaries: Sequence[WindowSummary]) -> Dict[str, float]:
    if not summaries:
        return {"windows": 0, "duration_s": 0.0, "distance_m": 0.0, "elevation_gain_m": 0.0, "qdh": 0.0}
    table = np.asarray(
        [[s.duration_s, s.distance_m, s.elevation_gain_m, s.qdh] for s in summaries],
        dtype=np.float64,
    )
    totals = table.sum(axis=0)
    return {
        "windows": len(summaries),
        "duration_s": float(totals[0]),
        "distance_m": float(totals[1]),
        "elevation_gain_m": float(totals[2]),
        "qdh": float(totals[3]),
    }


# -----------------
# Debug dumps
# -----------------

def trackpoint_row(point: Trackpoint) -> Dict[str, Any]:
    return {
        "time": point.time.isoformat(),
        "latitude": point.latitude,
        "longitude": point.longitude,
        "altitude": point.altitude,
        "distance": point.distance,
        "heartrate": point.heartrate,
        "cadence": point.cadence,
        "speed": point.speed,
        "power": point.power,
    }


def dump_trackpoints_csv(points: Sequence[Trackpoint], path: str) -> None:
    with open(path, "w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=TRACKPOINT_COLUMNS)
        writer.writeheader()
        for point in points:
            row = trackpoint_row(point)
            writer.writerow({k: ("" if v is None else (repr(v) if isinstance(v, float) else v)) for k, v in row.items()})


def dump_trackpoints_json(points: Sequence[Trackpoint], path: str) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        json.dump({"trackpoints": [trackpoint_row(p) for p in points]}, fh, indent=2)
        fh.write("\n")
