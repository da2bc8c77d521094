from __future__ import annotations

from typing import List, Optional, Sequence

TCX_NS = "http://www.garmin.com/xmlschemas/TrainingCenterDatabase/v2"
TPX_NS = "http://www.garmin.com/xmlschemas/ActivityExtension/v2"


def trackpoint_xml(
    time: Optional[str],
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    alt: Optional[object] = None,
    dist: Optional[float] = None,
    hr: Optional[float] = None,
    cadence: Optional[float] = None,
    run_cadence: Optional[float] = None,
    speed: Optional[float] = None,
    watts: Optional[float] = None,
) -> str:
    parts: List[str] = ["<Trackpoint>"]
    if time is not None:
        parts.append(f"<Time>{time}</Time>")
    if lat is not None or lon is not None:
        parts.append("<Position>")
        if lat is not None:
            parts.append(f"<LatitudeDegrees>{lat}</LatitudeDegrees>")
        if lon is not None:
            parts.append(f"<LongitudeDegrees>{lon}</LongitudeDegrees>")
        parts.append("</Position>")
    if alt is not None:
        parts.append(f"<AltitudeMeters>{alt}</AltitudeMeters>")
    if dist is not None:
        parts.append(f"<DistanceMeters>{dist}</DistanceMeters>")
    if hr is not None:
        parts.append(f"<HeartRateBpm><Value>{hr}</Value></HeartRateBpm>")
    if cadence is not None:
        parts.append(f"<Cadence>{cadence}</Cadence>")
    ext = []
    if speed is not None:
        ext.append(f"<ns3:Speed>{speed}</ns3:Speed>")
    if run_cadence is not None:
        ext.append(f"<ns3:RunCadence>{run_cadence}</ns3:RunCadence>")
    if watts is not None:
        ext.append(f"<ns3:Watts>{watts}</ns3:Watts>")
    if ext:
        parts.append("<Extensions><ns3:TPX>" + "".join(ext) + "</ns3:TPX></Extensions>")
    parts.append("</Trackpoint>")
    return "".join(parts)


def tcx_document(laps: Sequence[Sequence[str]], namespaced: bool = True) -> str:
    attrs = f' xmlns="{TCX_NS}" xmlns:ns3="{TPX_NS}"' if namespaced else f' xmlns:ns3="{TPX_NS}"'
    lap_xml = []
    for lap in laps:
        lap_xml.append(
            '<Lap StartTime="2023-05-01T10:00:00Z"><TotalTimeSeconds>0</TotalTimeSeconds>'
            "<Track>" + "".join(lap) + "</Track></Lap>"
        )
    return (
        f'<?xml version="1.0" encoding="UTF-8"?><TrainingCenterDatabase{attrs}>'
        '<Activities><Activity Sport="Biking"><Id>2023-05-01T10:00:00Z</Id>'
        + "".join(lap_xml)
        + "<Creator><Name>test</Name></Creator></Activity></Activities>"
        "<Author><Name>test</Name></Author></TrainingCenterDatabase>"
    )


def one_hz_ride(distances: Sequence[float], altitudes: Optional[Sequence[float]] = None, watts: float = 200.0) -> str:
    """Single-lap document with one trackpoint per second from 10:00:00."""
    alts = list(altitudes) if altitudes is not None else [100.0] * len(distances)
    points: List[str] = []
    for i, (d, a) in enumerate(zip(distances, alts)):
        points.append(trackpoint_xml(f"2023-05-01T10:00:{i:02d}Z", alt=a, dist=d, hr=140, watts=watts))
    return tcx_document([points])
