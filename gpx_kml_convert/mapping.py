"""
Mapping of a parsed GPX tree onto a simplekml document.

Waypoints become Points, routes become LineStrings and every track becomes
a single Placemark. A track with one segment gets a plain LineString, any
other track a MultiGeometry with one LineString per segment.

Coordinates are written in KML order (lon, lat[, ele]). A geometry carries
elevation only if every one of its points has one; otherwise every tuple of
the geometry is written as a 2D pair and the geometry stays clamped to
ground. simplekml pads 2D tuples with 0.0 and fills empty lists with a
dummy point, so the exact coordinate text and the Atom elements are kept
on the side and applied by the writer.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

import gpxpy.gpx
import simplekml

from .errors import UnsupportedConstruct
from .reader import GpxDocument, Link

logger = logging.getLogger("gpx_kml_convert.mapping")

# simplekml numbers ids and compiles through class-level state
SIMPLEKML_LOCK = threading.RLock()

# Value for the open attribute of the main KML Document
DEFAULT_OPEN = 1
DEFAULT_TESSELLATE = 1

Coord = Tuple[float, ...]


@dataclass
class KmlDocument:
    """A simplekml document plus what the writer fills in after compiling it."""

    kml: simplekml.Kml
    # one entry per <coordinates> element, in document order
    coordinates: List[str] = field(default_factory=list)
    author_name: Optional[str] = None
    author_uri: Optional[str] = None
    document_links: List[Link] = field(default_factory=list)
    # one entry per Placemark, in document order
    placemark_links: List[List[Link]] = field(default_factory=list)


def format_time(t: datetime) -> str:
    if t.utcoffset() is not None and t.utcoffset().total_seconds() == 0:
        return t.replace(tzinfo=None).isoformat() + "Z"
    return t.isoformat()


def to_coords(points: Sequence[gpxpy.gpx.GPXWaypoint]) -> Tuple[List[Coord], bool]:
    """Return KML coordinate tuples for ``points`` and whether they carry elevation."""
    has_elevation = bool(points) and all(p.elevation is not None for p in points)
    if has_elevation:
        coords = [(p.longitude, p.latitude, p.elevation) for p in points]
    else:
        coords = [(p.longitude, p.latitude) for p in points]
    return coords, has_elevation


def coordinates_text(coords: Iterable[Coord]) -> str:
    """``lon,lat[,ele]`` tuples separated by spaces; empty for no points."""
    return " ".join(",".join(repr(float(v)) for v in c) for c in coords)


def _description(
    description: Optional[str] = None,
    comment: Optional[str] = None,
    time: Optional[datetime] = None,
    source: Optional[str] = None,
    type_: Optional[str] = None,
) -> Optional[str]:
    lines = []
    if description:
        lines.append(description)
    if comment:
        lines.append(comment)
    if time:
        lines.append(f"Created {format_time(time)}")
    if source:
        lines.append(f"Source: {source}")
    if type_:
        lines.append(f"Type: {type_}")
    return "\n".join(lines) or None


def _time_span(points: Iterable[gpxpy.gpx.GPXWaypoint]) -> Tuple[Optional[datetime], Optional[datetime]]:
    times = [p.time for p in points if p.time is not None]
    if not times:
        return None, None
    return times[0], times[-1]


def _nth(links: List[List[Link]], i: int) -> List[Link]:
    return links[i] if i < len(links) else []


def _check_line(points: Sequence, what: str, strict: bool) -> None:
    if strict and len(points) < 2:
        raise UnsupportedConstruct(f"{what} has {len(points)} point(s), a LineString needs at least 2")


class _Builder:
    def __init__(self, doc: GpxDocument, strict: bool, include_times: bool):
        self.doc = doc
        self.strict = strict
        self.include_times = include_times
        self.out = KmlDocument(kml=simplekml.Kml())

    def decorate(self, feature, name, description, links, extended=None) -> None:
        if name:
            feature.name = name
        if description:
            feature.description = description
        for key, value in (extended or {}).items():
            if value is not None:
                feature.extendeddata.newdata(name=key, value=value)
        self.out.placemark_links.append(list(links))

    def set_linestring(self, ls, points: Sequence[gpxpy.gpx.GPXWaypoint]) -> None:
        coords, has_elevation = to_coords(points)
        # placeholder keeps a <coordinates> element to overwrite with ""
        ls.coords = coords or [(0.0, 0.0)]
        ls.tessellate = DEFAULT_TESSELLATE
        if has_elevation:
            ls.altitudemode = simplekml.AltitudeMode.absolute
        self.out.coordinates.append(coordinates_text(coords))

    def span_data(self, points):
        if not self.include_times:
            return None
        begin, end = _time_span(points)
        return {
            "begin": format_time(begin) if begin else None,
            "end": format_time(end) if end else None,
        }

    def metadata(self, name: Optional[str]) -> None:
        gpx = self.doc.gpx
        document = self.out.kml.document
        document.open = DEFAULT_OPEN
        if name or gpx.name:
            document.name = name or gpx.name

        author = gpx.author_name or ""
        if gpx.author_email:
            author = f"{author} <{gpx.author_email}>".strip()
        self.out.author_name = author or None
        self.out.author_uri = gpx.author_link
        self.out.document_links = list(self.doc.metadata_links)

        lines = []
        if gpx.description:
            lines.append(gpx.description)
        if gpx.time or gpx.creator:
            created = "Created"
            if gpx.time:
                created += f" {format_time(gpx.time)}"
            if gpx.creator:
                created += f" by {gpx.creator}"
            lines.append(created)
        if gpx.keywords:
            lines.append(f"Keywords: {gpx.keywords}")
        if gpx.copyright_author or gpx.copyright_year or gpx.copyright_license:
            copyright_ = "Copyright"
            if gpx.copyright_author:
                copyright_ += f" {gpx.copyright_author}"
            if gpx.copyright_year:
                copyright_ += f" {gpx.copyright_year}"
            if gpx.copyright_license:
                copyright_ += f" under {gpx.copyright_license}"
            lines.append(copyright_)
        if lines:
            document.description = "\n".join(lines)

    def waypoint(self, wpt: gpxpy.gpx.GPXWaypoint, links: List[Link]) -> None:
        coords, has_elevation = to_coords([wpt])
        pnt = self.out.kml.newpoint(coords=coords)
        if has_elevation:
            pnt.altitudemode = simplekml.AltitudeMode.absolute
        self.out.coordinates.append(coordinates_text(coords))
        extended = {"time": format_time(wpt.time) if wpt.time else None} if self.include_times else None
        self.decorate(
            pnt, wpt.name,
            _description(wpt.description, wpt.comment, wpt.time, wpt.source, wpt.type),
            links, extended,
        )

    def route(self, route: gpxpy.gpx.GPXRoute, links: List[Link]) -> None:
        _check_line(route.points, f"route {route.name or ''!r}", self.strict)
        ls = self.out.kml.newlinestring()
        self.set_linestring(ls, route.points)
        self.decorate(
            ls, route.name,
            _description(route.description, route.comment, None, route.source, route.type),
            links, self.span_data(route.points),
        )

    def track(self, track: gpxpy.gpx.GPXTrack, links: List[Link]) -> None:
        label = f"track {track.name or ''!r}"
        if self.strict and not track.segments:
            raise UnsupportedConstruct(f"{label} has no segments")
        for i, segment in enumerate(track.segments):
            _check_line(segment.points, f"{label} segment {i}", self.strict)

        if len(track.segments) == 1:
            feature = self.out.kml.newlinestring()
            self.set_linestring(feature, track.segments[0].points)
        else:
            feature = self.out.kml.newmultigeometry()
            for segment in track.segments:
                self.set_linestring(feature.newlinestring(), segment.points)

        points = [p for segment in track.segments for p in segment.points]
        self.decorate(
            feature, track.name,
            _description(track.description, track.comment, None, track.source, track.type),
            links, self.span_data(points),
        )


def build_kml(
    doc: GpxDocument,
    name: Optional[str] = None,
    strict: bool = False,
    include_times: bool = False,
) -> KmlDocument:
    """
    Build the KML document for a parsed GPX tree.

    Placemarks are emitted for waypoints, then routes, then tracks, each
    group in document order. ``strict`` rejects routes and track segments
    with fewer than two points, and tracks without segments, with
    :class:`UnsupportedConstruct`.
    """
    gpx = doc.gpx
    with SIMPLEKML_LOCK:
        builder = _Builder(doc, strict, include_times)
        builder.metadata(name)
        for i, wpt in enumerate(gpx.waypoints):
            builder.waypoint(wpt, _nth(doc.waypoint_links, i))
        for i, route in enumerate(gpx.routes):
            builder.route(route, _nth(doc.route_links, i))
        for i, track in enumerate(gpx.tracks):
            builder.track(track, _nth(doc.track_links, i))

    logger.debug(
        "mapped %d placemarks (%d waypoints, %d routes, %d tracks)",
        len(gpx.waypoints) + len(gpx.routes) + len(gpx.tracks),
        len(gpx.waypoints), len(gpx.routes), len(gpx.tracks),
    )
    return builder.out
