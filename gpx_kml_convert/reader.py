"""GPX parsing on top of gpxpy."""

import logging
from dataclasses import dataclass, field
from io import StringIO
from typing import IO, Iterator, List, Optional, Tuple, Union

import gpxpy
import gpxpy.gpx
from lxml import etree

from .errors import MalformedInput

logger = logging.getLogger("gpx_kml_convert.reader")

GpxSource = Union[str, bytes, IO[str], IO[bytes]]


def _xml_parser() -> etree.XMLParser:
    # The text is already decoded, so any encoding named in the declaration is ignored
    return etree.XMLParser(encoding="utf-8", resolve_entities=False, no_network=True, huge_tree=True)


@dataclass
class Link:
    href: str
    text: Optional[str] = None
    type: Optional[str] = None


@dataclass
class GpxDocument:
    """A parsed GPX document plus the links gpxpy does not keep."""

    gpx: gpxpy.gpx.GPX
    metadata_links: List[Link] = field(default_factory=list)
    waypoint_links: List[List[Link]] = field(default_factory=list)
    route_links: List[List[Link]] = field(default_factory=list)
    track_links: List[List[Link]] = field(default_factory=list)


def _decode(source: GpxSource) -> str:
    if hasattr(source, "read"):
        source = source.read()
    if isinstance(source, bytes):
        try:
            # utf-8-sig drops a BOM some GPS exports prepend
            return source.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise MalformedInput(f"GPX is not valid UTF-8: {e}") from e
    return source


class _Tree:
    """Namespace-aware lookups on the raw GPX element tree."""

    def __init__(self, root):
        self.root = root
        self.ns = root.tag[1:].split("}")[0] if root.tag.startswith("{") else ""

    def q(self, name: str) -> str:
        return f"{{{self.ns}}}{name}" if self.ns else name

    def findall(self, elem, *path: str):
        return elem.findall("/".join(self.q(p) for p in path))

    def text(self, elem, name: str) -> Optional[str]:
        child = elem.find(self.q(name))
        if child is None or child.text is None or not child.text.strip():
            return None
        return child.text.strip()

    def points(self) -> Iterator[Tuple[str, object]]:
        for wpt in self.findall(self.root, "wpt"):
            yield "wpt", wpt
        for rte in self.findall(self.root, "rte"):
            for point in self.findall(rte, "rtept"):
                yield "rtept", point
        for trk in self.findall(self.root, "trk"):
            for point in self.findall(trk, "trkseg", "trkpt"):
                yield "trkpt", point

    def links(self, elem) -> List[Link]:
        # GPX 1.1 <link href=...><text/><type/></link>
        result = [
            Link(link.get("href"), self.text(link, "text"), self.text(link, "type"))
            for link in self.findall(elem, "link")
            if link.get("href")
        ]
        # GPX 1.0 <url> with <urlname>
        url = self.text(elem, "url")
        if url:
            result.append(Link(url, self.text(elem, "urlname")))
        return result


def _parse_tree(text: str) -> _Tree:
    try:
        root = etree.fromstring(text.encode("utf-8"), _xml_parser())
    except (etree.XMLSyntaxError, ValueError) as e:
        raise MalformedInput(f"Error parsing XML: {e}") from e
    tree = _Tree(root)
    if etree.QName(root).localname != "gpx":
        raise MalformedInput(f"root element is <{etree.QName(root).localname}>, expected <gpx>")
    return tree


def iter_points(gpx: gpxpy.gpx.GPX) -> Iterator[Tuple[str, gpxpy.gpx.GPXWaypoint]]:
    """Yield ``(element, point)`` for every wpt, rtept and trkpt in document order."""
    for wpt in gpx.waypoints:
        yield "wpt", wpt
    for route in gpx.routes:
        for point in route.points:
            yield "rtept", point
    for track in gpx.tracks:
        for segment in track.segments:
            for point in segment.points:
                yield "trkpt", point


def _check_ranges(gpx: gpxpy.gpx.GPX) -> None:
    for element, point in iter_points(gpx):
        if not -90.0 <= point.latitude <= 90.0:
            raise MalformedInput(f"<{element}> latitude {point.latitude} outside [-90, 90]")
        if not -180.0 <= point.longitude <= 180.0:
            raise MalformedInput(f"<{element}> longitude {point.longitude} outside [-180, 180]")


def _check_times(tree: _Tree, gpx: gpxpy.gpx.GPX) -> None:
    # gpxpy turns an unparsable <time> into None instead of failing
    metadata = tree.root.find(tree.q("metadata"))
    raw = tree.text(metadata if metadata is not None else tree.root, "time")
    if raw and gpx.time is None:
        raise MalformedInput(f"malformed metadata time {raw!r}")
    for (element, raw_point), (_, point) in zip(tree.points(), iter_points(gpx)):
        raw = tree.text(raw_point, "time")
        if raw and point.time is None:
            raise MalformedInput(f"<{element}> has malformed time {raw!r}")


def _collect_links(tree: _Tree, gpx: gpxpy.gpx.GPX) -> GpxDocument:
    metadata = tree.root.find(tree.q("metadata"))
    return GpxDocument(
        gpx=gpx,
        metadata_links=tree.links(metadata if metadata is not None else tree.root),
        waypoint_links=[tree.links(e) for e in tree.findall(tree.root, "wpt")],
        route_links=[tree.links(e) for e in tree.findall(tree.root, "rte")],
        track_links=[tree.links(e) for e in tree.findall(tree.root, "trk")],
    )


def parse_gpx(source: GpxSource) -> GpxDocument:
    """
    Parse a GPX 1.0/1.1 document.

    ``source`` may be text, UTF-8 bytes or a readable stream of either.
    Raises :class:`MalformedInput` when the document is not well-formed,
    is not rooted at ``<gpx>``, violates the GPX schema, carries a
    timestamp that cannot be parsed or coordinates out of range. Nothing
    is returned on failure.
    """
    text = _decode(source)
    tree = _parse_tree(text)
    try:
        gpx = gpxpy.parse(StringIO(text))
    except (gpxpy.gpx.GPXException, ValueError) as e:
        raise MalformedInput(str(e)) from e
    _check_ranges(gpx)
    _check_times(tree, gpx)
    logger.debug(
        "parsed GPX %s: %d waypoints, %d routes, %d tracks",
        gpx.version, len(gpx.waypoints), len(gpx.routes), len(gpx.tracks),
    )
    return _collect_links(tree, gpx)
