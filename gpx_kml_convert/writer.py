"""KML serialization."""

import io
import logging
import os
from typing import IO, List, Union

from lxml import etree

from .errors import SerializationFailure
from .mapping import SIMPLEKML_LOCK, KmlDocument
from .reader import Link

logger = logging.getLogger("gpx_kml_convert.writer")

# Declaration every KML document starts with
XML_HEAD = '<?xml version="1.0" encoding="UTF-8"?>'
KML_NAMESPACE = "http://www.opengis.net/kml/2.2"
ATOM_NAMESPACE = "http://www.w3.org/2005/Atom"
KML_MEDIA_TYPE = "application/vnd.google-earth.kml+xml"

_KML = f"{{{KML_NAMESPACE}}}"
_ATOM = f"{{{ATOM_NAMESPACE}}}"
# Feature children that precede atom:author / atom:link in the KML 2.2 schema
_LEADING = {f"{_KML}name", f"{_KML}visibility", f"{_KML}open"}


def _atom(tag: str, **attrs) -> etree._Element:
    return etree.Element(f"{_ATOM}{tag}", {k: v for k, v in attrs.items() if v}, nsmap={"atom": ATOM_NAMESPACE})


def _atom_link(link: Link) -> etree._Element:
    return _atom("link", href=link.href, title=link.text, type=link.type)


def _insert_atom(feature: etree._Element, elements: List[etree._Element]) -> None:
    pos = 0
    for i, child in enumerate(feature):
        if child.tag in _LEADING:
            pos = i + 1
    for offset, elem in enumerate(elements):
        feature.insert(pos + offset, elem)


def _finish(root: etree._Element, doc: KmlDocument) -> None:
    """Apply exact coordinates and Atom elements, drop simplekml's ids."""
    coordinates = list(root.iter(f"{_KML}coordinates"))
    if len(coordinates) != len(doc.coordinates):
        raise RuntimeError(f"compiled {len(coordinates)} <coordinates>, mapped {len(doc.coordinates)}")
    for elem, text in zip(coordinates, doc.coordinates):
        elem.text = text

    document = root.find(f"{_KML}Document")
    placemarks = document.findall(f"{_KML}Placemark")
    if len(placemarks) != len(doc.placemark_links):
        raise RuntimeError(f"compiled {len(placemarks)} <Placemark>, mapped {len(doc.placemark_links)}")
    for placemark, links in zip(placemarks, doc.placemark_links):
        _insert_atom(placemark, [_atom_link(link) for link in links])

    header = []
    if doc.author_name or doc.author_uri:
        author = _atom("author")
        if doc.author_name:
            etree.SubElement(author, f"{_ATOM}name").text = doc.author_name
        if doc.author_uri:
            etree.SubElement(author, f"{_ATOM}uri").text = doc.author_uri
        header.append(author)
    header.extend(_atom_link(link) for link in doc.document_links)
    _insert_atom(document, header)

    # ids come from a process-wide counter
    for elem in root.iter():
        elem.attrib.pop("id", None)


def serialize_kml(doc: KmlDocument, pretty: bool = True) -> str:
    """Render ``doc`` as KML 2.2 text, pretty-printed or compact."""
    with SIMPLEKML_LOCK:
        compiled = doc.kml.kml(format=False)
    parser = etree.XMLParser(remove_blank_text=True, resolve_entities=False, no_network=True, huge_tree=True)
    root = etree.fromstring(compiled.encode("utf-8"), parser)
    _finish(root, doc)
    etree.cleanup_namespaces(root, top_nsmap={"atom": ATOM_NAMESPACE})
    body = etree.tostring(root, encoding="unicode", pretty_print=pretty)
    return f"{XML_HEAD}\n{body.rstrip()}\n"


def _is_binary(sink) -> bool:
    if isinstance(sink, io.TextIOBase):
        return False
    if isinstance(sink, (io.RawIOBase, io.BufferedIOBase)):
        return True
    return "b" in getattr(sink, "mode", "")


def write_kml(text: str, sink: Union[str, os.PathLike, IO[str], IO[bytes]]) -> None:
    """
    Write KML ``text`` to a path or a writable stream.

    Binary streams receive UTF-8. Any ``OSError`` is raised as
    :class:`SerializationFailure`.
    """
    try:
        if hasattr(sink, "write"):
            sink.write(text.encode("utf-8") if _is_binary(sink) else text)
            return
        with open(sink, "w", encoding="utf-8") as fh:
            fh.write(text)
        logger.debug("wrote %d bytes of KML to %s", len(text), sink)
    except OSError as e:
        raise SerializationFailure(str(e)) from e
