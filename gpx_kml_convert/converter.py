"""
GPX → KML conversion entry points.

``convert`` works on text, ``convert_bytes`` on UTF-8 buffers (this is what
the browser-facing service calls) and ``convert_file`` on paths. All three
either return the complete KML document or raise a ``ConversionError``;
no partial output is produced.
"""

import logging
import os
from typing import Optional, Union

from pydantic import BaseModel

from .errors import MalformedInput
from .mapping import build_kml
from .reader import GpxSource, parse_gpx
from .writer import serialize_kml, write_kml

logger = logging.getLogger("gpx_kml_convert")


class ConvertOptions(BaseModel):
    pretty: bool = True
    strict: bool = False
    include_times: bool = False
    # Overrides the GPX metadata name on the KML Document
    name: Optional[str] = None


def convert(gpx_text: GpxSource, options: Optional[ConvertOptions] = None) -> str:
    """
    Convert a GPX document to KML text.

    >>> kml = convert('<gpx version="1.1" creator="x"><wpt lat="52.5" lon="13.4"/></gpx>')
    >>> "<coordinates>13.4,52.5</coordinates>" in kml
    True
    """
    options = options or ConvertOptions()
    doc = parse_gpx(gpx_text)
    kml = build_kml(doc, name=options.name, strict=options.strict, include_times=options.include_times)
    return serialize_kml(kml, pretty=options.pretty)


def convert_bytes(source: bytes, options: Optional[ConvertOptions] = None) -> bytes:
    return convert(source, options).encode("utf-8")


def convert_file(
    src: Union[str, os.PathLike],
    dst: Union[str, os.PathLike],
    options: Optional[ConvertOptions] = None,
) -> None:
    """Convert the GPX file at ``src`` and write the KML to ``dst``."""
    try:
        with open(src, "rb") as fh:
            data = fh.read()
    except OSError as e:
        raise MalformedInput(f"cannot read {src}: {e}") from e
    kml_text = convert(data, options)
    write_kml(kml_text, dst)
    logger.info("converted %s -> %s", src, dst)
