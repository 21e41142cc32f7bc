"""
Convert GPX waypoints, routes and tracks to KML.

Library:
    from gpx_kml_convert import convert
    kml_text = convert(gpx_text)

Command line:
    gpx-kml-convert track.gpx -o track.kml

Web service:
    gpx-kml-server
"""

from .converter import ConvertOptions, convert, convert_bytes, convert_file
from .errors import ConversionError, MalformedInput, SerializationFailure, UnsupportedConstruct

__version__ = "1.0.0"
__all__ = [
    "convert", "convert_bytes", "convert_file", "ConvertOptions",
    "ConversionError", "MalformedInput", "UnsupportedConstruct", "SerializationFailure",
]
