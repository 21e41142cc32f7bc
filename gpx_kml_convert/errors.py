"""Exceptions raised by the GPX → KML converter."""


class ConversionError(Exception):
    """Base class for every failure surfaced by :func:`gpx_kml_convert.convert`."""

    kind = "conversion error"

    def __str__(self) -> str:
        return f"{self.kind}: {super().__str__()}"


class MalformedInput(ConversionError):
    """GPX is not well-formed XML, violates the GPX schema or cannot be read."""

    kind = "Invalid GPX"


class UnsupportedConstruct(ConversionError):
    """GPX construct without a KML equivalent, rejected in strict mode."""

    kind = "Unsupported GPX"


class SerializationFailure(ConversionError):
    """Writing the KML document to its destination failed."""

    kind = "Writing KML failed"
