"""Command-line wrapper: GPX file (or stdin) → KML file (or stdout)."""

import argparse
import sys

from . import __version__
from .config import Settings, setup_logging
from .converter import ConvertOptions, convert
from .errors import ConversionError
from .writer import write_kml


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="gpx-kml-convert", description="Convert GPX waypoints, routes and tracks to KML")
    ap.add_argument("input", nargs="?", default="-", help="GPX file to read (default: stdin)")
    ap.add_argument("-o", "--output", default="-", help="KML file to write (default: stdout)")
    ap.add_argument("--name", default=None, help="Name of the KML document (default: GPX metadata name)")
    ap.add_argument("--compact", action="store_true", default=not settings.pretty, help="Write KML without indentation")
    ap.add_argument("--strict", action="store_true", default=settings.strict,
                    help="Reject routes and track segments with fewer than two points")
    ap.add_argument("--include-times", action="store_true", default=settings.include_times,
                    help="Attach GPX timestamps as KML ExtendedData")
    ap.add_argument("--debug", action="store_true", help="Enable debug logging")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap


def main(argv=None) -> int:
    settings = Settings.from_env()
    args = build_parser(settings).parse_args(argv)
    logger = setup_logging("DEBUG" if args.debug else settings.log_level)

    options = ConvertOptions(
        pretty=not args.compact,
        strict=args.strict,
        include_times=args.include_times,
        name=args.name,
    )
    try:
        if args.input == "-":
            source = sys.stdin.buffer.read()
        else:
            try:
                with open(args.input, "rb") as fh:
                    source = fh.read()
            except OSError as e:
                print(f"Cannot read {args.input}: {e}", file=sys.stderr)
                return 1
        kml_text = convert(source, options)
        write_kml(kml_text, sys.stdout if args.output == "-" else args.output)
    except ConversionError as e:
        logger.debug("conversion of %s failed", args.input, exc_info=True)
        print(f"Conversion failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
