"""Command line entry point: JSON-lines events in, enriched events out.

Usage:
    python -m dblookup --config pipeline.toml [--input FILE] [--output FILE]

Exit codes:
    0: All events processed
    1: Configuration or startup failure
    2: An input line is not a JSON object
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import IO, Iterator

from .config import load_pipeline_config
from .errors import DblookupError
from .events import Event
from .pipeline import Pipeline

LOG = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_BAD_INPUT = 2


class InputError(ValueError):
    """Raised when an input line cannot be turned into an event."""


def _read_events(stream: IO[str]) -> Iterator[Event]:
    for number, line in enumerate(stream, start=1):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as exc:
            raise InputError(f"line {number}: {exc.msg}") from exc
        if not isinstance(data, dict):
            raise InputError(f"line {number}: expected a JSON object")
        yield Event.from_dict(data)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dblookup",
        description="Enrich JSON-lines events with SQL lookup results.",
    )
    parser.add_argument("--config", required=True, help="Pipeline TOML file")
    parser.add_argument("--input", default="-", help="Input file (default: stdin)")
    parser.add_argument("--output", default="-", help="Output file (default: stdout)")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_pipeline_config(args.config)
    except DblookupError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        pipeline = Pipeline.from_config(config)
        pipeline.start()
    except DblookupError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    try:
        source = sys.stdin if args.input == "-" else open(args.input, encoding="utf-8")
        sink = sys.stdout if args.output == "-" else open(args.output, "w", encoding="utf-8")
    except OSError as exc:
        pipeline.close()
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    try:
        for event in pipeline.run(_read_events(source)):
            sink.write(json.dumps(event.to_dict(), default=str) + "\n")
    except InputError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_BAD_INPUT
    finally:
        pipeline.close()
        if source is not sys.stdin:
            source.close()
        if sink is not sys.stdout:
            sink.close()
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
