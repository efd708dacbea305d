"""
Command line driver.
Reads a JSON document, encodes or decodes it with the secret from
PAYLOAD_NOISE_KEY (environment or .env) and prints the result as JSON.
"""
import argparse
import json
import logging
import sys
from typing import Optional, Sequence

from .codec import PayloadNoise
from .config import Settings
from .errors import PayloadNoiseError, ConfigurationError, InputError
from .protocol import dumps_envelope

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="payload_noise",
                                 description="Encode a JSON object into a noisy envelope, or decode one.")
    ap.add_argument("command", choices=("encode", "decode"), help="Direction of the transform")
    ap.add_argument("input", nargs="?", default="-", help="Input JSON file, '-' for stdin (default)")
    ap.add_argument("-o", "--output", default="-", help="Output file, '-' for stdout (default)")
    ap.add_argument("--compact", action="store_true", help="Write envelopes with the short key layout")
    ap.add_argument("--max-age-ms", type=int, default=None,
                    help="Reject envelopes older than this (overrides PAYLOAD_NOISE_MAX_AGE_MS)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap


def _read(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as fh:
        return fh.read()


def _write(path: str, text: str) -> None:
    if path == "-":
        print(text)
        return
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(text + "\n")


def main(argv: Optional[Sequence[str]] = None) -> int:
    '''
    Entry point. Returns the process exit code:
    0 on success, 2 for configuration/input problems, 1 when an envelope is rejected.
    '''
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        kwargs = {}
        if args.max_age_ms is not None:
            kwargs["max_age_ms"] = args.max_age_ms
        noise = PayloadNoise.from_env(settings, **kwargs)
        text = _read(args.input)
        logger.debug("%s %s (%d chars)", args.command, args.input, len(text))

        if args.command == "encode":
            try:
                payload = json.loads(text)
            except json.JSONDecodeError as exc:
                raise InputError(f"input is not valid JSON: {exc}") from exc
            out = dumps_envelope(noise.encode(payload), compact=args.compact, indent=2)
        else:
            out = json.dumps(noise.decode(text), ensure_ascii=False, indent=2)
    except (ConfigurationError, InputError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except PayloadNoiseError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_REJECTED

    _write(args.output, out)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
