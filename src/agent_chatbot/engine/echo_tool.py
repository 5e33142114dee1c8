"""Local deterministic tool for engine integration tests and smoke runs."""

from __future__ import annotations

import argparse
import sys
import time


def main(argv: list[str] | None = None) -> int:
    """Echo the prompt to stdout, optionally after a delay or as a failure."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--sleep", type=float, default=0.0)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--stderr", default="")
    parser.add_argument("--repeat", type=int, default=1)
    parser.add_argument("prompt", nargs="?", default="")
    args = parser.parse_args(argv)

    if args.version:
        sys.stdout.write("echo_tool 1.0\n")
        return 0

    if args.sleep > 0:
        time.sleep(args.sleep)
    if args.stderr:
        sys.stderr.write(args.stderr)
        sys.stderr.flush()
    for _ in range(max(args.repeat, 1)):
        sys.stdout.write(args.prompt)
        sys.stdout.flush()
    return args.exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
