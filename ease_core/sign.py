"""Offline signing utility for producing webhook test signatures.

Usage:
    ease-sign '<json-body>' <secret>
    python -m ease_core.sign '<json-body>' <secret>
"""

from __future__ import annotations

import argparse
import sys

from .signature import compute_signature


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ease-sign",
        description="Print the hex HMAC-SHA256 signature of a webhook body",
    )
    parser.add_argument("body", help="Exact request body to sign (UTF-8)")
    parser.add_argument("secret", help="Shared webhook secret")
    return parser


def main(argv: list[str] | None = None) -> int:
    args_list = sys.argv[1:] if argv is None else argv
    parser = _build_parser()

    if len(args_list) < 2:
        parser.print_usage()
        return 1

    args = parser.parse_args(args_list)
    if not args.secret:
        print("A non-empty secret is required.", file=sys.stderr)
        return 1

    print(compute_signature(args.body.encode("utf-8"), args.secret))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
