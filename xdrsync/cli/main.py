#!/usr/bin/env python3
"""CLI for xdrsync, the cross-ecosystem XDR pin checker."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml  # type: ignore[import-not-found]

from xdrsync.core import (
    ConfigError,
    Dimension,
    Outcome,
    ReconciliationEngine,
    ReconciliationResult,
    XdrsyncConfig,
    load_config,
)

EXIT_CODES = {
    Outcome.CONSISTENT: 0,
    Outcome.MISMATCH: 1,
    Outcome.PRECONDITION_VIOLATION: 2,
    Outcome.EXTRACTION_FAILURE: 2,
    Outcome.FETCH_FAILURE: 2,
}
EXIT_CONFIG_ERROR = 3


def _mismatch_lines(result: ReconciliationResult, config: XdrsyncConfig) -> list[str]:
    revisions = result.revisions
    if result.dimension is Dimension.SCHEMA_REVISION_DRIFT:
        return [
            "Native (cargo) and managed-runtime (go) dependencies are using "
            "different revisions of the XDR definitions.",
            f"  {config.native.package} ({revisions.get('native_pin')}) uses commit "
            f"{result.left}",
            f"  {config.managed_runtime.module} ({revisions.get('managed_runtime_pin')}) "
            f"uses commit {result.right}",
        ]
    if result.dimension is Dimension.SERVER_ARTIFACT_DRIFT:
        return [
            "Integration tests are using different versions of the server container "
            "and the server package.",
            f"  container image commit ({config.server.container.descriptor}): "
            f"{result.left}",
            f"  package commit ({config.server.package.descriptor}): {result.right}",
        ]
    return [
        "The server revision used in integration tests "
        f"({revisions.get('server_container_revision')}) uses a different revision "
        f"of {config.native.package}.",
        f"  current repository's revision: {result.left}",
        f"  server's revision: {result.right}",
    ]


def print_result(result: ReconciliationResult, config: XdrsyncConfig) -> None:
    if result.is_consistent:
        print("[xdrsync] All XDR pins agree")
        for key, value in result.revisions.items():
            print(f"  {key}: {value}")
        return

    if result.outcome is Outcome.MISMATCH:
        print(f"[xdrsync] Mismatch at {result.stage} ({result.dimension.value})")
        for line in _mismatch_lines(result, config):
            print(line)
        return

    print(f"[xdrsync] {result.outcome.value} at {result.stage}: {result.detail}")
    if result.hint:
        print()
        print(result.hint)
    if result.raw_output:
        print()
        print("Full error:")
        print(result.raw_output)


def run_check(args: argparse.Namespace) -> int:
    """Load configuration, run the reconciliation and report the outcome."""
    try:
        config = load_config(args.config, args.root)
    except ConfigError as exc:
        print(f"[xdrsync] Invalid configuration:\n{exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    result = ReconciliationEngine(config).run()
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print_result(result, config)
    return EXIT_CODES[result.outcome]


def show_config(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config, args.root)
    except ConfigError as exc:
        print(f"[xdrsync] Invalid configuration:\n{exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    if config.source:
        print(f"# merged from {config.source}")
    print(yaml.safe_dump(config.to_dict(), sort_keys=False), end="")
    return 0


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to an xdrsync.yaml merged over the built-in defaults",
    )
    parser.add_argument(
        "--root",
        type=Path,
        help="Project checkout to inspect (default: current directory)",
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--verbose", action="store_true", help="Log every stage to stderr"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser(
        "check", help="Verify that every XDR pin resolves to the same revision"
    )
    _add_common(check)
    check.add_argument(
        "--json", action="store_true", help="Emit the result as JSON"
    )

    config_cmd = subparsers.add_parser(
        "show-config", help="Print the effective configuration as YAML"
    )
    _add_common(config_cmd)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "check":
        return run_check(args)
    if args.command == "show-config":
        return show_config(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
