"""
securityprintf/__main__.py
══════════════════════════

Command-line entry point.

Usage
-----
    securityprintf [paths ...] [--output text|json|gcc|sarif|summary]
                   [--no-color] [--suppress ID ...] [--exclude PATTERN ...]
                   [--sensitive NAME ...] [--extra-sensitive NAME ...]
                   [--namespace NAME ...] [--no-info] [--no-keywords]
                   [--show-config] [--list-checkers] [-v]

Exit status
-----------
    0  no warning-severity findings (notes do not count)
    1  findings
    2  configuration or usage error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, Optional, Sequence

from securityprintf import __version__
from securityprintf.checkers import DEFAULT_REGISTRY, CheckerRunner, SuppressionManager
from securityprintf.config import SecurityPrintfConfig
from securityprintf.errors import ConfigError
from securityprintf.reporter import OUTPUT_FORMATS, Reporter

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="securityprintf",
        description="Flag logging calls that print whole records/maps or sensitive values.",
    )
    parser.add_argument("paths", nargs="*", default=["."], help="Files or directories to check (default: .)")
    parser.add_argument(
        "--output", choices=OUTPUT_FORMATS, default="text", help="Output format (default: text)",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable coloured terminal output")
    parser.add_argument(
        "--suppress", nargs="*", default=None, metavar="ID", help="Error IDs to suppress",
    )
    parser.add_argument(
        "--exclude", nargs="*", default=(), metavar="PATTERN",
        help="Glob patterns or directory names to skip",
    )
    parser.add_argument(
        "--checkers", nargs="*", default=None, help="Checker names to run (default: all)",
    )

    cfg = parser.add_argument_group("analysis options")
    cfg.add_argument(
        "--sensitive", nargs="+", default=None, metavar="NAME",
        help="Replace the sensitive-name set",
    )
    cfg.add_argument(
        "--extra-sensitive", nargs="+", default=None, metavar="NAME",
        help="Add names to the sensitive-name set",
    )
    cfg.add_argument(
        "--namespace", nargs="+", default=None, metavar="NAME",
        help="Additional logger receiver names",
    )
    cfg.add_argument(
        "--no-info", action="store_true",
        help="Do not report 'cannot determine format string' notes",
    )
    cfg.add_argument(
        "--no-keywords", action="store_true",
        help="Do not inspect keyword arguments of logging calls",
    )

    parser.add_argument("--show-config", action="store_true", help="Print the effective configuration and exit")
    parser.add_argument("--list-checkers", action="store_true", help="List available checkers and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> SecurityPrintfConfig:
    """Build the analysis configuration from parsed CLI flags."""
    options: Dict[str, Any] = {
        "report_undetermined": not args.no_info,
        "check_keywords": not args.no_keywords,
    }
    if args.sensitive:
        options["sensitive_names"] = args.sensitive
    if args.extra_sensitive:
        options["extra_sensitive_names"] = args.extra_sensitive
    if args.namespace:
        options["extra_logging_namespaces"] = args.namespace
    return SecurityPrintfConfig.from_options(options)


def list_checkers() -> None:
    for name in DEFAULT_REGISTRY.names:
        cls = DEFAULT_REGISTRY.get_by_name(name)
        desc = cls.description if cls else ""
        ids = ", ".join(sorted(cls.error_ids)) if cls else ""
        cwes = ", ".join(
            f"CWE-{v}" for v in sorted(set(cls.cwe_ids.values()))
        ) if cls else ""
        print(f"  {name:25s} {desc}")
        print(f"  {'':25s} IDs: {ids}")
        print(f"  {'':25s} CWEs: {cwes}")
        print()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point; returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.list_checkers:
        list_checkers()
        return EXIT_OK

    try:
        config = config_from_args(args)
    except ConfigError as exc:
        sys.stderr.write(f"securityprintf: {exc}\n")
        return EXIT_USAGE

    if args.show_config:
        print(json.dumps(config.as_dict(), indent=2))
        return EXIT_OK

    missing = [p for p in args.paths if not os.path.exists(p)]
    if missing:
        sys.stderr.write(f"securityprintf: no such file or directory: {', '.join(missing)}\n")
        return EXIT_USAGE

    sm = SuppressionManager()
    for eid in args.suppress or ():
        sm.add_global_suppression(eid)

    runner = CheckerRunner(config=config, suppressions=sm)
    try:
        results = runner.run_paths(args.paths, checkers=args.checkers, exclude=args.exclude)
    except KeyboardInterrupt:
        sys.stderr.write("\nInterrupted.\n")
        return 130

    with Reporter(
        stream=sys.stdout,
        output=args.output,
        colour=False if args.no_color else None,
        tool_version=__version__,
    ) as reporter:
        reporter.emit_all(results.diagnostics)
    logger.debug("%s", results.summary())

    return EXIT_FINDINGS if results.has_findings else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
