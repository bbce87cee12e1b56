"""Command-line interface for rulescope."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rulescope.analysis import RuleAnalyzer, compare_reports
from rulescope.config import ConfigError, RuleScopeConfig, load_config
from rulescope.utils import to_json_bytes, write_json


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        default=".",
        help="Workspace root holding rulescope.toml and custom functions (default: .)",
    )
    parser.add_argument(
        "--out",
        default=None,
        help="Write the JSON result to this file instead of stdout",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rulescope")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser(
        "analyze", help="Analyze the rules of one form"
    )
    analyze_parser.add_argument("form", help="Path to the form JSON")
    _add_common_options(analyze_parser)
    analyze_parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Slow rule threshold in milliseconds (default: config value)",
    )

    compare_parser = subparsers.add_parser(
        "compare", help="Compare the rules of two form versions"
    )
    compare_parser.add_argument("before", help="Path to the earlier form JSON")
    compare_parser.add_argument("after", help="Path to the later form JSON")
    _add_common_options(compare_parser)

    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _read_form(path_value: str) -> bytes | None:
    path = Path(path_value).expanduser()
    try:
        return path.read_bytes()
    except OSError as exc:
        sys.stderr.write(f"error: cannot read {path}: {exc}\n")
        return None


def _emit(result: object, out: str | None) -> None:
    if out is None:
        sys.stdout.write(to_json_bytes(result).decode("utf-8") + "\n")
        return
    write_json(Path(out).expanduser().resolve(), result)


def _handle_analyze(
    root: Path, config: RuleScopeConfig, args: argparse.Namespace
) -> int:
    form_bytes = _read_form(args.form)
    if form_bytes is None:
        return 2
    analyzer = RuleAnalyzer(config, workspace_root=root, threshold_ms=args.threshold)
    report = analyzer.analyze(form_bytes)
    _emit(report, args.out)
    if report.error:
        sys.stderr.write(f"error: {report.error}\n")
        return 1
    return 0


def _handle_compare(
    root: Path, config: RuleScopeConfig, args: argparse.Namespace
) -> int:
    before_bytes = _read_form(args.before)
    after_bytes = _read_form(args.after)
    if before_bytes is None or after_bytes is None:
        return 2
    analyzer = RuleAnalyzer(config, workspace_root=root)
    before = analyzer.analyze(before_bytes)
    after = analyzer.analyze(after_bytes)
    for label, report in (("before", before), ("after", after)):
        if report.error:
            sys.stderr.write(f"{label}: error: {report.error}\n")
            return 1
    _emit(compare_reports(before, after), args.out)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    root = Path(args.root).expanduser().resolve()
    try:
        config = load_config(root)
    except ConfigError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2

    if args.command == "analyze":
        return _handle_analyze(root, config, args)

    if args.command == "compare":
        return _handle_compare(root, config, args)

    raise AssertionError


if __name__ == "__main__":
    raise SystemExit(main())
