"""Command line entry point: ``schematic-rules compile`` and ``schematic-rules check``."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import yaml

from .api import check_files
from .engine.config import EvaluationConfig
from .rules.compiler import compile_rule
from .rules.syntax import CompileError
from .serialization import canonical_json_dumps

EXIT_OK = 0
EXIT_LOAD_FAILURE = 1
EXIT_ERRORS = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="schematic-rules", description="Pin rule and pattern checker for schematics")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity (-v info, -vv debug)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_cmd = subparsers.add_parser("compile", help="Compile rule text and print its canonical form")
    compile_cmd.add_argument("rule", help="Rule text, e.g. 'cap(100n, purpose=decoupling)!'")
    compile_cmd.add_argument("--json", action="store_true", default=False, help="Emit canonical JSON")

    check = subparsers.add_parser("check", help="Evaluate a schematic against component rules and patterns")
    check.add_argument("--component", type=Path, action="append", required=True, help="Component definition file")
    check.add_argument("--schematic", type=Path, required=True, help="Schematic document")
    check.add_argument(
        "--pack",
        type=Path,
        action="append",
        default=[],
        help="Global pattern pack to enable; earlier packs take priority",
    )
    check.add_argument("--config", type=Path, help="Evaluation config YAML")
    check.add_argument("--strict", action="store_true", default=False, help="Validate documents against JSON schema")
    check.add_argument("--json", action="store_true", default=False, help="Emit canonical JSON")
    check.add_argument("--workers", type=int, default=None, help="Override max_workers from the config")
    return parser


def run_compile(args: argparse.Namespace) -> int:
    try:
        atom = compile_rule(args.rule)
    except CompileError as exc:
        if args.json:
            payload = {"status": "error", "message": exc.message, "offset": exc.offset}
            sys.stdout.write(canonical_json_dumps(payload) + "\n")
        else:
            sys.stderr.write(f"{exc}\n")
        return EXIT_LOAD_FAILURE

    if args.json:
        payload = {"status": "ok", "kind": atom.kind, "firm": atom.firm, "canonical": atom.render()}
        sys.stdout.write(canonical_json_dumps(payload) + "\n")
    else:
        sys.stdout.write(atom.render() + "\n")
    return EXIT_OK


def run_check(args: argparse.Namespace) -> int:
    try:
        config = EvaluationConfig.from_yaml(args.config) if args.config else EvaluationConfig()
        if args.workers is not None:
            config = EvaluationConfig.from_mapping({**config.to_dict(), "max_workers": args.workers})
        report = check_files(args.component, args.schematic, args.pack, config, strict=args.strict)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        sys.stderr.write(f"Failed to load inputs: {exc}\n")
        return EXIT_LOAD_FAILURE

    if args.json:
        payload = report.to_payload()
        payload["digest"] = report.digest()
        sys.stdout.write(canonical_json_dumps(payload) + "\n")
    else:
        lines = [diagnostic.format() for diagnostic in report]
        summary = report.to_payload()["summary"]
        lines.append(
            f"{len(report)} diagnostic(s): {summary['error']} error(s), "
            f"{summary['warning']} warning(s), {summary['info']} info"
        )
        if not report.complete:
            lines.append(f"INCOMPLETE: skipped {', '.join(report.skipped_instances)}")
        sys.stdout.write("\n".join(lines) + "\n")
    return EXIT_ERRORS if report.has_errors else EXIT_OK


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "compile":
        return run_compile(args)
    if args.command == "check":
        return run_check(args)

    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
