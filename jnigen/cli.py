"""CLI entrypoint for jnigen."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Sequence

from .config import ConfigError, JnigenConfig, load_config
from .logging import configure_logging
from .models import GenerationTarget
from .orchestrator import Orchestrator, TargetOutcome

_ALL_TARGETS = {"all", "*"}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jnigen",
        usage="%(prog)s [options] [target [output_dir [source_root]]]",
        description="Generate JNI glue code from annotated Java native declarations.",
    )
    parser.add_argument(
        "target",
        nargs="?",
        help="Configured target id, or 'all' for every target (defaults to default_target).",
    )
    parser.add_argument("output_dir", nargs="?", type=Path, help="Override the target's output directory.")
    parser.add_argument("source_root", nargs="?", type=Path, help="Override where Java sources are discovered.")
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("."),
        help="Path to .jnigen.yml or the directory holding it (defaults to the current directory).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Increase log verbosity for troubleshooting.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Print a unified diff of pending changes and exit 1 if any; write nothing.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report which files would change without writing them.",
    )
    parser.add_argument("-j", "--jobs", type=int, default=None, help="Number of targets to generate in parallel.")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write debug logs to this file.")
    return parser


def _select_targets(
    parser: argparse.ArgumentParser, args: argparse.Namespace, config: JnigenConfig
) -> List[GenerationTarget]:
    target_id = args.target or config.default_target
    if target_id is None:
        parser.error("no target given and no default_target configured")
    try:
        if target_id in _ALL_TARGETS:
            if args.output_dir is not None:
                parser.error("output_dir cannot be combined with 'all'")
            if not config.targets:
                parser.error("no targets configured")
            return config.all_targets(source_root=args.source_root)
        return [config.build_target(target_id, output_dir=args.output_dir, source_root=args.source_root)]
    except ConfigError as exc:
        parser.error(str(exc))


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entrypoint for jnigen."""
    arguments = list(sys.argv[1:] if argv is None else argv)
    parser = _build_parser()
    if arguments[:1] == ["help"]:
        parser.print_help()
        parser.exit(0)
    args = parser.parse_args(arguments)
    if args.jobs is not None and args.jobs < 1:
        parser.error("--jobs must be a positive integer")

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        parser.exit(1, f"jnigen: {exc}\n")

    targets = _select_targets(parser, args, config)
    orchestrator = Orchestrator(config, check=args.check, dry_run=args.dry_run, jobs=args.jobs)
    outcomes = orchestrator.run(targets)

    status = _report(outcomes, check=args.check, dry_run=args.dry_run)
    if status:
        parser.exit(status)


def _report(outcomes: Sequence[TargetOutcome], *, check: bool, dry_run: bool) -> int:
    status = 0
    for outcome in outcomes:
        platform_id = outcome.target.platform_id
        if not outcome.ok:
            sys.stderr.write(f"jnigen: target {platform_id} failed: {outcome.error}\n")
            status = 1
            continue
        changed = outcome.changed
        if check:
            for result in changed:
                sys.stdout.write(result.diff)
            if changed:
                status = 1
            print(f"{platform_id}: {len(changed)} file(s) out of date")
        elif dry_run:
            for result in changed:
                print(f"{platform_id}: would write {result.relative_path}")
            print(f"{platform_id}: {len(changed)} file(s) would change (dry-run)")
        else:
            print(f"{platform_id}: {len(changed)} written, {len(outcome.files) - len(changed)} unchanged")
    return status


if __name__ == "__main__":
    main(sys.argv[1:])
