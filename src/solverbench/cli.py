"""Command-line interface for solverbench.

Provides the `solverbench` command with subcommands for:
- Running a benchmark suite
- Listing saved sessions
- Comparing sessions
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from datetime import datetime
from pathlib import Path

from solverbench.database import BenchmarkDatabase, Session
from solverbench.errors import BenchmarkError
from solverbench.report import (
    WIDTH,
    Reporter,
    format_report_table,
    write_report_csv,
)
from solverbench.runner import Orchestrator, RoundProgress, load_benchmark_config

DEFAULT_DB_PATH = Path("benchmark_results.db")


def _configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def _db_path(args: argparse.Namespace) -> Path:
    return Path(args.db) if args.db else DEFAULT_DB_PATH


def _describe_change(ratio: float) -> str:
    """Label a duration ratio (new / old); within 5% counts as unchanged."""
    if ratio <= 0:
        return "-"
    pct = (ratio - 1.0) * 100.0
    if abs(pct) <= 5.0:
        return "~same"
    return f"{pct:+.1f}% " + ("faster" if pct < 0 else "slower")


def cmd_run(args: argparse.Namespace) -> int:
    """Run a benchmark suite."""
    suite_path = Path(args.suite)

    if not suite_path.exists():
        print(f"Error: Suite configuration not found: {suite_path}")
        return 1

    try:
        suite = load_benchmark_config(suite_path)
        overrides = {
            name: getattr(args, name)
            for name in ("deadline", "parallelism", "reference", "isolation")
            if getattr(args, name) is not None
        }
        if overrides:
            suite.config = dataclasses.replace(suite.config, **overrides)
    except (BenchmarkError, ValueError, TypeError) as e:
        print(f"Error loading suite configuration: {e}")
        return 1

    config = suite.config
    print(f"solverbench: {config.name}")
    print("=" * 60)
    print(f"  Workloads:   {len(config.workloads)}")
    print(f"  Contenders:  {', '.join(config.contenders) or 'none'}")
    print(f"  Reference:   {config.reference or 'none'}")
    print(f"  Deadline:    {config.deadline:g}s")
    print(f"  Isolation:   {config.isolation} x {config.parallelism}")
    print()

    def progress(p: RoundProgress) -> None:
        print(f"  [round {p.round}] {len(p.settled)} settled, {p.remaining} remaining")

    orchestrator = Orchestrator.from_suite(
        suite, progress_callback=progress if not args.quiet else None
    )
    state = orchestrator.run()
    rows = Reporter(config).build(state)

    print()
    print(format_report_table(rows))

    if args.csv:
        write_report_csv(rows, args.csv)
        print(f"\nTable written to {args.csv}")

    if args.save:
        with BenchmarkDatabase(_db_path(args)) as db:
            session = Session(
                timestamp=datetime.now(),
                suite=config.name,
                description=args.description,
                git_commit=None,
                rows=rows,
            )
            session_id = db.save_session(session)
            print(f"\nResults saved to session #{session_id}")

    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List saved sessions."""
    db_path = _db_path(args)
    if not db_path.exists():
        print("No benchmark database found.")
        return 0

    with BenchmarkDatabase(db_path) as db:
        sessions = db.list_sessions()

        if not sessions:
            print("No benchmark sessions recorded yet.")
            return 0

        print("Saved Benchmark Sessions")
        print("=" * 80)
        print(f"{'ID':>5} {'Date':>20} {'Suite':>12} {'Commit':>12} Description")
        print("-" * 80)

        for session_id, timestamp, suite, description, git_commit in sessions:
            date_str = timestamp.strftime("%Y-%m-%d %H:%M")
            commit = git_commit[:12] if git_commit else "-"
            print(
                f"{session_id:>5} {date_str:>20} {suite[:12]:>12} {commit:>12} "
                f"{description or ''}"
            )

        print("-" * 80)
        print(f"Total: {len(sessions)} session(s)")

    return 0


def cmd_compare(args: argparse.Namespace) -> int:
    """Compare two sessions."""
    db_path = _db_path(args)
    if not db_path.exists():
        print("No benchmark database found.")
        return 1

    with BenchmarkDatabase(db_path) as db:
        id1 = args.id1
        id2 = args.id2

        if id2 is None:
            id2 = db.get_latest_session_id()
            if id2 is None:
                print("No sessions to compare with.")
                return 1
            if id1 == id2:
                print("Only one session exists.")
                return 1

        for session_id in (id1, id2):
            if db.load_session(session_id) is None:
                print(f"Error: Session #{session_id} not found.")
                return 1

        comparison = db.compare_sessions(id1, id2)

    columns = ("Model", "Solver", f"#{id1}", f"#{id2}", "Ratio", "Change")
    print(f"{columns[0]:<{WIDTH}}{columns[1]:<{WIDTH}}", end="")
    print("".join(f"{c:>14}" for c in columns[2:]))
    print("-" * (2 * WIDTH + 4 * 14))

    for workload, per_contender in sorted(comparison.items()):
        for contender, (ms1, ms2, ratio) in sorted(per_contender.items()):
            cells = (
                f"{ms1:.3f}ms" if ms1 > 0 else "-",
                f"{ms2:.3f}ms" if ms2 > 0 else "-",
                f"{ratio:.2f}x" if ratio > 0 else "-",
                _describe_change(ratio),
            )
            print(f"{workload:<{WIDTH}}{contender:<{WIDTH}}", end="")
            print("".join(f"{c:>14}" for c in cells))

    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="solverbench",
        description="Statistical benchmark orchestration for optimisation solvers",
    )
    parser.add_argument(
        "--db",
        help=f"Path to benchmark database (default: {DEFAULT_DB_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run a benchmark suite")
    run_parser.add_argument("suite", help="Path to suite.yaml configuration")
    run_parser.add_argument(
        "--deadline",
        type=float,
        help="Seconds one attempt may take before it counts as a timeout",
    )
    run_parser.add_argument(
        "--parallelism",
        type=int,
        help="Number of pairs measured concurrently",
    )
    run_parser.add_argument(
        "--reference",
        help="Contender whose optimal results are the baseline",
    )
    run_parser.add_argument(
        "--isolation",
        choices=["thread", "process"],
        help="Run attempts in threads or child processes",
    )
    run_parser.add_argument(
        "--csv",
        help="Write the tab-separated Model/Solver/Time table to this path",
    )
    run_parser.add_argument(
        "--save",
        action="store_true",
        help="Save results to database",
    )
    run_parser.add_argument(
        "-d",
        "--description",
        help="Description for this benchmark run",
    )
    run_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every attempt",
    )
    run_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress output",
    )
    run_parser.set_defaults(func=cmd_run)

    list_parser = subparsers.add_parser("list", help="List saved sessions")
    list_parser.set_defaults(func=cmd_list)

    compare_parser = subparsers.add_parser("compare", help="Compare two sessions")
    compare_parser.add_argument(
        "id1",
        type=int,
        help="First session ID",
    )
    compare_parser.add_argument(
        "id2",
        type=int,
        nargs="?",
        help="Second session ID (default: latest)",
    )
    compare_parser.set_defaults(func=cmd_compare)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _configure_logging(args)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
