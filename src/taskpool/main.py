"""
main.py — taskpool Demo Entry Point

Runs a synthetic batch through a TaskPool so the scheduler, its config and
its logging can be exercised end to end from the shell.

Usage:
    python -m taskpool                          # 10 tasks, settings from config.yaml
    python -m taskpool --tasks 50 --concurrency 8
    python -m taskpool --fail-every 4 --submit  # some failures, auto-submit chunks
    python -m taskpool --log-level DEBUG --config path/to/config.yaml
    python -m taskpool --format table         # rich results table instead of JSON
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="taskpool",
        description="taskpool — run a synthetic batch through a bounded-concurrency pool",
    )
    parser.add_argument("--tasks", type=int, default=10, help="Number of tasks to run (default: 10)")
    parser.add_argument(
        "--delay",
        type=float,
        default=0.05,
        help="Base sleep per task in seconds; task i sleeps delay * (1 + i %% 3)",
    )
    parser.add_argument(
        "--fail-every",
        type=int,
        default=0,
        help="Make every Nth task raise (0 = never)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Override pool.concurrency from config",
    )
    parser.add_argument(
        "--maintain-order",
        action="store_true",
        default=None,
        help="Report results sorted by seq",
    )
    parser.add_argument(
        "--immediately",
        action="store_true",
        default=None,
        help="Report each result as it settles instead of once at drain",
    )
    parser.add_argument(
        "--submit",
        action="store_true",
        default=False,
        help="Enable auto-submit; chunks are printed as JSON lines",
    )
    parser.add_argument(
        "--format",
        choices=["json", "table"],
        default="json",
        help="How to print the final status (default: json)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $TASKPOOL_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace):
    """
    Load config, validate it fully, and set up logging.
    Returns (settings, log) ready for use.

    Exits with code 1 (after printing a clear message) if config.yaml has
    invalid values or validate_all() finds cross-field problems.
    """
    from pydantic import ValidationError

    from taskpool.config.settings import ConfigError, load_settings
    from taskpool.observability.logger import get_logger, setup_logging_from_settings

    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {'.'.join(str(p) for p in e['loc']) or '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(
            f"\n❌  Config validation failed:\n\n{problems}\n\n"
            f"    Fix config/config.yaml or your environment and restart.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except (OSError, ValueError) as exc:
        print(f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n", file=sys.stderr)
        sys.exit(1)

    # CLI flags win over config.yaml and the environment
    overrides = {
        "concurrency": args.concurrency,
        "maintain_order": args.maintain_order,
        "immediately": args.immediately,
        "auto_submit": True if args.submit else None,
    }
    settings.pool = settings.pool.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )

    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    if args.log_level:
        settings.logging = settings.logging.model_copy(update={"level": args.log_level})
    setup_logging_from_settings(settings)
    return settings, get_logger("taskpool.main")


def build_tasks(count: int, delay: float, fail_every: int) -> list:
    from taskpool.scheduler.types import Task

    async def work(index: int) -> int:
        await asyncio.sleep(delay * (1 + index % 3))
        if fail_every and (index + 1) % fail_every == 0:
            raise RuntimeError(f"synthetic failure in task {index}")
        return index * index

    return [Task(work, (i,)) for i in range(count)]


def render_status(status, console=None) -> None:
    """Print a PoolStatus as a rich table, one row per result."""
    from rich import box
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    console = console or Console()
    table = Table(
        title=f"Results ({status.finished}/{status.total} finished)",
        box=box.ROUNDED,
        border_style="dim",
    )
    table.add_column("Seq", style="cyan", no_wrap=True, justify="right")
    table.add_column("Status", no_wrap=True)
    table.add_column("Result")

    for record in status.results:
        mark = "[green]✓ success[/]" if record.ok else "[red]✗ error[/]"
        table.add_row(str(record.seq), mark, escape(str(record.result)))

    console.print(table)
    if status.waiting or status.running:
        console.print(
            f"[dim]{status.running} running, {status.waiting} waiting"
            f"{' (paused)' if status.paused else ''}[/]"
        )


async def run(args: argparse.Namespace) -> int:
    from taskpool.observability.logger import bind_pool
    from taskpool.scheduler.pool import TaskPool

    settings, log = bootstrap(args)

    def on_result(results, current=None, seq=None, error=None) -> None:
        if seq is None:
            log.info("demo.batch_done", results=len(results))
        else:
            log.info("demo.task_done", seq=seq, ok=error is None)

    def submit(chunk) -> None:
        print(json.dumps({"chunk": [r.to_dict() for r in chunk]}, default=str))

    pool = TaskPool.from_settings(
        settings,
        build_tasks(args.tasks, args.delay, args.fail_every),
        on_result=on_result,
        submit=submit,
        name="demo",
    )
    bind_pool(pool.name)
    log.info("demo.starting", tasks=args.tasks, concurrency=pool.concurrency)

    await pool.wait_drained()

    status = pool.get_status()
    if args.format == "table":
        render_status(status)
    else:
        print(json.dumps(status.to_dict(), default=str, indent=2))
    failed = sum(1 for r in status.results if not r.ok)
    log.info("demo.finished", finished=status.finished, failed=failed)
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv(dotenv_path=Path.cwd() / ".env")
    return asyncio.run(run(parse_args(argv)))
