"""CLI entrypoint: run eval files and inspect the ledger."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from .errors import AgentEvalError
from .ledger import LedgerPlugin, build_ledger
from .loader import discover_eval_files, load_config, load_eval_file
from .orchestrator import TestOrchestrator
from .registry import TestRegistry
from .reporter import ConsoleReporter
from .schemas import LedgerEntry, ProjectConfig, TestTreeNode

CONFIG_OPTION = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to agenteval.yaml (defaults to ./agenteval.yaml)",
)


def _load(config_path: Path | None) -> ProjectConfig:
    cwd = Path.cwd()
    config = load_config(cwd, config_path)
    env_path = config.root_dir / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)
    return config


def _open_ledger(config: ProjectConfig) -> LedgerPlugin:
    return build_ledger(config.ledger, config.output_path)


def _entry_json(entry: LedgerEntry) -> dict:
    return entry.model_dump(mode="json", by_alias=True)


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def main(verbose: bool) -> None:
    """Evaluation harness for AI coding agents."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@CONFIG_OPTION
@click.option("--filter", "-f", "pattern", default=None, help="Filter tests by title (substring)")
@click.option("--tag", "-t", "tags", multiple=True, help="Filter tests by tag")
@click.option("--runner", "-r", "runners", multiple=True, help="Only run these runners")
@click.option("--quiet", "-q", is_flag=True, help="Hide pipeline steps")
def run(
    config_path: Path | None,
    pattern: str | None,
    tags: tuple[str, ...],
    runners: tuple[str, ...],
    quiet: bool,
) -> None:
    """Execute eval files against every configured runner."""
    try:
        config = _load(config_path)
        if runners:
            config = config.model_copy(update={"matrix_runners": list(runners)})

        files = discover_eval_files(config)
        if not files:
            click.echo(click.style("No eval files found.", fg="yellow"))
            return
        click.echo(click.style(f"Found {len(files)} eval file(s)", dim=True))

        registry = TestRegistry()
        for path in files:
            load_eval_file(path, registry)
        selected = registry.filter(tags=tags, pattern=pattern)

        ledger = _open_ledger(config)
        try:
            orchestrator = TestOrchestrator(
                config,
                registry,
                ledger,
                reporter=ConsoleReporter(verbose=not quiet),
            )
            results = orchestrator.run_all(selected)
        finally:
            ledger.close()
    except AgentEvalError as exc:
        click.echo(click.style(str(exc), fg="red"), err=True)
        sys.exit(1)

    if any(not result.passed for result in results):
        sys.exit(1)


@main.command()
@CONFIG_OPTION
@click.option("--test-id", default=None, help="Only runs of this test")
@click.option("--limit", type=click.IntRange(min=1), default=20, help="Most recent N runs")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def runs(config_path: Path | None, test_id: str | None, limit: int, as_json: bool) -> None:
    """List recorded runs."""
    config = _load(config_path)
    with _open_ledger(config) as ledger:
        entries = ledger.get_runs(test_id)

    if as_json:
        click.echo(json.dumps([_entry_json(e) for e in entries], indent=2))
        return
    if not entries:
        click.echo(click.style("No ledger entries found.", fg="yellow"))
        return

    click.echo(click.style(f"Ledger: {len(entries)} entries\n", bold=True))
    for entry in entries[-limit:]:
        status = entry.override.status if entry.override else entry.status
        tag = click.style(status, fg={"PASS": "green", "WARN": "yellow"}.get(status, "red"))
        score = click.style(f"{entry.effective_score:.2f}", fg="yellow")
        overridden = click.style(" (overridden)", dim=True) if entry.override else ""
        click.echo(
            f"#{entry.id:<4} {tag} {score}{overridden} {click.style(entry.test_id, bold=True)}"
            f" [{entry.agent_runner}] {click.style(entry.timestamp, dim=True)}"
        )
    if len(entries) > limit:
        click.echo(click.style(f"\n  ... and {len(entries) - limit} more. Use --json for full output.", dim=True))


@main.command()
@CONFIG_OPTION
@click.option("--test-id", default=None, help="Stats for a single test")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def stats(config_path: Path | None, test_id: str | None, as_json: bool) -> None:
    """Per-runner average effective score and pass rate."""
    config = _load(config_path)
    with _open_ledger(config) as ledger:
        rows = ledger.get_stats(test_id)

    if as_json:
        click.echo(json.dumps([row.model_dump() for row in rows], indent=2))
        return
    if not rows:
        click.echo(click.style("No ledger entries found.", fg="yellow"))
        return
    for row in rows:
        click.echo(
            f"{row.agent_runner:<20} avg {row.avg_score:.2f}  "
            f"pass {row.pass_rate:.0%}  runs {row.total_runs}"
        )


def _echo_tree(nodes: list[TestTreeNode], depth: int = 0) -> None:
    for node in nodes:
        label = click.style(node.name, bold=True) if node.type == "suite" else node.name
        click.echo(f"{'  ' * depth}{label}")
        _echo_tree(node.children, depth + 1)


@main.command()
@CONFIG_OPTION
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def tree(config_path: Path | None, as_json: bool) -> None:
    """Suite/test hierarchy of recorded tests."""
    config = _load(config_path)
    with _open_ledger(config) as ledger:
        nodes = ledger.get_test_tree()

    if as_json:
        click.echo(json.dumps([node.model_dump(mode="json") for node in nodes], indent=2))
        return
    _echo_tree(nodes)


@main.command()
@CONFIG_OPTION
@click.argument("run_id", type=int)
@click.option("--score", type=float, required=True, help="New score between 0 and 1")
@click.option("--reason", required=True, help="Why the score is overridden")
def override(config_path: Path | None, run_id: int, score: float, reason: str) -> None:
    """Record a human score override for a run."""
    config = _load(config_path)
    try:
        with _open_ledger(config) as ledger:
            result = ledger.override_run_score(run_id, score, reason)
    except AgentEvalError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Run #{run_id} overridden: {result.score:.2f} {result.status}")


@main.command()
@CONFIG_OPTION
@click.argument("run_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def overrides(config_path: Path | None, run_id: int, as_json: bool) -> None:
    """Override history for a run, oldest first."""
    config = _load(config_path)
    with _open_ledger(config) as ledger:
        history = ledger.get_run_overrides(run_id)

    if as_json:
        click.echo(json.dumps([o.model_dump(mode="json", by_alias=True) for o in history], indent=2))
        return
    if not history:
        click.echo(f"No overrides for run #{run_id}")
        return
    for item in history:
        click.echo(f"{item.timestamp}  {item.score:.2f} {item.status}  {item.reason}")


if __name__ == "__main__":
    main()
