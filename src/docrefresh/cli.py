"""docrefresh CLI — audit best-practices documents and publish refreshes.

Usage:
    docrefresh run [--topics-dir DIR]
    docrefresh serve
    docrefresh resume <instance_id>
    docrefresh runs
    docrefresh inspect <file>
"""

from __future__ import annotations

import asyncio
import logging
import signal
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table as RichTable

from . import __version__
from .config import UpdateWorkerSettings, load_settings
from .core import frontmatter
from .core.journal import JournalStore
from .core.models import FailurePolicy, RunResult
from .worker import UpdateWorker

console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # keep transport chatter out of INFO output
    for noisy in ("httpx", "httpcore", "openai", "mcp"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)


def _settings_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that builds worker settings."""

    @click.option("-c", "--config", "config_path", type=click.Path(exists=True, dir_okay=False),
                  default=None, help="YAML or JSON settings file.")
    @click.option("--topics-dir", type=click.Path(file_okay=False), default=None,
                  help="Directory with one subdirectory per topic.")
    @click.option("--state-dir", type=click.Path(file_okay=False), default=None,
                  help="Where run journals are kept (default: ~/.docrefresh/runs).")
    @click.option("--max-parallel", "max_parallel_agent_runs", type=int, default=None,
                  help="Evaluations per batch.")
    @click.option("--model", default=None, help="Model or deployment name.")
    @click.option("--failure-policy",
                  type=click.Choice([p.value for p in FailurePolicy], case_sensitive=False),
                  default=None, help="Report failed evaluations as markers or omit them.")
    @click.option("-v", "--verbose", is_flag=True, default=False, help="Verbose logging.")
    @wraps(func)
    def wrapper(
        config_path: Optional[str],
        topics_dir: Optional[str],
        state_dir: Optional[str],
        max_parallel_agent_runs: Optional[int],
        model: Optional[str],
        failure_policy: Optional[str],
        verbose: bool,
        **kwargs: Any,
    ) -> Any:
        _setup_logging(verbose)
        try:
            settings = load_settings(
                config_path,
                topics_dir=topics_dir,
                state_dir=state_dir,
                max_parallel_agent_runs=max_parallel_agent_runs,
                model=model,
                failure_policy=failure_policy,
            )
        except (OSError, ValueError) as exc:
            raise click.ClickException(f"Invalid configuration: {exc}") from exc
        return func(settings, **kwargs)

    return wrapper


def _print_result(result: RunResult) -> None:
    table = RichTable(title=f"Run {result.instance_id}", show_lines=False)
    table.add_column("Topic", style="bold cyan")
    table.add_column("Update", justify="center")
    table.add_column("Summary")

    for v in result.verdicts:
        if v.failed:
            status, summary = "[red]failed[/]", f"[red]{v.error}[/]"
        elif v.is_actionable:
            status, summary = "[green]yes[/]", v.change_summary
        else:
            status, summary = "[dim]no[/]", v.change_summary
        table.add_row(v.topic_name, status, summary)
    console.print(table)

    if result.publish_result:
        console.print(f"[bold green]Pull request:[/] {result.publish_result.change_request_url}")
    elif result.publish_error:
        console.print(f"[bold red]Publishing failed:[/] {result.publish_error}")
    elif result.publish_skipped_reason:
        console.print(f"[yellow]{result.publish_skipped_reason}[/]")
    else:
        console.print("[dim]No updates needed.[/]")
    # omitted failures have no row in the table
    shown = {(v.topic_name, v.file_path) for v in result.verdicts if v.failed}
    for f in result.failures:
        if (f.topic_name, f.file_path) not in shown:
            console.print(f"[red]FAILED:[/] {f.topic_name}: {f.error}")

    if result.cancelled:
        console.print(
            f"[bold yellow]Run cancelled[/] ({len(result.not_started)} not started). "
            f"Finish it with: docrefresh resume {result.instance_id}"
        )


def _exit_code(result: Optional[RunResult]) -> int:
    if result is None:
        return 0
    return 1 if (result.failures or result.publish_error or result.cancelled) else 0


async def _with_worker(settings: UpdateWorkerSettings, action: Callable[[UpdateWorker], Any]) -> Any:
    async with UpdateWorker(settings) as worker:
        return await action(worker)


def _run_worker(settings: UpdateWorkerSettings, action: Callable[[UpdateWorker], Any]) -> Any:
    try:
        return asyncio.run(_with_worker(settings, action))
    except RuntimeError as exc:
        raise click.ClickException(str(exc)) from exc


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(version=__version__, prog_name="docrefresh")
def main():
    """docrefresh — Keep best-practices documents in step with their sources."""
    pass


@main.command()
@_settings_options
def run(settings: UpdateWorkerSettings):
    """Discover documents and run one update pass now."""
    console.print(Panel(
        f"[bold]Topics:[/]   {settings.topics_dir}\n"
        f"[bold]Batch:[/]    {settings.max_parallel_agent_runs}\n"
        f"[bold]Model:[/]    {settings.model}\n"
        f"[bold]Publish:[/]  "
        + (f"{settings.github_repo_owner}/{settings.github_repo_name}"
           if not settings.publishing_issues() else "[yellow]disabled[/]"),
        title="[bold green]docrefresh — Update Run[/]",
        border_style="green",
    ))

    result = _run_worker(settings, lambda w: w.run_once())
    if result is None:
        console.print("[yellow]Nothing to do; see the log for details.[/]")
    else:
        _print_result(result)
    raise SystemExit(_exit_code(result))


@main.command()
@_settings_options
def serve(settings: UpdateWorkerSettings):
    """Run on the weekly schedule until interrupted."""
    days = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
    console.print(
        f"[bold green]docrefresh scheduler[/] — every {days[settings.schedule_weekday]} "
        f"at {settings.schedule_hour:02d}:{settings.schedule_minute:02d} UTC"
    )
    console.print("[dim]Press Ctrl+C to stop.[/]")

    async def _serve(worker: UpdateWorker) -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except (NotImplementedError, RuntimeError):
                pass  # not supported on this platform
        await worker.serve(stop)

    try:
        _run_worker(settings, _serve)
    except KeyboardInterrupt:
        pass
    console.print("[bold yellow]Scheduler stopped.[/]")


@main.command()
@click.argument("instance_id")
@click.option("--retry-failed", is_flag=True, default=False,
              help="Evaluate recorded failures again instead of replaying them.")
@_settings_options
def resume(settings: UpdateWorkerSettings, instance_id: str, retry_failed: bool):
    """Resume run INSTANCE_ID, replaying the steps it already completed."""
    store = JournalStore(settings.state_dir)
    if not store.exists(instance_id):
        raise click.ClickException(f"No journal for run {instance_id} in {settings.state_dir}")

    result = _run_worker(settings, lambda w: w.resume(instance_id, retry_failed=retry_failed))
    _print_result(result)
    raise SystemExit(_exit_code(result))


@main.command()
@click.option("-c", "--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              default=None, help="YAML or JSON settings file.")
@click.option("--state-dir", type=click.Path(file_okay=False), default=None)
def runs(config_path: Optional[str], state_dir: Optional[str]):
    """List journaled runs."""
    settings = load_settings(config_path, state_dir=state_dir)
    all_runs = JournalStore(settings.state_dir).list_runs()

    if not all_runs:
        console.print("[dim]No runs found.[/]")
        return

    table = RichTable(title="docrefresh Runs")
    table.add_column("Instance ID", style="bold cyan")
    table.add_column("Status")
    table.add_column("Started", style="dim")
    table.add_column("Documents", justify="right")
    table.add_column("Steps", justify="right")

    for r in all_runs:
        status = r["status"]
        style = "green" if status == "completed" else "yellow"
        table.add_row(
            r["instance_id"],
            f"[{style}]{status}[/]",
            r["created_at"][:19].replace("T", " "),
            str(r["work_items"]),
            str(r["events"]),
        )

    console.print(table)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--canonical", is_flag=True, default=False,
              help="Print the document with its metadata block re-emitted.")
def inspect(file: str, canonical: bool):
    """Show the metadata and reference URLs of a tracked document."""
    document = Path(file).read_text(encoding="utf-8")
    if canonical:
        click.echo(frontmatter.update_metadata(document), nl=False)
        return

    metadata, body = frontmatter.parse(document)
    table = RichTable(title=Path(file).name, show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    if metadata.is_empty:
        table.add_row("metadata", "[yellow]none[/]")
    else:
        for name, value in metadata.model_dump().items():
            table.add_row(name, value or "[dim]—[/]")
    table.add_row("body lines", str(len(body.splitlines())))
    console.print(table)

    urls = frontmatter.extract_reference_urls(document)
    if urls:
        console.print("[bold]Resources:[/]")
        for url in urls:
            console.print(f"  • {url}")
    else:
        console.print("[dim]No Resources section.[/]")


if __name__ == "__main__":
    main()
