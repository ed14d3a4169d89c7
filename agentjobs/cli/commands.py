"""agentjobs CLI: Typer-based command-line interface."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import typer
from rich.console import Console
from rich.table import Table

from agentjobs import __version__

app = typer.Typer(
    name="agentjobs",
    help="agentjobs - durable agent job scheduler",
    no_args_is_help=True,
)

console = Console()

# global options, set by the callback before any command runs
_options: dict[str, str | None] = {"config": None, "tenant": None}


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"agentjobs v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True
    ),
    config_path: str | None = typer.Option(None, "--config", "-c", help="Config YAML file"),
    tenant: str | None = typer.Option(None, "--tenant", "-t", help="Override workspace.tenant_id"),
) -> None:
    """agentjobs - durable agent job scheduler."""
    _options["config"] = config_path
    _options["tenant"] = tenant


def _load_config():
    from agentjobs.core.config.loader import load_config
    from agentjobs.core.jobs.errors import StoreConfigurationError

    try:
        return load_config(_options["config"], tenant_id=_options["tenant"])
    except StoreConfigurationError as e:
        _fail(e)


def _open_store():
    from agentjobs.storage.sqlite_store import SQLiteJobStore

    config = _load_config()
    return config, SQLiteJobStore.from_config(config)


def _fmt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _fail(exc: Exception) -> None:
    console.print(f"[red]{exc}[/red]")
    raise typer.Exit(code=1)


# ════════════════════════════════════════════════════════════
# run: start API server
# ════════════════════════════════════════════════════════════


@app.command()
def run(
    port: int | None = typer.Option(None, "--port", "-p", help="Port number"),
    host: str | None = typer.Option(None, "--host", "-h", help="Host address"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Start the API server (uvicorn) with the polling worker."""
    import os

    import uvicorn

    config = _load_config()
    # the app loads its own config on startup
    if _options["config"]:
        os.environ["AGENTJOBS_CONFIG"] = _options["config"]
    if _options["tenant"] is not None:
        os.environ["AGENTJOBS_WORKSPACE__TENANT_ID"] = _options["tenant"]
    host = host or config.api.host
    port = port or config.api.port
    console.print(f"[green]Starting agentjobs API on {host}:{port}[/green]")
    uvicorn.run("agentjobs.api.app:app", host=host, port=port, reload=reload)


# ════════════════════════════════════════════════════════════
# worker: standalone polling worker
# ════════════════════════════════════════════════════════════


@app.command()
def worker(
    once: bool = typer.Option(False, "--once", help="Run a single poll pass and exit"),
) -> None:
    """Run the job worker without the API."""
    from agentjobs.core.scheduler.worker import AgentJobWorker

    config, store = _open_store()
    job_worker = AgentJobWorker(store, config)

    if once:
        processed = job_worker.run_once()
        console.print(f"[green]Processed {processed} job(s)[/green]")
        return

    async def _serve() -> None:
        await job_worker.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await job_worker.stop()

    console.print(
        f"[bold]agentjobs worker[/bold] polling every {config.worker.poll_interval_s}s "
        "(Ctrl+C to stop)"
    )
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        console.print("\nBye!")


# ════════════════════════════════════════════════════════════
# status: config + DB info
# ════════════════════════════════════════════════════════════


@app.command()
def status() -> None:
    """Show configuration and job store status."""
    config, store = _open_store()
    stats = store.job_stats()

    table = Table(title="agentjobs status")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Version", __version__)
    table.add_row("Tenant", config.tenant_id)
    table.add_row("DB Path", config.database.path)
    table.add_row("Agents", str(len(store.list_agents())))
    for key in ("active", "paused", "completed", "failed"):
        table.add_row(f"Jobs ({key})", str(stats.get(key, 0)))
    table.add_row("Runs in flight", str(stats.get("running_runs", 0)))
    table.add_row("Worker", "enabled" if config.worker.enabled else "disabled")

    console.print(table)


# ════════════════════════════════════════════════════════════
# cleanup: reclaim stale runs
# ════════════════════════════════════════════════════════════


@app.command()
def cleanup(
    older_than: int | None = typer.Option(
        None, "--older-than", help="Seconds a run may stay running (default: worker.run_timeout_s)"
    ),
) -> None:
    """Time out runs stuck in 'running'."""
    config, store = _open_store()
    seconds = older_than or config.worker.run_timeout_s
    reclaimed = store.cleanup_stale_runs(older_than=timedelta(seconds=seconds))
    console.print(f"[green]Reclaimed {reclaimed} stale run(s)[/green]")


# ════════════════════════════════════════════════════════════
# jobs: job management (sub-command group)
# ════════════════════════════════════════════════════════════

jobs_app = typer.Typer(help="Manage agent jobs")
app.add_typer(jobs_app, name="jobs")


@jobs_app.command("list")
def jobs_list(
    agent: str | None = typer.Option(None, "--agent", "-a", help="Filter by agent ID"),
    status_filter: str | None = typer.Option(None, "--status", "-s", help="Filter by status"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max rows"),
) -> None:
    """List agent jobs, oldest first."""
    from agentjobs.core.jobs.errors import JobStoreError
    from agentjobs.core.jobs.types import AgentJobFilter

    _, store = _open_store()
    try:
        jobs = store.list_jobs(AgentJobFilter(agent_id=agent, status=status_filter, limit=limit))
    except JobStoreError as e:
        _fail(e)

    if not jobs:
        console.print("[dim]No jobs found.[/dim]")
        return

    table = Table(title="Agent Jobs")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Schedule", style="yellow")
    table.add_column("Status", style="green")
    table.add_column("Next run", style="blue")
    table.add_column("Runs", justify="right")
    table.add_column("Fails", justify="right", style="red")

    for job in jobs:
        schedule = {
            "cron": job.cron_expr,
            "interval": f"every {job.interval_ms}ms",
            "once": f"at {_fmt(job.run_at)}",
        }.get(job.schedule_kind, job.schedule_kind)
        table.add_row(
            job.id,
            job.name,
            schedule or "-",
            job.status if job.enabled else f"{job.status} (disabled)",
            _fmt(job.next_run_at),
            str(job.run_count),
            f"{job.consecutive_failures}/{job.max_failures}",
        )

    console.print(table)


@jobs_app.command("add")
def jobs_add(
    agent: str = typer.Option(..., "--agent", "-a", help="Owning agent ID"),
    name: str = typer.Option(..., "--name", "-n", help="Job name"),
    message: str = typer.Option(..., "--message", "-m", help="Payload text"),
    cron: str | None = typer.Option(None, "--cron", help="Cron expression"),
    every: int | None = typer.Option(None, "--every", help="Interval in seconds"),
    at: datetime | None = typer.Option(None, "--at", help="One-shot time (ISO 8601, UTC if naive)"),
    tz: str = typer.Option("UTC", "--tz", help="Timezone for cron schedules"),
    system_event: bool = typer.Option(False, "--system-event", help="Post as a system event"),
) -> None:
    """Create a job with exactly one of --cron, --every or --at."""
    from agentjobs.core.jobs.errors import JobStoreError
    from agentjobs.core.jobs.schedule import initial_next_run
    from agentjobs.core.jobs.types import CreateAgentJobInput
    from agentjobs.core.jobs.validation import utcnow

    chosen = [opt for opt in (cron, every, at) if opt is not None]
    if len(chosen) != 1:
        console.print("[red]Give exactly one of --cron, --every, --at[/red]")
        raise typer.Exit(code=1)

    if cron is not None:
        kind = "cron"
    elif every is not None:
        kind = "interval"
    else:
        kind = "once"

    _, store = _open_store()
    data = CreateAgentJobInput(
        agent_id=agent,
        name=name,
        schedule_kind=kind,
        cron_expr=cron,
        interval_ms=every * 1000 if every is not None else None,
        run_at=at,
        timezone=tz,
        payload_kind="system_event" if system_event else "message",
        payload_text=message,
        created_by="cli",
    )
    try:
        data.next_run_at = initial_next_run(data, utcnow())
        job = store.create_job(data)
    except JobStoreError as e:
        _fail(e)
    console.print(f"[green]Job created:[/green] {job.id} (next run {_fmt(job.next_run_at)})")


@jobs_app.command("runs")
def jobs_runs(
    job_id: str = typer.Argument(help="Job ID"),
    limit: int = typer.Option(20, "--limit", "-n", help="Max rows"),
) -> None:
    """Show the run history of a job, newest first."""
    from agentjobs.core.jobs.errors import JobStoreError

    _, store = _open_store()
    try:
        store.get_job(job_id)
        runs = store.list_runs(job_id, limit=limit)
    except JobStoreError as e:
        _fail(e)

    if not runs:
        console.print("[dim]No runs yet.[/dim]")
        return

    table = Table(title=f"Runs of {job_id}")
    table.add_column("Run", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Started", style="blue")
    table.add_column("Duration", justify="right")
    table.add_column("Error", style="red")

    for r in runs:
        table.add_row(
            r.id,
            r.status,
            _fmt(r.started_at),
            f"{r.duration_ms}ms" if r.duration_ms is not None else "-",
            r.error or "",
        )

    console.print(table)


@jobs_app.command("pause")
def jobs_pause(job_id: str = typer.Argument(help="Job ID")) -> None:
    """Pause a job."""
    from agentjobs.core.jobs import actions
    from agentjobs.core.jobs.errors import JobStoreError

    _, store = _open_store()
    try:
        actions.pause(store, job_id)
    except JobStoreError as e:
        _fail(e)
    console.print(f"[green]Paused job:[/green] {job_id}")


@jobs_app.command("resume")
def jobs_resume(job_id: str = typer.Argument(help="Job ID")) -> None:
    """Resume a paused job with a fresh next run."""
    from agentjobs.core.jobs import actions
    from agentjobs.core.jobs.errors import JobStoreError

    _, store = _open_store()
    try:
        job = actions.resume(store, job_id)
    except JobStoreError as e:
        _fail(e)
    console.print(f"[green]Resumed job:[/green] {job_id} (next run {_fmt(job.next_run_at)})")


@jobs_app.command("remove")
def jobs_remove(job_id: str = typer.Argument(help="Job ID to remove")) -> None:
    """Delete a job and its run history."""
    from agentjobs.core.jobs.errors import JobStoreError

    _, store = _open_store()
    try:
        store.delete_job(job_id)
    except JobStoreError as e:
        _fail(e)
    console.print(f"[green]Removed job:[/green] {job_id}")


# ════════════════════════════════════════════════════════════
# agent: agent registry (sub-command group)
# ════════════════════════════════════════════════════════════

agent_app = typer.Typer(help="Manage agents")
app.add_typer(agent_app, name="agent")


@agent_app.command("add")
def agent_add(
    name: str = typer.Argument(help="Display name"),
    agent_id: str | None = typer.Option(None, "--id", help="Explicit agent ID"),
) -> None:
    """Register an agent that jobs can belong to."""
    from agentjobs.core.jobs.errors import JobStoreError

    _, store = _open_store()
    try:
        new_id = store.add_agent(name, agent_id=agent_id)
    except JobStoreError as e:
        _fail(e)
    console.print(f"[green]Agent created:[/green] {new_id} ({name})")


@agent_app.command("list")
def agent_list() -> None:
    """List agents in the configured tenant."""
    _, store = _open_store()
    agents = store.list_agents()
    if not agents:
        console.print("[dim]No agents found.[/dim]")
        return

    table = Table(title="Agents")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="blue")
    table.add_column("Created", style="dim")
    for a in agents:
        table.add_row(a["id"], a["display_name"] or "-", str(a["created_at"]))

    console.print(table)
