# === NAVMAP v1 ===
# {
#   "module": "BuildRelay.JobWatch.cli_main",
#   "purpose": "Typer CLI for triggering and watching remote build jobs.",
#   "sections": [
#     {"id": "clicontext", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"},
#     {"id": "codemagic", "name": "codemagic", "anchor": "function-codemagic", "kind": "function"},
#     {"id": "dispatch", "name": "dispatch", "anchor": "function-dispatch", "kind": "function"},
#     {"id": "status", "name": "status", "anchor": "function-status", "kind": "function"},
#     {"id": "watch", "name": "watch", "anchor": "function-watch", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Typer CLI for triggering and watching remote build jobs.

Exit codes:
    0   job finished successfully
    1   job reached a terminal state without success
    2   trigger rejected, job unknown, watch timed out or gave up, bad config
    130 watch cancelled (Ctrl-C)

Example:
    $ jobwatch codemagic --branch main --workflow ios-workflow
    $ jobwatch dispatch --ref feature/x --platform android --build-name 0.5.1
    $ jobwatch watch codemagic 65f0c0ffee
"""

from __future__ import annotations

import contextlib
import json
import signal
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from . import __version__
from .backends import PLATFORM_PRESETS, Service, build_backend
from .cancellation import CancellationToken
from .errors import ConfigurationError, JobWatchError, WatchCancelled
from .logging_config import setup_logging
from .models import JobHandle, JobRequest, JobResult
from .notify import GitHubOutputNotifier, JsonReportNotifier, Notifier
from .settings import JobWatchSettings, LoggingSettings, load_settings
from .watcher import RemoteJobWatcher

EXIT_SUCCESS = 0
EXIT_JOB_FAILED = 1
EXIT_ERROR = 2
EXIT_CANCELLED = 130


class CodemagicWorkflow(str, Enum):
    IOS = "ios-workflow"
    ANDROID = "android-workflow"


class Platform(str, Enum):
    ANDROID = "android"
    IOS = "ios"
    MACOS = "macos"
    WINDOWS = "windows"
    LINUX = "linux"


_console = Console()
_err_console = Console(stderr=True)


class CliContext:
    """Shared state for one CLI invocation: settings, consoles, verbosity."""

    def __init__(self, settings: JobWatchSettings, verbosity: int = 0) -> None:
        self.settings = settings
        self.verbosity = verbosity
        self.console = _console
        self.err_console = _err_console

    def log_debug(self, message: str) -> None:
        if self.verbosity >= 2:
            self.err_console.print(f"[dim]DEBUG: {message}[/dim]")


app = typer.Typer(
    name="jobwatch",
    help="Trigger remote build jobs and watch them until they finish",
    no_args_is_help=True,
)

_context: Optional[CliContext] = None


def get_context() -> CliContext:
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"jobwatch {__version__}")
        raise typer.Exit(EXIT_SUCCESS)


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="JOBWATCH_CONFIG",
        help="Path to a YAML settings file",
    ),
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    ),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Trigger and watch remote build jobs.

    Credentials come from the settings file or the environment, for example
    JOBWATCH_CODEMAGIC__API_TOKEN and JOBWATCH_GITHUB__TOKEN.
    """
    global _context

    try:
        settings = load_settings(config)
    except ConfigurationError as exc:
        _err_console.print(f"[red]Error loading settings: {escape(str(exc))}[/red]")
        raise typer.Exit(EXIT_ERROR)

    log_settings = settings.logging
    if verbosity or json_logs:
        overrides = {"emit_json_logs": json_logs or log_settings.emit_json_logs}
        if verbosity:
            overrides["level"] = "DEBUG" if verbosity >= 2 else "INFO"
        log_settings = LoggingSettings(**{**log_settings.model_dump(), **overrides})
    setup_logging(log_settings)

    _context = CliContext(settings=settings, verbosity=verbosity)
    _context.log_debug(f"Config hash: {settings.config_hash()}")


# ----------------------------------------------------------------------
# Shared options and helpers
# ----------------------------------------------------------------------

_INTERVAL_OPTION = typer.Option(None, "--interval", min=0.001, help="Seconds between polls")
_TIMEOUT_OPTION = typer.Option(None, "--timeout", min=0.001, help="Seconds before giving up")
_BUDGET_OPTION = typer.Option(
    None, "--retry-budget", min=0, help="Consecutive poll failures tolerated"
)
_REPORT_OPTION = typer.Option(None, "--report-json", help="Write the outcome to this JSON file")
_GITHUB_OUTPUT_OPTION = typer.Option(
    True,
    "--github-output/--no-github-output",
    help="Append step outputs to $GITHUB_OUTPUT when it is set",
)


def _build_watcher(
    ctx: CliContext,
    service: Service,
    report_json: Optional[Path],
    github_output: bool,
) -> RemoteJobWatcher:
    notifiers: List[Notifier] = []
    if github_output:
        notifiers.append(GitHubOutputNotifier())
    if report_json is not None:
        notifiers.append(JsonReportNotifier(report_json))
    try:
        backend = build_backend(service, ctx.settings)
    except ConfigurationError as exc:
        ctx.err_console.print(f"[red]✗ {escape(str(exc))}[/red]")
        raise typer.Exit(EXIT_ERROR)
    return RemoteJobWatcher(backend, ctx.settings.watch, notifiers=notifiers)


@contextlib.contextmanager
def _cancel_on_sigint(token: CancellationToken) -> Iterator[None]:
    """Turn Ctrl-C into a cooperative cancel of ``token`` for the duration."""

    def _handler(signum, frame) -> None:  # noqa: ARG001
        token.cancel()

    try:
        previous = signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not on the main thread; leave the default handler in place.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _report_result(ctx: CliContext, result: JobResult) -> int:
    handle = result.handle
    label = str(handle) if handle is not None else "job"
    if result.succeeded:
        ctx.console.print(f"[green]✓ {label} finished successfully[/green]")
        code = EXIT_SUCCESS
    else:
        detail = "without success" if result.status.value == "finished" else result.status.value
        ctx.console.print(f"[red]✗ {label} ended {detail}[/red]")
        code = EXIT_JOB_FAILED
    if result.url:
        ctx.console.print(f"Build URL: {result.url}")
    return code


def _report_error(ctx: CliContext, exc: JobWatchError) -> int:
    ctx.err_console.print(f"[red]✗ {escape(str(exc))}[/red]")
    context = {key: value for key, value in exc.context().items() if value is not None}
    if context:
        ctx.err_console.print(json.dumps(context, sort_keys=True))
    return EXIT_CANCELLED if isinstance(exc, WatchCancelled) else EXIT_ERROR


def _run_request(
    service: Service,
    request: JobRequest,
    interval: Optional[float],
    timeout: Optional[float],
    retry_budget: Optional[int],
    report_json: Optional[Path],
    github_output: bool,
) -> None:
    ctx = get_context()
    watcher = _build_watcher(ctx, service, report_json, github_output)
    token = CancellationToken()
    try:
        with _cancel_on_sigint(token):
            result = watcher.run(
                request,
                interval=interval,
                timeout=timeout,
                retry_budget=retry_budget,
                cancel_token=token,
            )
    except JobWatchError as exc:
        raise typer.Exit(_report_error(ctx, exc))
    raise typer.Exit(_report_result(ctx, result))


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


@app.command()
def codemagic(
    branch: str = typer.Option(..., "--branch", "-b", help="Branch to build"),
    workflow: CodemagicWorkflow = typer.Option(..., "--workflow", "-w", help="Codemagic workflow id"),
    target: Optional[str] = typer.Option(None, "--target", help="Environment variable group"),
    interval: Optional[float] = _INTERVAL_OPTION,
    timeout: Optional[float] = _TIMEOUT_OPTION,
    retry_budget: Optional[int] = _BUDGET_OPTION,
    report_json: Optional[Path] = _REPORT_OPTION,
    github_output: bool = _GITHUB_OUTPUT_OPTION,
) -> None:
    """Start a Codemagic build and wait for it to finish.

    Example:
        $ jobwatch codemagic --branch main --workflow android-workflow
    """
    request = JobRequest(job_type=workflow.value, ref=branch, target=target)
    _run_request(
        Service.CODEMAGIC, request, interval, timeout, retry_budget, report_json, github_output
    )


@app.command()
def dispatch(
    ref: str = typer.Option(..., "--ref", "-r", help="Branch the builder should check out"),
    platform: Platform = typer.Option(..., "--platform", "-p", help="Target platform workflow"),
    build_name: Optional[str] = typer.Option(None, "--build-name", help="Build name input"),
    interval: Optional[float] = _INTERVAL_OPTION,
    timeout: Optional[float] = _TIMEOUT_OPTION,
    retry_budget: Optional[int] = _BUDGET_OPTION,
    report_json: Optional[Path] = _REPORT_OPTION,
    github_output: bool = _GITHUB_OUTPUT_OPTION,
) -> None:
    """Dispatch the builder workflow for a platform and wait for the run.

    Example:
        $ jobwatch dispatch --ref main --platform macos --build-name 0.5.1
    """
    parameters = dict(PLATFORM_PRESETS[platform.value])
    if build_name:
        parameters["build_name"] = build_name
    request = JobRequest(job_type=platform.value, ref=ref, parameters=parameters)
    _run_request(
        Service.GITHUB, request, interval, timeout, retry_budget, report_json, github_output
    )


@app.command()
def status(
    service: Service = typer.Argument(..., help="Service the job runs on"),
    job_id: str = typer.Argument(..., help="Job identifier returned at trigger time"),
    as_json: bool = typer.Option(False, "--json", help="Print the status report as JSON"),
) -> None:
    """Query a job's status once.

    Exits 0 only when the job finished successfully.
    """
    ctx = get_context()
    watcher = _build_watcher(ctx, service, None, github_output=False)
    handle = JobHandle(job_id=job_id, service=service.value)
    try:
        report = watcher.poll_report(handle)
    except JobWatchError as exc:
        raise typer.Exit(_report_error(ctx, exc))

    if as_json:
        typer.echo(
            json.dumps(
                {
                    "job_id": job_id,
                    "service": service.value,
                    "status": report.status.value,
                    "remote_status": report.remote_status,
                    "success": report.success,
                    "url": report.url,
                }
            )
        )
    else:
        ctx.console.print(f"{handle}: [bold]{report.status.value}[/bold] ({report.remote_status})")
        if report.url:
            ctx.console.print(f"Build URL: {report.url}")
    ok = report.status.value == "finished" and bool(report.success)
    raise typer.Exit(EXIT_SUCCESS if ok else EXIT_JOB_FAILED)


@app.command()
def watch(
    service: Service = typer.Argument(..., help="Service the job runs on"),
    job_id: str = typer.Argument(..., help="Job identifier returned at trigger time"),
    interval: Optional[float] = _INTERVAL_OPTION,
    timeout: Optional[float] = _TIMEOUT_OPTION,
    retry_budget: Optional[int] = _BUDGET_OPTION,
    report_json: Optional[Path] = _REPORT_OPTION,
    github_output: bool = _GITHUB_OUTPUT_OPTION,
) -> None:
    """Re-attach to an existing job and wait for it to finish."""
    ctx = get_context()
    watcher = _build_watcher(ctx, service, report_json, github_output)
    handle = JobHandle(job_id=job_id, service=service.value)
    token = CancellationToken()
    try:
        with _cancel_on_sigint(token):
            result = watcher.resume(
                handle,
                interval=interval,
                timeout=timeout,
                retry_budget=retry_budget,
                cancel_token=token,
            )
    except JobWatchError as exc:
        raise typer.Exit(_report_error(ctx, exc))
    raise typer.Exit(_report_result(ctx, result))


__all__ = [
    "app",
    "CliContext",
    "get_context",
    "main",
    "EXIT_SUCCESS",
    "EXIT_JOB_FAILED",
    "EXIT_ERROR",
    "EXIT_CANCELLED",
]
