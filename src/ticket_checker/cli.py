import asyncio
import functools
import importlib.metadata
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
import uvicorn
from rich.console import Console
from rich.traceback import Traceback

from .config import CheckerConfig, load_config
from .engine.exceptions import ConfigurationError
from .engine.models import MatchMode, Verdict
from .engine.runner import TicketChecker
from .state import APP_STATE

console = Console()
logger = structlog.get_logger(__name__)

EXIT_FOUND = 0
EXIT_NOT_FOUND = 1
EXIT_ERROR_STRICT = 2

app = typer.Typer(
    name="ticket-checker",
    help="Check whether a ticket sits in a given column of a project's kanban board.",
    no_args_is_help=True,
)


def version_callback(value: bool):
    """Prints the application version and exits."""
    if value:
        try:
            version = importlib.metadata.version("ticket-checker")
            console.print(f"ticket-checker version: {version}")
        except importlib.metadata.PackageNotFoundError:
            console.print("ticket-checker version: unknown (package not installed)")
        raise typer.Exit()


def setup_logging(verbose: bool):
    log_level = logging.DEBUG if verbose else logging.INFO
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processor=structlog.dev.ConsoleRenderer(),
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)
    if not verbose:
        logging.getLogger("browser").setLevel(logging.WARNING)


def handle_exceptions(func):
    """A decorator to catch and format exceptions for all CLI commands."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        error_console = Console(stderr=True)
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except Exception as e:
            error_console.print(f"[bold red]Error:[/bold red] {e}")
            if APP_STATE.verbose_mode:
                error_console.print(
                    Traceback.from_exception(
                        type(e), e, e.__traceback__, show_locals=True
                    )
                )
            raise typer.Exit(code=1)

    return wrapper


def exit_code_for(verdict: Verdict, strict: bool = False) -> int:
    """Found maps to 0. Not found and errors both map to 1 unless `strict`."""
    if verdict.found:
        return EXIT_FOUND
    if strict and not verdict.success:
        return EXIT_ERROR_STRICT
    return EXIT_NOT_FOUND


async def _run_until_signalled(config: CheckerConfig) -> Verdict:
    """Runs one check; SIGINT/SIGTERM cancel it so the browser is still released."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers unavailable on this platform.", signal=sig.name)
    try:
        return await TicketChecker(config).run()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def _render(verdict: Verdict) -> None:
    criteria = verdict.criteria
    where = f"'{criteria.section_label}' of '{criteria.project_name}'" if criteria else ""
    if verdict.found:
        console.print(
            f"[bold green]ANSWER: YES[/bold green] - '{verdict.matched_text}' found in {where}."
        )
    elif verdict.success:
        console.print(f"[bold yellow]ANSWER: NO[/bold yellow] - not found in {where}.")
    else:
        console.print(f"[bold red]ANSWER: NO (due to error)[/bold red] - {verdict.error}")
    for diagnostic in verdict.diagnostics:
        console.print(f"  [dim]{diagnostic}[/dim]")
    for artifact in verdict.evidence:
        console.print(f"  [dim]📸 {artifact.stage}: {artifact.path}[/dim]")


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose DEBUG logging."
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    APP_STATE.verbose_mode = verbose
    setup_logging(verbose)


@app.command()
@handle_exceptions
def check(
    title: Optional[str] = typer.Argument(None, help="Ticket title to look for."),
    project: Optional[str] = typer.Option(None, "--project", "-p"),
    section: Optional[str] = typer.Option(None, "--section", "-s"),
    exact: Optional[bool] = typer.Option(
        None, "--exact/--partial", help="Require the whole title to match."
    ),
    headless: Optional[bool] = typer.Option(None, "--headless/--headed"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", envvar="CHECKER_CONFIG", help="YAML configuration file."
    ),
    artifacts_dir: Optional[Path] = typer.Option(None, "--artifacts-dir"),
    deadline: Optional[float] = typer.Option(
        None, "--deadline", help="Abort the whole run after this many seconds."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
    strict_exit: bool = typer.Option(
        False, "--strict-exit", help="Exit with 2 (not 1) when the run itself failed."
    ),
):
    """Log in, open the project board and report whether the ticket is in the section."""
    overrides = {
        "criteria": {
            "title": title,
            "project_name": project,
            "section_label": section,
            "match_mode": None
            if exact is None
            else (MatchMode.EXACT if exact else MatchMode.PARTIAL).value,
        },
        "browser": {"headless": headless},
        "timeouts": {"run_deadline_s": deadline},
        "artifacts_dir": artifacts_dir,
    }
    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigurationError as e:
        Console(stderr=True).print(f"[bold red]Configuration error:[/bold red] {e}")
        raise typer.Exit(code=EXIT_ERROR_STRICT if strict_exit else EXIT_NOT_FOUND)

    try:
        verdict = asyncio.run(_run_until_signalled(config))
    except (KeyboardInterrupt, asyncio.CancelledError):
        Console(stderr=True).print("🛑 Interrupted, browser released.")
        raise typer.Exit(code=EXIT_NOT_FOUND)

    if as_json:
        console.print_json(json.dumps(verdict.to_result()))
    else:
        _render(verdict)
    raise typer.Exit(code=exit_code_for(verdict, strict_exit))


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host"),
    port: int = typer.Option(3000, "--port", envvar="PORT"),
):
    """Start the HTTP API."""
    uvicorn.run("ticket_checker.server.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    app()
