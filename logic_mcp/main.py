"""Command line entry point for the logic MCP server."""

import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import anyio
import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from logic_mcp import syntax
from logic_mcp.config import Settings
from logic_mcp.engine import SessionEngine
from logic_mcp.errors import ConfigError, PrologSyntaxError, SolverNotFoundError
from logic_mcp.log import configure_logging, stderr_console
from logic_mcp.prolog_mcp_server import run_fastmcp
from logic_mcp.solver import QueryOutcome
from logic_mcp.tools import format_outcome
from logic_mcp.transports import run_http, serve_stdio

app = typer.Typer(help="Logic MCP server: SWI-Prolog reasoning tools over MCP")
console = Console()
logger = logging.getLogger("logic_mcp.main")


class Mode(str, Enum):
    stdio = "stdio"
    http = "http"
    fastmcp = "fastmcp"


def _settings(**overrides) -> Settings:
    try:
        return Settings.from_env().with_overrides(**overrides)
    except ConfigError as e:
        stderr_console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _solver_missing(e: SolverNotFoundError) -> typer.Exit:
    stderr_console.print(Panel(str(e), title="Solver not found", border_style="red"))
    return typer.Exit(1)


@app.command()
def serve(
    mode: Mode = typer.Option(
        Mode.stdio,
        "--mode",
        "-m",
        help="stdio: one session per process; http: fresh session per request; "
        "fastmcp: stdio through FastMCP",
    ),
    host: Optional[str] = typer.Option(None, "--host", help="HTTP bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", min=1, max=65535, help="HTTP port"),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", min=0.1, help="Seconds allowed per query"
    ),
    swipl: Optional[str] = typer.Option(None, "--swipl", help="Path to the swipl executable"),
    stateful: bool = typer.Option(
        False, "--stateful", help="HTTP only: keep a session per Mcp-Session-Id"
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ..."),
):
    """Run the MCP server."""
    settings = _settings(
        host=host,
        port=port,
        timeout=timeout,
        swipl_path=swipl,
        stateful=stateful or None,
        log_level=log_level.upper() if log_level else None,
    )
    configure_logging(settings.log_level)

    try:
        if mode is Mode.stdio:
            anyio.run(serve_stdio, settings)
        elif mode is Mode.http:
            run_http(settings)
        else:
            run_fastmcp(settings)
    except SolverNotFoundError as e:
        raise _solver_missing(e)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    logger.info("Server stopped")


async def _run_query(settings: Settings, facts: str, goal: str) -> QueryOutcome:
    async with SessionEngine.create(settings) as engine:
        if facts:
            await engine.load_facts(facts)
        return await engine.query(goal)


@app.command()
def query(
    goal: str = typer.Argument(..., help="Goal to prove, e.g. 'mammal(cat).'"),
    input_file: Optional[Path] = typer.Option(
        None, "--input", "-i", help="Prolog file to load before querying"
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", min=0.1),
    swipl: Optional[str] = typer.Option(None, "--swipl", help="Path to the swipl executable"),
):
    """Run a single query, optionally against a Prolog file."""
    settings = _settings(timeout=timeout, swipl_path=swipl)
    configure_logging(settings.log_level)

    facts = ""
    if input_file:
        try:
            facts = input_file.read_text(encoding="utf-8")
        except OSError as e:
            stderr_console.print(f"Error loading input file: {e}")
            raise typer.Exit(1)

    try:
        outcome = anyio.run(_run_query, settings, facts, goal)
    except SolverNotFoundError as e:
        raise _solver_missing(e)

    console.print(Panel(
        "\n".join(format_outcome(outcome)),
        title="Query Result",
        border_style="green" if outcome.succeeded else "red",
    ))
    if not outcome.succeeded:
        raise typer.Exit(1)


@app.command()
def validate(code: str = typer.Argument(..., help="Prolog text to check")):
    """Check Prolog syntax without running it."""
    try:
        syntax.validate(code)
    except PrologSyntaxError as e:
        console.print(Panel(str(e), title=f"Invalid ({e.reason.value})", border_style="red"))
        raise typer.Exit(1)
    console.print(Panel("Syntax is valid!", title="Valid", border_style="green"))


if __name__ == "__main__":
    app()
