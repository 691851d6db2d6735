"""CLI entry point for termrelay."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from termrelay.channel import Channel
from termrelay.config import RelayConfig
from termrelay.errors import RelayError
from termrelay.format.engine import FormatEngine, OutputFormat
from termrelay.session.models import SessionSpec, SessionStatus
from termrelay.session.orchestrator import SessionOrchestrator
from termrelay.session.tools import BuiltinToolRegistry
from termrelay.session.wire import EventType, WireEvent

app = typer.Typer(
    name="termrelay",
    help="Run command-line programs as observable, controllable sessions.",
    no_args_is_help=True,
)

console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _parse_env(pairs: list[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected KEY=VALUE, got {pair!r}", param_hint="--env")
        env[key] = value
    return env


@app.command(context_settings={"ignore_unknown_options": True})
def run(
    command: str = typer.Argument(help="Program to run."),
    args: list[str] | None = typer.Argument(None, help="Arguments passed to the program."),
    fmt: str = typer.Option(
        "text", "--format", "-f", help="Output format: raw, text, html or json."
    ),
    tool: str | None = typer.Option(
        None, "--tool", "-t", help="Tool label (default: detected from the command)."
    ),
    cwd: str | None = typer.Option(None, "--cwd", help="Working directory."),
    env: list[str] | None = typer.Option(
        None, "--env", "-e", help="Extra environment variable, KEY=VALUE (repeatable)."
    ),
    shell: bool = typer.Option(False, "--shell", help="Run the command through the shell."),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Kill the program after this many seconds."
    ),
    inputs: list[str] | None = typer.Option(
        None, "--input", "-i", help="Line to send to stdin (repeatable); stdin is then closed."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(None, "--config", "-c", help="Config file path."),
) -> None:
    """Run a program as a session and print its output."""
    setup_logging(verbose)

    try:
        output_format = OutputFormat(fmt)
    except ValueError:
        typer.echo(f"Error: Unknown format: {fmt}", err=True)
        raise typer.Exit(2)

    config = RelayConfig.load(config_file)
    spec = SessionSpec(
        command=command,
        args=args or [],
        tool=tool,
        cwd=cwd,
        env=_parse_env(env or []),
        timeout=timeout,
        use_shell=True if shell else None,
    )

    exit_code = asyncio.run(_run_session(spec, config, output_format, inputs))
    raise typer.Exit(exit_code)


async def _run_session(
    spec: SessionSpec,
    config: RelayConfig,
    fmt: OutputFormat,
    inputs: list[str] | None,
) -> int:
    """Run one session to completion. Returns the exit code to report."""
    async with SessionOrchestrator(config) as relay:
        queue = relay.wire.subscribe()
        consumer = asyncio.create_task(_consume_wire(queue, relay.engine, fmt))

        try:
            session_id = await relay.create_session(spec)
            if inputs is not None:
                for line in inputs:
                    await relay.send_input(session_id, line + "\n")
                await relay.end_input(session_id)
            await relay.wait_for_exit(session_id)
        except RelayError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            return 1
        finally:
            await relay.shutdown()
            await consumer

        snapshot = relay.get_session(session_id)

    if snapshot is None or snapshot.status is SessionStatus.ERROR:
        return 1
    if snapshot.signal:
        try:
            return 128 + signal.Signals[snapshot.signal].value
        except KeyError:
            return 1
    return snapshot.exit_code or 0


async def _consume_wire(queue: asyncio.Queue, engine: FormatEngine, fmt: OutputFormat) -> None:
    while True:
        event: WireEvent | None = await queue.get()
        if event is None:
            break

        d = event.data
        if event.type == EventType.OUTPUT:
            output = d["output"]
            stream = sys.stderr if output.source is Channel.STDERR else sys.stdout
            rendered = engine.serialize(output, fmt)
            if fmt in (OutputFormat.RAW, OutputFormat.JSON):
                rendered += "\n"
            stream.write(rendered)
            stream.flush()

        elif event.type == EventType.ERROR:
            console.print(f"[red]ERROR:[/red] {escape(d.get('error', 'Unknown error'))}")

        elif event.type == EventType.STATUS:
            status = d.get("status")
            if status == SessionStatus.TERMINATED and d.get("signal"):
                console.print(f"[yellow]\\[terminated by {d['signal']}][/yellow]")


@app.command()
def tools() -> None:
    """List the built-in tool profiles."""
    registry = BuiltinToolRegistry()
    table = Table(title="Tool profiles")
    table.add_column("Name", style="bold")
    table.add_column("Command")
    table.add_column("Description")
    table.add_column("Environment")
    for name in registry.names():
        profile = registry.get(name)
        if profile is None:
            continue
        env = ", ".join(f"{k}={v}" for k, v in profile.env.items())
        table.add_row(profile.name, profile.command or "-", profile.description, env)
    Console().print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
