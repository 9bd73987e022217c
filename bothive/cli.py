"""
Command line entry-point for HiveLang and the hive server.

Compile or run ``.hive`` files locally, scaffold a new bot, or serve the API.
"""
from __future__ import annotations

import asyncio
import uuid
from pathlib import Path

import click

from bothive.config import config
from bothive.core.models import ToolContext, ToolMetadata
from bothive.core.shared_memory import InMemorySharedMemory
from bothive.hivelang.compiler import compile_source
from bothive.hivelang.runtime import DEFAULT_EVENT, execute
from bothive.log import configure_logging

BOT_TEMPLATE = """bot "{name}"
  description "A helpful assistant."

  on input
    say "Processing your request"
    // call agent.plan
  end
end
"""


@click.group()
@click.option("--log-level", default=None, help="Override BOTHIVE_LOG_LEVEL")
def main(log_level: str | None) -> None:
    """bothive - HiveLang compiler, runtime and server."""
    configure_logging(log_level or config.log_level)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def compile(file: Path) -> None:
    """Compile FILE and print its blocks as JSON."""
    result = compile_source(file.read_text(encoding="utf-8"))
    if not result.success:
        click.echo(f"Error: {result.error}", err=True)
        raise SystemExit(1)
    click.echo(result.to_json())


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--input", "text", default="", help="Value passed as the event input")
@click.option("--event", default=DEFAULT_EVENT, show_default=True, help="Event handler to run")
@click.option("--block", default=None, help="Block name; defaults to the first block")
def run(file: Path, text: str, event: str, block: str | None) -> None:
    """Run one event handler of FILE locally, without tools."""
    run_id = f"cli-{uuid.uuid4().hex[:8]}"
    context = ToolContext(
        metadata=ToolMetadata(bot_id=file.stem, run_id=run_id),
        shared_memory=InMemorySharedMemory(run_id),
    )
    result = asyncio.run(
        execute(file.read_text(encoding="utf-8"), {"input": text}, None, context, block=block, event=event)
    )
    if not result.success:
        click.echo(f"Error: {result.error}", err=True)
        raise SystemExit(1)
    if result.output:
        click.echo(result.output)
    for step in result.steps:
        click.echo(f"  [{step.action}] {step.observation}", err=True)


@main.command()
@click.argument("name", default="Researcher")
@click.option("--directory", type=click.Path(file_okay=False, path_type=Path), default=Path("."))
def spawn(name: str, directory: Path) -> None:
    """Scaffold a bot.hive file in DIRECTORY."""
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / "bot.hive"
    if target.exists():
        click.echo(f"{target} already exists, leaving it untouched")
        return
    target.write_text(BOT_TEMPLATE.format(name=name), encoding="utf-8")
    click.echo(f"Created {target}")


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool) -> None:
    """Serve the HTTP API with the Pulse Engine and workforce worker."""
    import uvicorn

    uvicorn.run("bothive.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
