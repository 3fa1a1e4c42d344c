"""CLI interface for the venture decision pipeline."""

import asyncio
import json
from pathlib import Path
from typing import Any

import typer

from .codec import decode as codec_decode
from .codec import encode as codec_encode
from .config import settings
from .exceptions import VentureIntelError
from .invoker import ModelInvoker, Role
from .observability import setup_structured_logging
from .pipeline import DecisionPipeline, PipelineLog

app = typer.Typer(help="Research-backed decision reports for venture ideas")


def _load_venture(description: str | None, json_input: Path | None) -> Any:
    if json_input is not None:
        return json.loads(json_input.read_text(encoding="utf-8"))
    if not description:
        raise typer.BadParameter("Provide a DESCRIPTION or --json-input")
    return {"description": description}


def _print_progress(entry: PipelineLog) -> None:
    typer.echo(f"[{entry.stage}/4] {entry.stage_name} ({entry.model}) {entry.status.value}: {entry.message}", err=True)


@app.command()
def analyze(
    description: str = typer.Argument(None, help="Free-form venture description"),
    json_input: Path = typer.Option(None, "--json-input", "-i", help="Read the venture record from a JSON file"),
    output: Path = typer.Option(None, "--output", "-o", help="Write the result JSON to this file"),
    storage: bool = typer.Option(False, "--storage", help="Emit the storage record with encoded log snapshots"),
) -> None:
    """Run the four-stage pipeline on a venture."""
    setup_structured_logging(settings.logging.level, settings.logging.json_output)
    venture = _load_venture(description, json_input)

    async def _analyze() -> dict[str, Any]:
        pipeline = DecisionPipeline(
            ModelInvoker.from_settings(settings),
            on_progress=_print_progress,
            expected_categories=list(settings.pipeline.expected_categories),
        )
        result = await pipeline.run(venture)
        return result.to_storage_record() if storage else result.model_dump(mode="json")

    try:
        data = asyncio.run(_analyze())
    except VentureIntelError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    text = json.dumps(data, indent=2, ensure_ascii=False)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        typer.echo(f"Saved result to {output}", err=True)
    else:
        typer.echo(text)


@app.command()
def encode(text: str = typer.Argument(..., help="Text to encode for storage")) -> None:
    """Encode text with the storage codec."""
    typer.echo(codec_encode(text))


@app.command()
def decode(text: str = typer.Argument(..., help="Encoded text to restore")) -> None:
    """Decode text produced by the encode command."""
    try:
        typer.echo(codec_decode(text))
    except ValueError as e:
        typer.echo(f"Error: not a valid encoded payload ({e})", err=True)
        raise typer.Exit(code=1) from e


@app.command()
def config() -> None:
    """Show current configuration."""
    for role in Role:
        typer.echo(f"{role.label}: {settings.roles.provider_for(role.value)}/{settings.roles.model_for(role.value)}")
    typer.echo(f"Base URL: {settings.llm.base_url or '(default)'}")
    typer.echo(f"Call Timeout: {settings.pipeline.call_timeout:g}s")
    typer.echo(f"Expected Categories: {', '.join(settings.pipeline.expected_categories)}")
    typer.echo(f"Log Level: {settings.logging.level}")


if __name__ == "__main__":
    app()
