"""Manneri command-line interface."""

from __future__ import annotations

from datetime import datetime
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from .config import dump_config, load_config
from .detector import ManneriDetector
from .events import EventType
from .exceptions import ManneriError
from .models import AnalysisResult, DiversificationPrompt, ManneriConfig, utc_now
from .persistence import JsonFilePersistenceProvider
from .prompts import PromptGenerator
from .transcript import read_transcript

app = typer.Typer(
    name="manneri",
    help="Manneri: conversation repetition detection for AI chat personas",
    add_completion=False,
)
console = Console()


def _get_version_string() -> str:
    """Get version string from package metadata."""
    try:
        return get_version("manneri")
    except PackageNotFoundError:
        return "unknown"


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"Manneri version {_get_version_string()}")
        raise typer.Exit


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Manneri: conversation repetition detection for AI chat personas."""


class ReplayClock:
    """Clock that follows message timestamps during a transcript replay."""

    def __init__(self) -> None:
        self.current: datetime | None = None

    def __call__(self) -> datetime:
        return self.current or utc_now()


@app.command()
def analyze(
    transcript: Path = typer.Argument(..., help="Transcript file (.jsonl or .json)"),
    config_path: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML detector configuration",
    ),
    language: str | None = typer.Option(
        None,
        "--language",
        "-l",
        help="Prompt language override",
    ),
    state: Path | None = typer.Option(
        None,
        "--state",
        help="JSON file to load detector state from and save it to",
    ),
    top: int = typer.Option(5, "--top", help="Number of top patterns to show"),
) -> None:
    """Replay a transcript and report where interventions would fire."""
    overrides: dict[str, Any] = {}
    try:
        if config_path:
            overrides = load_config(config_path).model_dump()
        if language:
            overrides["language"] = language
        messages = read_transcript(transcript)
    except ManneriError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if not messages:
        console.print("[yellow]Transcript contains no messages.[/yellow]")
        return

    clock = ReplayClock()
    detector = ManneriDetector(
        persistence=JsonFilePersistenceProvider(state) if state else None,
        clock=clock,
        load_on_start=False,
    )
    if state:
        detector.load()
    # Explicit options win over settings stored with the state
    if overrides:
        detector.update_config(overrides)
    detected: list[AnalysisResult] = []
    detector.on(EventType.PATTERN_DETECTED, detected.append)
    detector.on(
        EventType.SAVE_ERROR,
        lambda payload: console.print(f"[red]Save failed:[/red] {payload.error}"),
    )

    interventions: list[tuple[int, DiversificationPrompt]] = []
    for index, message in enumerate(messages, start=1):
        clock.current = message.timestamp
        prompt = detector.process(message)
        if prompt is not None:
            interventions.append((index, prompt))

    console.print("[bold blue]Manneri Analysis[/bold blue]")
    console.print(f"   {len(messages)} messages, {len(detected)} repetition signals\n")

    if interventions:
        table = Table(title="Interventions")
        table.add_column("Message", justify="right")
        table.add_column("Type")
        table.add_column("Priority")
        table.add_column("Prompt")
        table.add_column("Context", style="dim")
        for index, prompt in interventions:
            table.add_row(
                str(index),
                prompt.type.value,
                prompt.priority.value,
                prompt.content,
                prompt.context,
            )
        console.print(table)
    else:
        console.print("[green]No intervention needed.[/green]")

    patterns = detector.analyzer.pattern_detector.top_patterns(top)
    if patterns:
        table = Table(title="Top Patterns")
        table.add_column("Pattern")
        table.add_column("Frequency", justify="right")
        table.add_column("Last Seen")
        for pattern in patterns:
            table.add_row(
                pattern.pattern[:60],
                str(pattern.frequency),
                pattern.last_seen.isoformat(timespec="seconds"),
            )
        console.print(table)

    flow = detector.analyzer.message_flow(messages)
    roles = ", ".join(f"{role}: {count}" for role, count in flow.role_distribution.items())
    console.print(f"\nAverage length: {flow.average_length} chars ({roles})")
    console.print(f"Engagement score: {flow.engagement_score}")

    if state:
        detector.save()


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(Path("manneri.yaml"), help="Where to write the config"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing file"),
) -> None:
    """Write the default detector configuration as YAML."""
    if path.exists() and not force:
        console.print(f"[yellow]Warning:[/yellow] {path} already exists (use --force)")
        raise typer.Exit(1)

    try:
        dump_config(ManneriConfig(), path)
    except OSError as e:
        console.print(f"[red]Error:[/red] Failed to write config: {e}")
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] Default configuration written to {path}")


@app.command()
def prompts(
    language: str = typer.Option("ja", "--language", "-l", help="Prompt language"),
    config_path: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML detector configuration with custom prompts",
    ),
) -> None:
    """List the intervention templates for a language."""
    custom = None
    if config_path:
        try:
            custom = load_config(config_path).custom_prompts
        except ManneriError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from e

    generator = PromptGenerator(language=language, custom_prompts=custom)
    table = Table(title=f"Intervention Templates ({language})")
    table.add_column("#", justify="right")
    table.add_column("Template")
    for number, template in enumerate(generator.templates_for(language), start=1):
        table.add_row(str(number), template)
    console.print(table)


@app.command()
def version() -> None:
    """Show Manneri version."""
    console.print(f"Manneri version {_get_version_string()}")


if __name__ == "__main__":
    app()
