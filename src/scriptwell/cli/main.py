"""Command-line entry point.

    scriptwell run fix.ai.yaml -p file=app.js
    scriptwell send "TypeError: db.execute is not a function at routes/main.js:45"
    scriptwell classify "add dark mode to the settings page"
    scriptwell blueprint . --save
    scriptwell match src/app.js old_snippet.txt --line 40
"""

import asyncio
import json
from collections.abc import AsyncIterator
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from scriptwell.agent import Agent
from scriptwell.analysis.dependencies import CodeDependencyAnalyzer
from scriptwell.analysis.ignore import IgnoreList
from scriptwell.analysis.project import restore_or_scan
from scriptwell.classify.request import RequestClassifier, routing_info
from scriptwell.cli.error_handler import handle_error
from scriptwell.engine.engine import EngineServices, ScriptEngine
from scriptwell.engine.events import AgentEvent, EventType
from scriptwell.foundation.config import get_config, load_config
from scriptwell.foundation.errors import ScriptwellError
from scriptwell.foundation.logging import configure_logging
from scriptwell.matching.fuzzy import find_best_match
from scriptwell.models.client import ApiModel
from scriptwell.models.mock import MockModel
from scriptwell.models.protocol import ModelProtocol

console = Console()


def _model(mock_responses: tuple[str, ...], workspace: Path) -> ModelProtocol:
    if mock_responses:
        return MockModel(list(mock_responses))
    try:
        return ApiModel(get_config().model, workspace=str(workspace))
    except ScriptwellError as e:
        handle_error(e)


def _render_event(event: AgentEvent) -> None:
    if event.type is EventType.CHUNK:
        console.print(event.text, markup=False, highlight=False)
    elif event.type is EventType.TOOL_CALL:
        call = event.data["call"]
        console.print(f"[cyan]→ {call.name}[/cyan] [dim]{json.dumps(call.args)[:120]}[/dim]")
    elif event.type is EventType.TOOL_RESULT:
        result = event.data["result"]
        style = "green" if result.success else "red"
        console.print(f"[{style}]← {event.data['call'].name}[/{style}] {escape(result.display_text)}")
    elif event.type is EventType.KEYS_EXHAUSTED:
        console.print(
            f"[yellow]All API keys are rate limited. Retry in {event.data['retry_after']:.0f}s.[/yellow]"
        )
    elif event.type is EventType.ERROR:
        label = "Incomplete" if event.data.get("incomplete") else "Error"
        console.print(f"[red]{label}:[/red] {escape(event.data['message'])}")


async def _drain(model: ModelProtocol, events: AsyncIterator[AgentEvent]) -> bool:
    """Print every event; False if the run ended in an error."""
    ok = True
    try:
        async for event in events:
            _render_event(event)
            if event.type in (EventType.ERROR, EventType.KEYS_EXHAUSTED):
                ok = False
    finally:
        if isinstance(model, ApiModel):
            await model.aclose()
    return ok


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="Config file")
@click.option("--no-log-file", is_flag=True, help="Do not write a session log under .scriptwell/logs")
@click.version_option(package_name="scriptwell")
def main(debug: bool, config_path: str | None, no_log_file: bool) -> None:
    """Scriptwell - run agentic .ai.yaml scripts against a workspace."""
    try:
        load_config(config_path)
    except ScriptwellError as e:
        handle_error(e)
    configure_logging(debug=debug, persist=not no_log_file)


@main.command("run")
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.option("-p", "--param", "params", multiple=True, help="Input variable as key=value")
@click.option("-w", "--workspace", type=click.Path(file_okay=False), default=".", help="Workspace root")
@click.option("--mock-response", "mock_responses", multiple=True, hidden=True)
def run_cmd(script: str, params: tuple[str, ...], workspace: str, mock_responses: tuple[str, ...]) -> None:
    """Run a script file."""
    variables: dict[str, object] = {}
    for param in params:
        if "=" not in param:
            raise click.BadParameter(f"expected key=value, got {param!r}", param_hint="--param")
        key, _, value = param.partition("=")
        variables[key.strip()] = value

    root = Path(workspace).resolve()
    services = EngineServices.create(root)
    try:
        loaded = services.loader.load(script)
    except ScriptwellError as e:
        handle_error(e)
    model = _model(mock_responses, root)
    engine = ScriptEngine(model, services)
    if not asyncio.run(_drain(model, engine.stream(loaded, variables))):
        raise SystemExit(1)


@main.command("send")
@click.argument("message")
@click.option("--script", "script_path", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("-w", "--workspace", type=click.Path(file_okay=False), default=".", help="Workspace root")
@click.option("--mock-response", "mock_responses", multiple=True, hidden=True)
def send_cmd(message: str, script_path: str | None, workspace: str, mock_responses: tuple[str, ...]) -> None:
    """Classify MESSAGE, route it to a script and run it."""
    root = Path(workspace).resolve()
    model = _model(mock_responses, root)
    agent = Agent(model, EngineServices.create(root))
    if not asyncio.run(_drain(model, agent.send_message(message, script_path=script_path))):
        raise SystemExit(1)


@main.command("classify")
@click.argument("message")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def classify_cmd(message: str, json_output: bool) -> None:
    """Show how MESSAGE would be classified and routed (rules only)."""
    result = RequestClassifier().classify_with_rules(message)
    route = routing_info(result)
    if json_output:
        click.echo(json.dumps({**result.to_dict(), "route": route}, indent=2))
        return

    table = Table(show_header=False, box=None)
    table.add_row("Intent", f"[bold]{result.intent.value}[/bold]")
    table.add_row("Confidence", f"{result.confidence:.2f}")
    table.add_row("Script", route["script"])
    if result.error_indicators:
        table.add_row("Error indicators", ", ".join(result.error_indicators))
    if result.upgrade_indicators:
        table.add_row("Upgrade indicators", ", ".join(result.upgrade_indicators))
    for loc in result.locations:
        table.add_row("Location", f"{loc.file_path}:{loc.line}")
    console.print(table)


@main.command("blueprint")
@click.argument("root", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("--save", is_flag=True, help="Persist the analysis snapshot")
@click.option("--max-files", type=int, default=None, help="Limit the files listed")
def blueprint_cmd(root: str, save: bool, max_files: int | None) -> None:
    """Print the dependency blueprint of a workspace."""
    config = get_config().analysis
    workspace = Path(root).resolve()
    analyzer = CodeDependencyAnalyzer(max_file_bytes=config.max_file_bytes)
    ignore = IgnoreList.for_workspace(workspace, config.ignore_file)
    if save:
        snapshot = workspace / config.snapshot_path
        restore_or_scan(analyzer, workspace, snapshot, ignore=ignore, refresh=True)
    else:
        analyzer.scan_workspace(workspace, ignore)
    click.echo(analyzer.generate_blueprint(workspace, max_files=max_files or config.max_blueprint_files))
    if save:
        console.print(f"[dim]Saved {config.snapshot_path}[/dim]")


@main.command("match")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("old_text_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--line", type=int, default=None, help="1-based line where the text is expected")
@click.option("--threshold", type=float, default=None, help="Minimum similarity")
def match_cmd(file: str, old_text_file: str, line: int | None, threshold: float | None) -> None:
    """Locate the text of OLD_TEXT_FILE inside FILE."""
    content = Path(file).read_text(encoding="utf-8")
    old = Path(old_text_file).read_text(encoding="utf-8")
    try:
        match = find_best_match(content, old, hint_line=line, min_similarity=threshold)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="OLD_TEXT_FILE") from e
    if match is None:
        console.print("[red]No match above the similarity threshold.[/red]")
        raise SystemExit(1)
    console.print(
        f"Lines {match.start_line}-{match.end_line} "
        f"similarity {match.similarity:.3f} ({match.strategy}, distance {match.distance})"
    )
    console.print(match.matched_text, markup=False, highlight=False)
