"""CLI interface for Feed Inbox using Typer."""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import typer
from typing_extensions import Annotated

from . import __version__
from .config import create_example_config, load_config
from .main import FeedInboxApp, error_envelope


app = typer.Typer(
    name="feed-inbox",
    help="RSS/Atom feed subscription and reading CLI tool",
    add_completion=False,
)

Payload = Dict[str, Any]
Render = Callable[[Payload], str]

JsonOption = Annotated[bool, typer.Option("--json", "-j", help="Print the JSON response envelope")]
QuietOption = Annotated[bool, typer.Option("--quiet", "-q", help="Print bare ids and counts only")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show detailed output")]
ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file")]


def _run(
    command: Callable[[FeedInboxApp], Payload],
    render: Render,
    json_output: bool,
    config_file: Optional[Path],
    verbose: bool = False,
    quiet: bool = False,
    render_quiet: Optional[Render] = None,
) -> None:
    """Run one command against a fresh app and print its outcome."""
    try:
        app_instance = FeedInboxApp(config_file, verbose=verbose)
        try:
            payload = command(app_instance)
        finally:
            app_instance.close()
    except Exception as e:
        if json_output:
            typer.echo(json.dumps(error_envelope(e), ensure_ascii=False))
        elif quiet:
            typer.echo(str(e), err=True)
        else:
            typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(payload, ensure_ascii=False))
    elif quiet:
        text = (render_quiet or render)(payload)
        if text:
            typer.echo(text)
    else:
        typer.echo(render(payload))


def _ids(payload: Payload) -> str:
    return "\n".join(str(item["id"]) for item in payload["items"])


def _render_entries(payload: Payload) -> str:
    lines = [f"{payload['count']} new entries"]
    for item in payload["items"]:
        marker = " " if item["read"] else "*"
        lines.append(f"  {marker} [{item['id']}] {item['title']} ({item['feed']}, {item['published']})")
    for failure in payload.get("failures", []):
        lines.append(f"  ✗ feed #{failure['feed_id']} {failure['url']}: {failure['error']}")
    return "\n".join(lines)


@app.command()
def add(
    url: Annotated[str, typer.Argument(help="Feed URL")],
    name: Annotated[Optional[str], typer.Option("--name", "-n", help="Display name")] = None,
    json_output: JsonOption = False,
    quiet: QuietOption = False,
    verbose: VerboseOption = False,
    config_file: ConfigOption = None,
) -> None:
    """Subscribe to a feed."""
    _run(
        lambda a: a.add(url, name),
        lambda p: f"✓ Added feed #{p['id']}: {p['item']['name']}",
        json_output,
        config_file,
        verbose,
        quiet,
        lambda p: str(p["id"]),
    )


@app.command("list")
def list_feeds(
    json_output: JsonOption = False,
    quiet: QuietOption = False,
    verbose: VerboseOption = False,
    config_file: ConfigOption = None,
) -> None:
    """List subscribed feeds."""
    _run(
        lambda a: a.list(),
        lambda p: "\n".join(
            [f"{p['count']} feeds"] + [f"  {f['id']} {f['name']} ({f['url']})" for f in p["items"]]
        ),
        json_output,
        config_file,
        verbose,
        quiet,
        _ids,
    )


@app.command()
def remove(
    ref: Annotated[str, typer.Argument(help="Feed id or name")],
    json_output: JsonOption = False,
    quiet: QuietOption = False,
    verbose: VerboseOption = False,
    config_file: ConfigOption = None,
) -> None:
    """Unsubscribe from a feed and delete its entries."""
    _run(
        lambda a: a.remove(ref),
        lambda p: f"✓ Removed feed #{p['id']}",
        json_output,
        config_file,
        verbose,
        quiet,
        lambda p: str(p["id"]),
    )


@app.command()
def fetch(
    ref: Annotated[Optional[str], typer.Argument(help="Feed id or name (all feeds if omitted)")] = None,
    limit: Annotated[Optional[int], typer.Option("--limit", "-l", help="Maximum entries to list")] = None,
    unread: Annotated[bool, typer.Option("--unread", help="Only list unread entries")] = False,
    json_output: JsonOption = False,
    quiet: QuietOption = False,
    verbose: VerboseOption = False,
    config_file: ConfigOption = None,
) -> None:
    """Fetch feeds, store new entries and list stored ones."""
    _run(
        lambda a: a.fetch(ref, limit=limit, unread_only=unread),
        _render_entries,
        json_output,
        config_file,
        verbose,
        quiet,
        _ids,
    )


@app.command()
def read(
    entry_id: Annotated[int, typer.Argument(help="Entry id")],
    json_output: JsonOption = False,
    quiet: QuietOption = False,
    verbose: VerboseOption = False,
    config_file: ConfigOption = None,
) -> None:
    """Show an entry and mark it read."""
    _run(
        lambda a: a.read(entry_id),
        lambda p: "\n".join(
            (p["item"]["title"], p["item"]["link"], p["item"]["published"], "", p["item"]["summary"])
        ).rstrip(),
        json_output,
        config_file,
        verbose,
        quiet,
        lambda p: str(p["item"]["id"]),
    )


@app.command("mark-read")
def mark_read(
    ref: Annotated[str, typer.Argument(help="Feed id or name")],
    json_output: JsonOption = False,
    quiet: QuietOption = False,
    verbose: VerboseOption = False,
    config_file: ConfigOption = None,
) -> None:
    """Mark every entry of a feed read."""
    _run(
        lambda a: a.mark_read_all(ref),
        lambda p: f"✓ {p['message']}",
        json_output,
        config_file,
        verbose,
        quiet,
        lambda p: str(p["count"]),
    )


@app.command()
def export(
    fmt: Annotated[str, typer.Option("--format", "-f", help="opml or json")] = "json",
    json_output: JsonOption = False,
    quiet: QuietOption = False,
    verbose: VerboseOption = False,
    config_file: ConfigOption = None,
) -> None:
    """Export subscriptions."""
    _run(
        lambda a: a.export(fmt),
        lambda p: p["document"] if isinstance(p["document"], str) else json.dumps(p["document"], indent=2),
        json_output,
        config_file,
        verbose,
        quiet,
    )


@app.command("import")
def import_(
    file: Annotated[Path, typer.Argument(help="OPML or JSON snapshot file", exists=True, dir_okay=False)],
    json_output: JsonOption = False,
    quiet: QuietOption = False,
    verbose: VerboseOption = False,
    config_file: ConfigOption = None,
) -> None:
    """Import subscriptions from an OPML or JSON snapshot file."""
    _run(
        lambda a: a.import_feeds(file.read_bytes()),
        lambda p: f"✓ Imported feeds: {p['added']} added, {p['skipped']} skipped, {p['malformed']} malformed",
        json_output,
        config_file,
        verbose,
        quiet,
        lambda p: str(p["added"]),
    )


@app.command()
def info(
    json_output: JsonOption = False,
    quiet: QuietOption = False,
    verbose: VerboseOption = False,
    config_file: ConfigOption = None,
) -> None:
    """Show version, storage locations and counts."""
    _run(
        lambda a: a.info(),
        lambda p: "\n".join(
            [f"Feed Inbox v{__version__}"] + [f"  {key}: {value}" for key, value in p["item"].items()]
        ),
        json_output,
        config_file,
        verbose,
        quiet,
        lambda p: p["item"]["version"],
    )


@app.command()
def config(
    show: Annotated[bool, typer.Option("--show", help="Show current config")] = False,
    example: Annotated[bool, typer.Option("--example", help="Generate example config")] = False,
    config_file: ConfigOption = None,
) -> None:
    """Manage Feed Inbox configuration."""
    if example:
        typer.echo(create_example_config())
    elif show:
        try:
            config_obj = load_config(config_file)
            import yaml
            typer.echo(yaml.dump(config_obj.model_dump(exclude_none=True), default_flow_style=False, indent=2))
        except Exception as e:
            typer.echo(f"✗ Error loading config: {e}", err=True)
            raise typer.Exit(1)
    else:
        typer.echo("Use --show to view config or --example to generate example")


if __name__ == "__main__":
    app()
