"""CLI interface for the CI board aggregation core."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ci_board import admin
from ci_board.cards import card_to_dict
from ci_board.config import load_config
from ci_board.context import BoardContext, build_context
from ci_board.errors import BoardError

console = Console()


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # Set up logging
    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )

    if not hasattr(args, "func"):
        parser.print_help()
        return

    try:
        args.func(args)
    except (BoardError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ci-board",
        description="Aggregate CI server data into dashboard cards",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug)",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config.yaml (default: config.yaml)",
    )

    subparsers = parser.add_subparsers(title="commands", dest="command")

    init_parser = subparsers.add_parser("init", help="Register parsers and sync compatibility records")
    init_parser.set_defaults(func=_cmd_init)

    refresh_parser = subparsers.add_parser("refresh", help="Discover new sources on all servers")
    refresh_parser.set_defaults(func=_cmd_refresh)

    sources_parser = subparsers.add_parser("sources", help="List servers, sources and compatibilities")
    sources_parser.set_defaults(func=_cmd_sources)

    add_parser = subparsers.add_parser("server-add", help="Add a server")
    add_parser.add_argument("name")
    add_parser.add_argument("url")
    add_parser.add_argument("type", help="Server type matched against parser capabilities")
    add_parser.add_argument(
        "--arg",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Server argument such as token=... (repeatable)",
    )
    add_parser.add_argument("--disabled", action="store_true")
    add_parser.set_defaults(func=_cmd_server_add)

    remove_parser = subparsers.add_parser("server-remove", help="Remove a server and its sources")
    remove_parser.add_argument("id", type=int)
    remove_parser.set_defaults(func=_cmd_server_remove)

    data_parser = subparsers.add_parser("data", help="Print card data for sources as JSON")
    data_parser.add_argument("ids", type=int, nargs="+", metavar="SOURCE_ID")
    data_parser.add_argument("--card", required=True, help='Card type, e.g. "Line Graph"')
    data_parser.set_defaults(func=_cmd_data)

    options_parser = subparsers.add_parser("options", help="Print options of a source as JSON")
    options_parser.add_argument("id", type=int, metavar="SOURCE_ID")
    options_parser.set_defaults(func=_cmd_options)

    return parser


def _load_context(args: argparse.Namespace) -> BoardContext:
    config = load_config(args.config)
    return build_context(config)


def _parse_arguments(raw: List[str]) -> dict:
    result = {}
    for item in raw:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"Server argument '{item}' must look like KEY=VALUE")
        result[key] = value
    return result


# ------------------------------------------------------------------
# Command handlers
# ------------------------------------------------------------------


def _cmd_init(args: argparse.Namespace) -> None:
    ctx = _load_context(args)
    console.print(f"[bold]{len(ctx.registry)} parser(s) registered[/bold]")

    table = Table(title="Compatibility")
    table.add_column("Card type", style="cyan")
    table.add_column("Aggregated")
    table.add_column("Source types", style="green")
    aggregated = ctx.index.card_kinds
    for card, kinds in ctx.index.pairs():
        table.add_row(card, "yes" if aggregated.get(card) else "no", ", ".join(kinds))
    console.print(table)


def _cmd_refresh(args: argparse.Namespace) -> None:
    ctx = _load_context(args)
    report = asyncio.run(ctx.service.refresh_sources())

    console.print(f"[green]{len(report.created)} new source(s)[/green]")
    for source in report.created:
        console.print(f"  {source.id}: {source.name} ({source.address})")
    for name in report.skipped:
        console.print(f"  [yellow]skipped disabled server {name}[/yellow]")
    for name, message in report.errors.items():
        console.print(f"  [red]{name}: {message}[/red]")


def _cmd_sources(args: argparse.Namespace) -> None:
    ctx = _load_context(args)
    data = admin.overview(ctx.store)

    servers = Table(title="Servers")
    servers.add_column("ID", justify="right")
    servers.add_column("Name", style="cyan")
    servers.add_column("Type")
    servers.add_column("URL")
    servers.add_column("Disabled")
    for s in data["servers"]:
        servers.add_row(str(s.id), s.name, s.type, s.url, "yes" if s.disabled else "no")
    console.print(servers)

    sources = Table(title="Sources")
    sources.add_column("ID", justify="right")
    sources.add_column("Name", style="cyan")
    sources.add_column("Type")
    sources.add_column("Server")
    sources.add_column("Address")
    for s in data["sources"]:
        sources.add_row(str(s.id), s.name, s.type_name or "-", s.server.name, s.address)
    console.print(sources)

    comps = Table(title="Compatibilities")
    comps.add_column("Card type", style="cyan")
    comps.add_column("Source types", style="green")
    for c in data["compatibilities"]:
        comps.add_row(c.card_type.name, ", ".join(c.source_type_names))
    console.print(comps)


def _cmd_server_add(args: argparse.Namespace) -> None:
    ctx = _load_context(args)
    server = admin.create_server(
        ctx.store,
        name=args.name,
        url=args.url,
        kind=args.type,
        disabled=args.disabled,
        arguments=_parse_arguments(args.arg),
    )
    console.print(f"[green]Created server {server.id}: {server.name} ({server.url})[/green]")


def _cmd_server_remove(args: argparse.Namespace) -> None:
    ctx = _load_context(args)
    admin.delete_server(ctx.store, args.id)
    console.print(f"Removed server {args.id}")


def _cmd_data(args: argparse.Namespace) -> None:
    ctx = _load_context(args)
    sources = [admin.get_source(ctx.store, sid) for sid in args.ids]
    payloads = asyncio.run(ctx.service.get_source_data(sources, args.card))
    console.print_json(json.dumps([card_to_dict(p) for p in payloads], ensure_ascii=False))


def _cmd_options(args: argparse.Namespace) -> None:
    ctx = _load_context(args)
    options = asyncio.run(ctx.service.get_options(admin.get_source(ctx.store, args.id)))
    console.print_json(json.dumps(options.to_dict(), ensure_ascii=False))
