#!/usr/bin/env python3
"""Main entry point for clusterterm."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from textual.logging import TextualHandler

from .backend import XtermBackend
from .broadcaster import InputBroadcaster
from .config import Config, Settings, load_settings, load_symbols, locate_config
from .console import Console
from .diagnose import evaluate
from .errors import ClustertermError
from .expander import LaunchTarget, expand
from .hosts import parse_host
from .orchestrator import Orchestrator
from .resolver import Resolver
from .transport import Transport, transport_for_program

logger = logging.getLogger(__name__)

# ANSI colors for diagnostic output streams
STREAM_COLORS = {
    "stdout": "",
    "stderr": "\033[33m",  # Yellow
    "error": "\033[91m",  # Light Red
    "info": "\033[36m",  # Cyan
}
RESET = "\033[0m"


def _file_list(value: str) -> list[Path]:
    return [Path(p).expanduser() for p in value.split(",") if p]


def build_parser(prog: str | None = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Open terminals to many hosts at once and type into all of them",
    )
    parser.add_argument(
        "hosts",
        nargs="*",
        help="Hosts, clusters or tags to connect to ([user@]host[:port])",
    )
    parser.add_argument(
        "-A",
        "--expand-addresses",
        action="store_true",
        help="Open one session per address when a host resolves to several",
    )
    parser.add_argument(
        "-e",
        "--evaluate",
        metavar="HOST",
        help="Run the transport directly against HOST and show its output",
    )
    parser.add_argument(
        "-L",
        "--list",
        nargs="?",
        const="",
        metavar="NAME",
        help="List clusters and tags, or the hosts NAME resolves to",
    )
    parser.add_argument(
        "-Q", "--quiet", action="store_true", help="Terse output for --list"
    )
    parser.add_argument(
        "-C", "--config-file", type=Path, help="Use this settings file"
    )
    parser.add_argument(
        "-c",
        "--cluster-file",
        type=_file_list,
        default=[],
        help="Extra cluster files (comma separated)",
    )
    parser.add_argument(
        "-r",
        "--tag-file",
        type=_file_list,
        default=[],
        help="Extra tag files (comma separated)",
    )
    parser.add_argument("-l", "--username", help="Default user for hosts without one")
    parser.add_argument("-p", "--port", type=int, help="Default port for hosts without one")
    parser.add_argument("-o", "--options", help="Arguments passed to the transport")
    parser.add_argument("-a", "--action", help="Command to run in each session")
    parser.add_argument(
        "-K", "--autoclose", type=int, help="Seconds to wait before closing finished terminals"
    )
    parser.add_argument("-T", "--title", help="Title prefix for the terminal windows")
    parser.add_argument(
        "--transport",
        choices=[t.value for t in Transport],
        help="Override the transport chosen from the program name",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser


def setup_logging(debug: bool) -> None:
    """Log to stderr, or to the console's log while it is running."""
    handler = TextualHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[handler],
        force=True,
    )


def apply_overrides(
    settings: Settings, args: argparse.Namespace, transport: Transport
) -> Settings:
    """Command-line options win over the settings file."""
    t = settings.transport
    if args.username:
        t = replace(t, user=args.username)
    if args.port:
        t = replace(t, port=args.port)
    if args.action:
        t = replace(t, command=args.action)
    if args.options is not None:
        if transport is Transport.MOSH:
            t = replace(t, mosh_args=args.options)
        else:
            t = replace(t, ssh_args=args.options)

    changes: dict = {"transport": t}
    if args.autoclose is not None:
        changes["auto_close"] = args.autoclose
    if args.title:
        changes["title"] = args.title
    if args.expand_addresses:
        changes["expand_addresses"] = True
    changes["extra_cluster_files"] = settings.extra_cluster_files + tuple(args.cluster_file)
    changes["extra_tag_files"] = settings.extra_tag_files + tuple(args.tag_file)
    return replace(settings, **changes)


def load(args: argparse.Namespace, transport: Transport) -> Config:
    """Load settings and definitions once, as an immutable Config."""
    location = locate_config()
    settings = apply_overrides(
        load_settings(args.config_file, location), args, transport
    )
    symbols = load_symbols(
        location, settings.extra_cluster_files, settings.extra_tag_files
    )
    return Config(settings=settings, symbols=symbols, location=location)


def _print_list(resolver: Resolver, name: str, quiet: bool) -> None:
    tab, end = ("", " ") if quiet else ("\t", "\n")
    if not name:
        if not quiet:
            print("Available clusters and tags:")
        for symbol in resolver.list_symbols():
            print(f"{tab}{symbol}", end=end)
    else:
        if not quiet:
            print("Resolved to hosts:")
        for host in resolver.resolve(name):
            print(f"{tab}{host}", end=end)
    if quiet:
        print()


def _run_evaluate(config: Config, host_text: str, transport: Transport) -> int:
    host = parse_host(host_text)
    if host is None:
        print(f"Error: cannot parse host {host_text!r}", file=sys.stderr)
        return 1

    def on_output(stream: str, line: str) -> None:
        color = STREAM_COLORS.get(stream, "")
        out = sys.stdout if stream == "stdout" else sys.stderr
        print(f"{color}[{stream}]{RESET} {line}", file=out)

    target = LaunchTarget.from_host(host, transport)
    settings = config.settings
    return asyncio.run(evaluate(target, settings.transport, on_output, settings.macros))


def main(argv: list[str] | None = None, prog: str | None = None) -> int:
    """Main entry point."""
    prog = prog or Path(sys.argv[0]).name
    parser = build_parser(prog)
    args = parser.parse_args(argv)
    setup_logging(args.debug)

    transport = Transport(args.transport) if args.transport else transport_for_program(prog)

    # Load configuration and resolve names; failures here are fatal
    try:
        config = load(args, transport)
        resolver = Resolver(config)

        if args.list is not None:
            _print_list(resolver, args.list, args.quiet)
            return 0

        if args.evaluate:
            return _run_evaluate(config, args.evaluate, transport)

        hosts = resolver.resolve_many(args.hosts)
    except ClustertermError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    expansion = asyncio.run(
        expand(hosts, transport, expand_addresses=config.settings.expand_addresses)
    )
    if not expansion.targets:
        logger.warning("No hosts to connect to")
        return 0

    settings = config.settings
    backend = XtermBackend(settings)
    screen_size = None
    if settings.screen.width is None or settings.screen.height is None:
        width, height = asyncio.run(backend.screen_size())
        screen_size = (settings.screen.width or width, settings.screen.height or height)

    orchestrator = Orchestrator(backend, settings, screen_size=screen_size)
    broadcaster = InputBroadcaster(
        backend, orchestrator.registry, settings.macros, settings.transport.user
    )
    app = Console(
        orchestrator,
        broadcaster,
        expansion.targets,
        auto_quit=settings.auto_quit,
    )
    app.title = f"{settings.title} ({transport.value})"
    app.run()

    # Partial failures were reported as warnings and never change the exit code
    return 0


if __name__ == "__main__":
    sys.exit(main())
