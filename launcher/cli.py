"""Command-line entry point: argument parsing and command dispatch."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from launcher.bootstrapper import DependencyBootstrapper
from launcher.config import DEFAULT_BACKEND_PORT, DEFAULT_FRONTEND_PORT, DEFAULT_HOST, Settings
from launcher.console import Color, colorize, format_running, print_title, setup_logging
from launcher.exceptions import LauncherError, ToolchainNotFoundError
from launcher.menu import EXIT, choose_command
from launcher.orchestrator import Orchestrator, SignalHandler, build_orchestrator
from launcher.platform_ops import PlatformProcessOps, detect_platform_ops

logger = logging.getLogger(__name__)

COMMANDS = ["dev", "prod", "backend", "frontend", "build", "install", "stop", "status", "help"]

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog='run.py',
        description='DS2API launcher: start, stop and bootstrap the backend and admin UI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  python run.py              Interactive menu
  python run.py dev          Development mode (backend + frontend)
  python run.py prod         Production mode (no reload)
  python run.py backend      Backend only (development mode)
  python run.py frontend     Frontend only
  python run.py build        Build the frontend
  python run.py install      Install all dependencies (creates .venv)
  python run.py stop         Stop services listening on the configured ports
  python run.py status       Show service status

Environment variables:
  PORT              Backend port (default: {DEFAULT_BACKEND_PORT})
  FRONTEND_PORT     Frontend dev server port (default: {DEFAULT_FRONTEND_PORT})
  HOST              Backend bind address (default: {DEFAULT_HOST})
  LOG_LEVEL         Backend log level (default: info)
  DS2API_ADMIN_KEY  Admin key passed to the backend (default: ds2api)

Virtual environment:
  Created at .venv/ on first install or start.
        """
    )
    parser.add_argument(
        'command',
        nargs='?',
        choices=COMMANDS,
        help='Operation to run (omit for the interactive menu)'
    )
    parser.add_argument(
        '--no-color',
        action='store_true',
        help='Disable colored output'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )
    return parser


def print_status(orchestrator: Orchestrator, color_enabled: bool = True) -> None:
    print(f"\n{colorize('Services:', Color.BOLD, color_enabled)}")
    for info in orchestrator.status():
        print(f"  {info.name} ({info.port}): {format_running(info.pids, color_enabled)}")
    print()


async def run_command(
    command: str,
    settings: Settings,
    ops: PlatformProcessOps,
    color_enabled: bool = True,
    orchestrator: Optional[Orchestrator] = None,
) -> int:
    """Run one operation and return the process exit code."""
    orchestrator = orchestrator or build_orchestrator(settings, ops, color_enabled)

    if command == "status":
        print_status(orchestrator, color_enabled)
        return EXIT_OK
    if command == "stop":
        print_title("========== Stop services ==========", color_enabled)
        await orchestrator.stop()
        return EXIT_OK
    if command == "build":
        await orchestrator.build()
        return EXIT_OK
    if command == "install":
        print_title("========== Install dependencies ==========", color_enabled)
        await orchestrator.install()
        return EXIT_OK

    runners = {
        "dev": ("Development mode", orchestrator.dev),
        "prod": ("Production mode", orchestrator.prod),
        "backend": ("Backend only (development mode)", orchestrator.backend_only),
        "frontend": ("Frontend only", orchestrator.frontend_only),
    }
    title, operation = runners[command]
    print_title(f"========== {title} ==========", color_enabled)

    signal_handler = SignalHandler(orchestrator)
    signal_handler.setup()
    try:
        await operation()
    finally:
        signal_handler.restore()
    return EXIT_OK


async def _run_safely(
    command: str,
    settings: Settings,
    ops: PlatformProcessOps,
    color_enabled: bool,
    verbose: bool,
) -> int:
    try:
        return await run_command(command, settings, ops, color_enabled)
    except LauncherError as e:
        logger.error(str(e))
        if verbose:
            import traceback
            traceback.print_exc()
        return EXIT_FAILURE


def main(argv: Optional[List[str]] = None, project_root: Optional[Path] = None) -> int:
    """Main entry point."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)
    color_enabled = not args.no_color and sys.stdout.isatty()
    setup_logging(args.verbose, color_enabled)

    if args.command == "help":
        parser.print_help()
        return EXIT_OK

    try:
        overrides = {"project_root": project_root} if project_root is not None else {}
        settings = Settings(**overrides)
    except ValidationError as e:
        logger.error("Invalid configuration:\n%s", e)
        return EXIT_CONFIG

    ops = detect_platform_ops()

    # Check required tools
    if DependencyBootstrapper(settings, ops).find_system_python() is None:
        logger.error(str(ToolchainNotFoundError(ops.python_candidates)))
        return EXIT_FAILURE

    command = args.command
    try:
        if command is None:
            command = choose_command(settings, ops, color_enabled)
            if command == EXIT:
                logger.info("Bye!")
                return EXIT_OK
        return asyncio.run(_run_safely(command, settings, ops, color_enabled, args.verbose))
    except KeyboardInterrupt:
        print()
        return EXIT_INTERRUPTED
