"""Interactive menu shown when the launcher runs without a command."""

import asyncio
from typing import Callable, List, Optional, Tuple

from launcher.config import Settings
from launcher.console import Color, colorize, format_running, print_title
from launcher.models import DependencyStatus, RunningServiceInfo
from launcher.orchestrator import build_orchestrator
from launcher.platform_ops import PlatformProcessOps

EXIT = "exit"
DEFAULT_CHOICE = "1"

MENU_CHOICES: List[Tuple[str, str, str]] = [
    ("1", "dev", "Development mode (backend + frontend hot reload)"),
    ("2", "backend", "Backend only (development mode)"),
    ("3", "frontend", "Frontend only"),
    ("4", "prod", "Production mode (backend only, no reload)"),
    ("5", "build", "Build frontend"),
    ("6", "install", "Install dependencies (create venv + install packages)"),
    ("7", "stop", "Stop all services"),
    ("8", "status", "Show service status"),
    ("0", EXIT, "Exit"),
]


def parse_choice(raw: str) -> Optional[str]:
    """Map menu input to a command name; empty input picks the default."""
    key = raw.strip() or DEFAULT_CHOICE
    for number, command, _ in MENU_CHOICES:
        if key == number:
            return command
    return None


def render_menu(
    settings: Settings,
    python: Optional[str],
    deps: DependencyStatus,
    running: List[RunningServiceInfo],
    color_enabled: bool = True,
) -> str:
    def c(text: str, color: str) -> str:
        return colorize(text, color, color_enabled)

    def installed(ok: bool) -> str:
        return c("installed", Color.GREEN) if ok else c("not installed", Color.YELLOW)

    lines = [
        "",
        c("Environment:", Color.BOLD),
        f"  Python:        {python or c('not found', Color.RED)}",
        f"  Virtualenv:    {c('created', Color.GREEN) if deps.venv else c('not created', Color.YELLOW)} ({settings.venv_dir})",
        f"  Backend deps:  {installed(deps.backend)}",
    ]
    if deps.frontend is not None:
        lines.append(f"  Frontend deps: {installed(deps.frontend)}")

    lines += ["", c("Services:", Color.BOLD)]
    for info in running:
        lines.append(f"  {info.name} ({info.port}): {format_running(info.pids, color_enabled)}")

    lines += [
        "",
        c("Environment variables:", Color.BOLD),
        f"  DS2API_ADMIN_KEY: {c(settings.ds2api_admin_key, Color.CYAN)}",
        f"  PORT:             {c(str(settings.port), Color.CYAN)}",
        f"  FRONTEND_PORT:    {c(str(settings.frontend_port), Color.CYAN)}",
        f"  HOST:             {c(settings.host, Color.CYAN)}",
        f"  LOG_LEVEL:        {c(settings.log_level, Color.CYAN)}",
        c("  Override: DS2API_ADMIN_KEY=your-key python run.py", Color.DIM),
        "",
        c("Choose an action:", Color.BOLD),
        "",
    ]
    for number, command, label in MENU_CHOICES:
        color = Color.RED if command == "stop" else Color.CYAN
        lines.append(f"  {c(number + '.', color)} {label}")
    lines.append("")
    return "\n".join(lines)


def choose_command(
    settings: Settings,
    ops: PlatformProcessOps,
    color_enabled: bool = True,
    read: Callable[[str], str] = input,
) -> str:
    """Show environment and service status, then prompt until a valid choice."""
    orchestrator = build_orchestrator(settings, ops, color_enabled)
    deps = asyncio.run(orchestrator.dependency_status())
    running = orchestrator.status()
    python = orchestrator.bootstrapper.find_system_python()

    print_title("DS2API Launcher", color_enabled)
    print(render_menu(settings, python, deps, running, color_enabled))

    prompt = colorize(f"Enter a choice [{DEFAULT_CHOICE}]: ", Color.YELLOW, color_enabled)
    while True:
        command = parse_choice(read(prompt))
        if command is not None:
            return command
        print(colorize("[WARN]", Color.YELLOW, color_enabled) + " Invalid choice")
