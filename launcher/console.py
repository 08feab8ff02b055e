"""Coloured console output: log formatting, banners and status tables."""

import logging
import sys
from typing import Iterable, Optional

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")


# ANSI color codes
class Color:
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    MAGENTA = '\033[35m'
    CYAN = '\033[36m'
    WHITE = '\033[37m'
    GRAY = '\033[90m'


_LEVEL_TAGS = {
    logging.DEBUG: ("[DEBUG]", Color.GRAY),
    logging.INFO: ("[INFO]", Color.CYAN),
    SUCCESS: ("[OK]", Color.GREEN),
    logging.WARNING: ("[WARN]", Color.YELLOW),
    logging.ERROR: ("[ERROR]", Color.RED),
    logging.CRITICAL: ("[ERROR]", Color.RED + Color.BOLD),
}


def colorize(text: str, color: str, enabled: bool = True) -> str:
    """Apply color to text if colors are enabled."""
    if not enabled:
        return text
    return f"{color}{text}{Color.RESET}"


class ColorFormatter(logging.Formatter):
    """Renders records as ``[TAG] message`` with a per-level color."""

    def __init__(self, color_enabled: bool = True):
        super().__init__()
        self.color_enabled = color_enabled

    def format(self, record: logging.LogRecord) -> str:
        tag, color = _LEVEL_TAGS.get(record.levelno, (f"[{record.levelname}]", Color.WHITE))
        message = f"{colorize(tag, color, self.color_enabled)} {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logging(verbose: bool = False, color_enabled: bool = True) -> None:
    """Route all launcher logging to stdout through ColorFormatter."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter(color_enabled))
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)


def print_title(title: str, color_enabled: bool = True) -> None:
    print(f"\n{colorize(title, Color.BOLD + Color.MAGENTA, color_enabled)}")


def print_ready_banner(
    backend_port: Optional[int],
    frontend_port: Optional[int],
    color_enabled: bool = True,
) -> None:
    """Print service URLs for whatever was started."""
    rule = "─" * 50
    ok = colorize("[OK]", Color.GREEN, color_enabled)
    print(f"\n{rule}")
    if backend_port is not None:
        print(f"{ok} Backend API: http://localhost:{backend_port}")
    if frontend_port is not None:
        print(f"{ok} Admin UI:    http://localhost:{frontend_port}")
    print(rule)
    print(f"{colorize('[INFO]', Color.CYAN, color_enabled)} Press Ctrl+C to stop all services\n")


def format_running(pids: Iterable[int], color_enabled: bool = True) -> str:
    pid_list = sorted(pids)
    if not pid_list:
        return colorize("not running", Color.DIM, color_enabled)
    joined = ", ".join(str(pid) for pid in pid_list)
    return f"{colorize('running', Color.GREEN, color_enabled)} (PID: {joined})"
