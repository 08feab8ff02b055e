"""Platform-specific process operations.

All POSIX / Windows branching lives here. The rest of the launcher talks to a
``PlatformProcessOps`` instance chosen once by ``detect_platform_ops()``.
"""

import asyncio
import logging
import os
import platform
import shutil
import signal
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Set

from launcher.config import COMMAND_TIMEOUT
from launcher.exceptions import PortEnumerationError

logger = logging.getLogger(__name__)

_TCP_LISTEN_STATE = "0A"


class PlatformProcessOps(ABC):
    """Process and port primitives for one operating-system family."""

    name = "abstract"
    python_candidates: tuple[str, ...] = ()
    npm_command = "npm"

    def which(self, command: str) -> Optional[str]:
        return shutil.which(command)

    @abstractmethod
    def venv_executable(self, venv_dir: Path, name: str) -> Path:
        """Path of an executable inside a virtual environment."""

    @abstractmethod
    def spawn_options(self) -> Dict[str, Any]:
        """Extra keyword arguments for ``asyncio.create_subprocess_exec``."""

    @abstractmethod
    def list_listening_pids(self, port: int) -> Set[int]:
        """PIDs with a listening TCP socket on *port*.

        Raises PortEnumerationError when the socket table cannot be read.
        """

    @abstractmethod
    def terminate(self, pid: int) -> None:
        """Ask an external process to exit. Raises ProcessLookupError if gone."""

    @abstractmethod
    def force_kill(self, pid: int) -> None:
        """Kill an external process unconditionally. Raises ProcessLookupError if gone."""

    @abstractmethod
    def is_alive(self, pid: int) -> bool:
        """Whether a process with this PID still exists."""

    @abstractmethod
    def terminate_child(self, process: asyncio.subprocess.Process) -> None:
        """Gracefully stop a child we spawned, including its descendants."""

    @abstractmethod
    def kill_child(self, process: asyncio.subprocess.Process) -> None:
        """Forcefully stop a child we spawned, including its descendants."""


# ============================================================================
# POSIX (Linux, macOS)
# ============================================================================

class PosixProcessOps(PlatformProcessOps):
    """Signals and process groups; lsof with a /proc fallback for ports."""

    name = "posix"
    python_candidates = ("python3", "python")

    def __init__(self, proc_root: Path = Path("/proc")):
        self.proc_root = proc_root

    def venv_executable(self, venv_dir: Path, name: str) -> Path:
        return venv_dir / "bin" / name

    def spawn_options(self) -> Dict[str, Any]:
        # Own session so the whole process group can be signalled at shutdown
        return {"start_new_session": True}

    def list_listening_pids(self, port: int) -> Set[int]:
        try:
            result = subprocess.run(
                ["lsof", "-nP", f"-iTCP:{port}", "-sTCP:LISTEN", "-t"],
                capture_output=True,
                text=True,
                timeout=COMMAND_TIMEOUT,
            )
        except FileNotFoundError:
            return self._pids_from_proc(port)
        except (subprocess.SubprocessError, OSError) as exc:
            raise PortEnumerationError(f"lsof failed: {exc}") from exc

        # lsof exits 1 when nothing matches
        if result.returncode not in (0, 1):
            raise PortEnumerationError(
                result.stderr.strip() or f"lsof exited with {result.returncode}"
            )
        return {int(token) for token in result.stdout.split() if token.isdigit()}

    def _pids_from_proc(self, port: int) -> Set[int]:
        """Map listening socket inodes from /proc/net/tcp* to owning PIDs."""
        tables = [self.proc_root / "net" / name for name in ("tcp", "tcp6")]
        if not any(table.exists() for table in tables):
            raise PortEnumerationError("lsof is not installed and /proc/net/tcp is unavailable")

        hex_port = f"{port:04X}"
        inodes = set()
        for table in tables:
            try:
                lines = table.read_text().splitlines()[1:]  # skip header
            except OSError:
                continue
            for line in lines:
                fields = line.split()
                if len(fields) < 10:
                    continue
                local_port = fields[1].rsplit(":", 1)[-1]
                if local_port == hex_port and fields[3] == _TCP_LISTEN_STATE:
                    inodes.add(fields[9])
        if not inodes:
            return set()

        pids = set()
        for pid_dir in self.proc_root.iterdir():
            if not pid_dir.name.isdigit():
                continue
            try:
                for fd in (pid_dir / "fd").iterdir():
                    try:
                        link = os.readlink(fd)
                    except OSError:
                        continue
                    if link.startswith("socket:[") and link[8:-1] in inodes:
                        pids.add(int(pid_dir.name))
                        break
            except (PermissionError, FileNotFoundError):
                continue
        return pids

    def terminate(self, pid: int) -> None:
        os.kill(pid, signal.SIGTERM)

    def force_kill(self, pid: int) -> None:
        os.kill(pid, signal.SIGKILL)

    def is_alive(self, pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but owned by another user
            return True
        return True

    def terminate_child(self, process: asyncio.subprocess.Process) -> None:
        try:
            os.killpg(process.pid, signal.SIGTERM)
        except ProcessLookupError:
            raise
        except OSError:
            process.terminate()

    def kill_child(self, process: asyncio.subprocess.Process) -> None:
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            raise
        except OSError:
            process.kill()


# ============================================================================
# Windows
# ============================================================================

_TASKKILL_NOT_FOUND = 128


class WindowsProcessOps(PlatformProcessOps):
    """netstat for ports, taskkill for termination (``/T`` kills the tree)."""

    name = "windows"
    python_candidates = ("python", "python3", "py")
    npm_command = "npm.cmd"

    def venv_executable(self, venv_dir: Path, name: str) -> Path:
        return venv_dir / "Scripts" / f"{name}.exe"

    def spawn_options(self) -> Dict[str, Any]:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}  # type: ignore[attr-defined]

    def list_listening_pids(self, port: int) -> Set[int]:
        try:
            result = subprocess.run(
                ["netstat", "-ano"],
                capture_output=True,
                text=True,
                timeout=COMMAND_TIMEOUT,
            )
        except (subprocess.SubprocessError, OSError) as exc:
            raise PortEnumerationError(f"netstat failed: {exc}") from exc
        if result.returncode != 0:
            raise PortEnumerationError(
                result.stderr.strip() or f"netstat exited with {result.returncode}"
            )
        return parse_netstat_listeners(result.stdout, port)

    def _taskkill(self, *args: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["taskkill", *args],
            capture_output=True,
            text=True,
            timeout=COMMAND_TIMEOUT,
        )

    def _check_taskkill(self, pid: int, result: subprocess.CompletedProcess) -> None:
        if result.returncode == _TASKKILL_NOT_FOUND:
            raise ProcessLookupError(pid)
        if result.returncode != 0:
            raise OSError(result.stderr.strip() or f"taskkill exited with {result.returncode}")

    def terminate(self, pid: int) -> None:
        self._check_taskkill(pid, self._taskkill("/PID", str(pid)))

    def force_kill(self, pid: int) -> None:
        self._check_taskkill(pid, self._taskkill("/F", "/T", "/PID", str(pid)))

    def is_alive(self, pid: int) -> bool:
        try:
            result = subprocess.run(
                ["tasklist", "/FI", f"PID eq {pid}", "/NH", "/FO", "CSV"],
                capture_output=True,
                text=True,
                timeout=COMMAND_TIMEOUT,
            )
        except (subprocess.SubprocessError, OSError):
            # Unknown: assume alive so the caller escalates
            return True
        return f'"{pid}"' in result.stdout

    def terminate_child(self, process: asyncio.subprocess.Process) -> None:
        # Delivered to the child's process group (CREATE_NEW_PROCESS_GROUP)
        process.send_signal(signal.CTRL_BREAK_EVENT)  # type: ignore[attr-defined]

    def kill_child(self, process: asyncio.subprocess.Process) -> None:
        try:
            self.force_kill(process.pid)
        except OSError:
            process.kill()


def parse_netstat_listeners(output: str, port: int) -> Set[int]:
    """Extract PIDs of LISTENING TCP rows bound to *port* from ``netstat -ano``."""
    pids = set()
    suffix = f":{port}"
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 5 or not parts[0].upper().startswith("TCP"):
            continue
        local_address, state, pid = parts[1], parts[3], parts[4]
        if state.upper() != "LISTENING" or not local_address.endswith(suffix):
            continue
        if pid.isdigit() and pid != "0":
            pids.add(int(pid))
    return pids


def detect_platform_ops() -> PlatformProcessOps:
    """Choose the process operations for the running OS."""
    system = platform.system()
    ops: PlatformProcessOps = WindowsProcessOps() if system == "Windows" else PosixProcessOps()
    logger.debug("Using %s process operations (%s)", ops.name, system)
    return ops
