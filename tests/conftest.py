"""Shared fixtures for launcher tests.

Provides a scriptable platform-ops double, a command runner that simulates
venv/pip/npm effects on disk, and factories for settings and descriptors
backed by real short-lived Python child processes.
"""

import asyncio
import sys
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set
from unittest.mock import MagicMock, patch

import pytest

# Ensure project root is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from launcher.config import Settings
from launcher.models import ServiceDescriptor, ServiceKind
from launcher.platform_ops import PosixProcessOps

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX signals and process groups")


# ---------------------------------------------------------------------------
# Platform ops double
# ---------------------------------------------------------------------------

class FakeOps(PosixProcessOps):
    """POSIX ops with scripted port table, PATH and external processes.

    Child-process methods (spawn_options, terminate_child, kill_child) are the
    real POSIX ones so supervisor tests can drive genuine children.
    """

    def __init__(
        self,
        listeners: Optional[Dict[int, Iterable[int]]] = None,
        available: Iterable[str] = ("python3",),
        ignores_term: Iterable[int] = (),
    ):
        super().__init__()
        self.listeners: Dict[int, Set[int]] = {port: set(pids) for port, pids in (listeners or {}).items()}
        self.available = set(available)
        self.alive: Set[int] = {pid for pids in self.listeners.values() for pid in pids}
        self.ignores_term = set(ignores_term)
        self.enumeration_error: Optional[Exception] = None
        self.events: List[tuple] = []

    def which(self, command: str) -> Optional[str]:
        return f"/usr/bin/{command}" if command in self.available else None

    def list_listening_pids(self, port: int) -> Set[int]:
        if self.enumeration_error is not None:
            raise self.enumeration_error
        return set(self.listeners.get(port, ()))

    def _exit(self, pid: int) -> None:
        self.alive.discard(pid)
        for pids in self.listeners.values():
            pids.discard(pid)

    def terminate(self, pid: int) -> None:
        self.events.append(("terminate", pid, time.monotonic()))
        if pid not in self.alive:
            raise ProcessLookupError(pid)
        if pid not in self.ignores_term:
            self._exit(pid)

    def force_kill(self, pid: int) -> None:
        self.events.append(("force_kill", pid, time.monotonic()))
        if pid not in self.alive:
            raise ProcessLookupError(pid)
        self._exit(pid)

    def is_alive(self, pid: int) -> bool:
        return pid in self.alive

    def event_names(self, pid: int) -> List[str]:
        return [name for name, event_pid, _ in self.events if event_pid == pid]


# ---------------------------------------------------------------------------
# Command runner double
# ---------------------------------------------------------------------------

class FakeMachine:
    """CommandRunner that simulates venv / pip / npm side effects on disk.

    Steps listed in *failures* exit with code 1 instead.
    """

    def __init__(self, failures: Iterable[str] = ()):
        self.failures = set(failures)
        self.calls: List[List[str]] = []
        self.backend_installed = False

    @staticmethod
    def classify(argv: List[str]) -> str:
        if "-m" in argv and "venv" in argv:
            return "venv"
        if "pip" in argv:
            return "pip"
        if "-c" in argv:
            return "probe"
        if argv[1:] == ["install"]:
            return "npm install"
        if argv[1:3] == ["run", "build"]:
            return "build"
        return "other"

    @property
    def steps(self) -> List[str]:
        return [self.classify(argv) for argv in self.calls]

    async def run(self, argv, cwd=None, quiet=False) -> int:
        argv = [str(arg) for arg in argv]
        self.calls.append(argv)
        step = self.classify(argv)
        if step in self.failures:
            return 1
        if step == "venv":
            python = Path(argv[-1]) / "bin" / "python"
            python.parent.mkdir(parents=True, exist_ok=True)
            python.touch()
        elif step == "pip":
            self.backend_installed = True
        elif step == "probe":
            return 0 if self.backend_installed else 1
        elif step == "npm install":
            (Path(cwd) / "node_modules").mkdir(exist_ok=True)
        return 0


class StubBootstrapper:
    """Bootstrapper double for supervisor/orchestrator tests."""

    def __init__(self, runner=None):
        self.runner = runner or FakeMachine()
        self.ensured: List[ServiceKind] = []
        self.error: Optional[Exception] = None

    async def ensure(self, kind: ServiceKind) -> None:
        self.ensured.append(kind)
        if self.error is not None:
            raise self.error

    async def ensure_frontend_dependencies(self) -> None:
        self.ensured.append(ServiceKind.FRONTEND)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def settings_factory(tmp_path, monkeypatch):
    """Settings rooted in tmp_path, ignoring the host's environment and .env.

    Usage:
        settings = settings_factory(with_frontend=True, port=6001)
    """
    for name in ("PORT", "FRONTEND_PORT", "HOST", "LOG_LEVEL", "DS2API_ADMIN_KEY", "PROJECT_ROOT"):
        monkeypatch.delenv(name, raising=False)

    def _factory(with_frontend: bool = False, **overrides) -> Settings:
        if with_frontend:
            (tmp_path / "webui").mkdir(exist_ok=True)
        overrides.setdefault("project_root", tmp_path)
        return Settings(_env_file=None, **overrides)
    return _factory


@pytest.fixture
def settings(settings_factory) -> Settings:
    return settings_factory()


@pytest.fixture
def sleeper(tmp_path):
    """Factory for descriptors that run a sleeping Python child.

    ``ignore_term=True`` makes the child ignore SIGTERM; it touches
    ``<name>.ready`` in tmp_path once the handler is installed.
    """
    def _factory(
        name: str = "backend",
        kind: ServiceKind = ServiceKind.BACKEND,
        port: int = 5001,
        ignore_term: bool = False,
        seconds: float = 30,
    ) -> ServiceDescriptor:
        ready = tmp_path / f"{name}.ready"
        code = "import pathlib, signal, time\n"
        if ignore_term:
            code += "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        code += f"pathlib.Path({str(ready)!r}).touch()\n"
        code += f"time.sleep({seconds})\n"
        return ServiceDescriptor(
            name=name,
            kind=kind,
            command=(sys.executable, "-c", code),
            working_directory=tmp_path,
            listen_port=port,
        )
    return _factory


async def wait_until(predicate, timeout: float = 10.0, what: str = "condition") -> None:
    """Poll *predicate* on the event loop until it is true."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError(f"{what} not reached within {timeout}s")
        await asyncio.sleep(0.02)


async def wait_for_file(path: Path, timeout: float = 10.0) -> None:
    await wait_until(path.exists, timeout, what=str(path))


# ---------------------------------------------------------------------------
# Subprocess mock fixture
# ---------------------------------------------------------------------------

def make_result(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    """Create a mock subprocess.CompletedProcess."""
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


@pytest.fixture
def mock_subprocess():
    """Patch subprocess.run in platform_ops with a configurable MagicMock.

    The mock returns returncode=0 and empty stdout/stderr by default.
    Tests can override via mock_subprocess.return_value or side_effect.
    """
    with patch("launcher.platform_ops.subprocess.run", return_value=make_result()) as mock_run:
        yield mock_run
