"""Data types shared by the supervisor, locator and orchestrator."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional


class ServiceKind(str, Enum):
    """Which dependency set a service needs before it can start."""

    BACKEND = "backend"
    FRONTEND = "frontend"


@dataclass(frozen=True)
class ServiceDescriptor:
    """Immutable definition of a launchable service."""

    name: str
    kind: ServiceKind
    command: tuple[str, ...]
    working_directory: Path
    listen_port: int
    environment_overrides: Mapping[str, str] = field(default_factory=dict)
    dev_mode_extra_args: tuple[str, ...] = ()

    def argv(self, dev_mode: bool) -> list[str]:
        args = list(self.command)
        if dev_mode:
            args.extend(self.dev_mode_extra_args)
        return args


@dataclass
class ProcessHandle:
    """A child process spawned and tracked by the supervisor."""

    descriptor: ServiceDescriptor
    process: asyncio.subprocess.Process
    started_at: float
    killed: bool = False

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    @property
    def is_alive(self) -> bool:
        return self.process.returncode is None


@dataclass(frozen=True)
class RunningServiceInfo:
    """Snapshot of the processes listening on a service's port."""

    name: str
    port: int
    pids: frozenset[int] = frozenset()

    @property
    def is_running(self) -> bool:
        return bool(self.pids)


@dataclass
class DependencyStatus:
    """Result of probing the backend venv and frontend node_modules.

    ``frontend`` is None when the project has no frontend directory.
    """

    venv: bool
    backend: bool
    frontend: Optional[bool]

    @property
    def all_installed(self) -> bool:
        return self.venv and self.backend and self.frontend is not False
