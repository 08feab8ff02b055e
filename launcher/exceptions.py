"""Launcher-specific exceptions."""


class LauncherError(Exception):
    """Base exception for launcher operations."""

    pass


class ToolchainNotFoundError(LauncherError):
    """Raised when no base Python interpreter can be found on the host."""

    def __init__(self, candidates: tuple[str, ...]):
        super().__init__(
            f"Python not found, please install Python first (tried {', '.join(candidates)})"
        )
        self.candidates = candidates


class InstallError(LauncherError):
    """Raised when a dependency installation step exits non-zero."""

    def __init__(self, step: str, detail: str = ""):
        message = f"Failed to install {step}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.step = step


class BuildError(LauncherError):
    """Raised when the frontend build exits non-zero."""

    pass


class SpawnError(LauncherError):
    """Raised when a service command cannot be launched."""

    def __init__(self, service: str, reason: object):
        super().__init__(f"Could not start {service}: {reason}")
        self.service = service


class DuplicateServiceError(LauncherError):
    """Raised when spawning a service that already has a live process."""

    def __init__(self, service: str, pid: int):
        super().__init__(f"{service} is already running under this launcher (PID {pid})")
        self.service = service
        self.pid = pid


class PortEnumerationError(LauncherError):
    """Raised by platform operations when listening sockets cannot be listed."""

    pass
