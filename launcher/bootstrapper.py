"""Backend venv and frontend node_modules bootstrapping.

The ``ensure_*`` methods are idempotent and only install what is missing.
The ``install_*`` methods always run the package manager; callers that only
need the dependencies present should use the ``ensure_*`` wrappers.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from launcher.config import BACKEND_REQUIRED_MODULES, Settings
from launcher.console import SUCCESS
from launcher.exceptions import InstallError, ToolchainNotFoundError
from launcher.models import DependencyStatus, ServiceKind
from launcher.platform_ops import PlatformProcessOps

logger = logging.getLogger(__name__)


class CommandRunner:
    """Runs a command to completion and returns its exit code."""

    async def run(
        self,
        argv: Sequence[str],
        cwd: Optional[Path] = None,
        quiet: bool = False,
    ) -> int:
        stdio = asyncio.subprocess.DEVNULL if quiet else None
        logger.debug("Running %s (cwd=%s)", " ".join(argv), cwd)
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd else None,
            stdout=stdio,
            stderr=stdio,
        )
        try:
            return await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
            raise


class DependencyBootstrapper:
    """Creates the backend venv and installs backend/frontend packages."""

    def __init__(
        self,
        settings: Settings,
        ops: PlatformProcessOps,
        runner: Optional[CommandRunner] = None,
    ):
        self.settings = settings
        self.ops = ops
        self.runner = runner or CommandRunner()
        self._system_python: Optional[str] = None
        self._backend_ready = False

    @property
    def venv_python(self) -> Path:
        return self.ops.venv_executable(self.settings.venv_dir, "python")

    def find_system_python(self) -> Optional[str]:
        """First base interpreter found on PATH, or None."""
        if self._system_python is None:
            for candidate in self.ops.python_candidates:
                if self.ops.which(candidate):
                    self._system_python = candidate
                    break
        return self._system_python

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------

    def environment_exists(self) -> bool:
        return self.venv_python.exists()

    async def backend_dependencies_installed(self) -> bool:
        if not self.environment_exists():
            return False
        probe = "import " + ", ".join(BACKEND_REQUIRED_MODULES)
        try:
            code = await self.runner.run([str(self.venv_python), "-c", probe], quiet=True)
        except OSError as exc:
            logger.debug("Backend import probe failed to run: %s", exc)
            return False
        return code == 0

    def frontend_dependencies_installed(self) -> Optional[bool]:
        """None when there is no frontend project."""
        if not self.settings.has_frontend:
            return None
        return (self.settings.webui_dir / "node_modules").is_dir()

    async def dependency_status(self) -> DependencyStatus:
        return DependencyStatus(
            venv=self.environment_exists(),
            backend=await self.backend_dependencies_installed(),
            frontend=self.frontend_dependencies_installed(),
        )

    # ------------------------------------------------------------------
    # Ensure (idempotent)
    # ------------------------------------------------------------------

    async def ensure_environment(self) -> bool:
        """Create the venv if it is missing. Returns True if it was created."""
        if self.environment_exists():
            logger.debug("Virtual environment already exists at %s", self.settings.venv_dir)
            return False

        python = self.find_system_python()
        if python is None:
            raise ToolchainNotFoundError(self.ops.python_candidates)

        logger.info("Creating Python virtual environment in %s...", self.settings.venv_dir)
        await self._run_step(
            "virtual environment creation",
            [python, "-m", "venv", str(self.settings.venv_dir)],
            cwd=self.settings.project_root,
        )
        logger.log(SUCCESS, "Virtual environment created")
        return True

    async def ensure_backend_dependencies(self) -> None:
        if self._backend_ready:
            return
        await self.ensure_environment()
        if not await self.backend_dependencies_installed():
            logger.warning("Python dependencies are not installed, installing...")
            await self.install_backend_dependencies()
        self._backend_ready = True

    async def ensure_frontend_dependencies(self) -> None:
        if self.frontend_dependencies_installed() is False:
            logger.warning("Frontend dependencies are not installed, installing...")
            await self.install_frontend_dependencies()

    async def ensure(self, kind: ServiceKind) -> None:
        """Ensure the dependency set a service of *kind* needs."""
        if kind is ServiceKind.BACKEND:
            await self.ensure_backend_dependencies()
        else:
            await self.ensure_frontend_dependencies()

    # ------------------------------------------------------------------
    # Install (unconditional)
    # ------------------------------------------------------------------

    async def install_backend_dependencies(self) -> None:
        await self.ensure_environment()
        logger.info("Installing Python dependencies...")
        await self._run_step(
            "backend dependencies",
            [str(self.venv_python), "-m", "pip", "install", "-r", str(self.settings.requirements_file)],
            cwd=self.settings.project_root,
        )
        self._backend_ready = True
        logger.log(SUCCESS, "Python dependencies installed")

    async def install_frontend_dependencies(self) -> bool:
        """Run ``npm install``. Returns False when there is no frontend project."""
        if not self.settings.has_frontend:
            logger.warning("%s directory not found, skipping frontend dependencies", self.settings.webui_name)
            return False
        logger.info("Installing frontend dependencies...")
        await self._run_step(
            "frontend dependencies",
            [self.ops.npm_command, "install"],
            cwd=self.settings.webui_dir,
        )
        logger.log(SUCCESS, "Frontend dependencies installed")
        return True

    async def _run_step(self, step: str, argv: Sequence[str], cwd: Path) -> None:
        try:
            code = await self.runner.run(argv, cwd=cwd)
        except OSError as exc:
            raise InstallError(step, str(exc)) from exc
        if code != 0:
            raise InstallError(step, f"command exited with code {code}")
