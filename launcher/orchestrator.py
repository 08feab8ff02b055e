"""Sequencing of launcher operations.

``dev`` / ``prod`` / ``backend`` / ``frontend`` walk the state machine

    IDLE -> DEPENDENCIES_CHECKED -> SERVICES_STARTING -> SERVICES_RUNNING
         -> SHUTTING_DOWN -> IDLE

and leave ``SERVICES_RUNNING`` either when every child has exited or when
``request_shutdown()`` is called (normally from ``SignalHandler``).
"""

import asyncio
import logging
import signal
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from launcher.bootstrapper import DependencyBootstrapper
from launcher.config import SETTLE_DELAY, Settings
from launcher.console import SUCCESS, print_ready_banner
from launcher.exceptions import BuildError
from launcher.models import DependencyStatus, RunningServiceInfo, ServiceDescriptor
from launcher.platform_ops import PlatformProcessOps
from launcher.port_locator import PortLocator
from launcher.services import backend_descriptor, frontend_descriptor
from launcher.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    IDLE = "idle"
    DEPENDENCIES_CHECKED = "dependencies_checked"
    SERVICES_STARTING = "services_starting"
    SERVICES_RUNNING = "services_running"
    SHUTTING_DOWN = "shutting_down"


class Orchestrator:
    """Runs the launcher's user-facing operations."""

    def __init__(
        self,
        settings: Settings,
        supervisor: ProcessSupervisor,
        bootstrapper: DependencyBootstrapper,
        locator: PortLocator,
        backend: Optional[ServiceDescriptor] = None,
        frontend: Optional[ServiceDescriptor] = None,
        settle_delay: float = SETTLE_DELAY,
        color_enabled: bool = True,
    ):
        self.settings = settings
        self.supervisor = supervisor
        self.bootstrapper = bootstrapper
        self.locator = locator
        self.backend = backend or backend_descriptor(settings, supervisor.ops)
        self.frontend = frontend or frontend_descriptor(settings, supervisor.ops)
        self.settle_delay = settle_delay
        self.color_enabled = color_enabled
        self.state = OrchestratorState.IDLE
        self._shutdown_event = asyncio.Event()

    def _transition(self, state: OrchestratorState) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_event.is_set()

    def request_shutdown(self) -> None:
        """Ask a running operation to stop its services. Only the first call counts."""
        if self._shutdown_event.is_set():
            logger.debug("Shutdown already requested, ignoring")
            return
        print()
        logger.info("Shutting down all services...")
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # Long-running operations
    # ------------------------------------------------------------------

    async def dev(self) -> None:
        """Backend with reload, then the frontend dev server."""
        plan = [(self.backend, True)]
        if self.settings.has_frontend:
            plan.append((self.frontend, True))
        else:
            logger.warning("%s directory not found, skipping frontend", self.settings.webui_name)
        await self._run_services(plan)

    async def prod(self) -> None:
        """Backend only, without reload."""
        await self._run_services([(self.backend, False)])

    async def backend_only(self) -> None:
        await self._run_services([(self.backend, True)])

    async def frontend_only(self) -> None:
        if not self.settings.has_frontend:
            logger.warning("%s directory not found, skipping frontend", self.settings.webui_name)
            return
        await self._run_services([(self.frontend, True)])

    async def _run_services(self, plan: List[Tuple[ServiceDescriptor, bool]]) -> None:
        started: List[ServiceDescriptor] = []
        try:
            for descriptor, _ in plan:
                await self.bootstrapper.ensure(descriptor.kind)
            self._transition(OrchestratorState.DEPENDENCIES_CHECKED)

            self._transition(OrchestratorState.SERVICES_STARTING)
            for index, (descriptor, dev_mode) in enumerate(plan):
                if index and await self._settle():
                    break
                if self.shutdown_requested:
                    break
                logger.info("Starting %s... http://localhost:%d", descriptor.name, descriptor.listen_port)
                await self.supervisor.spawn(descriptor, dev_mode)
                started.append(descriptor)

            if not self.shutdown_requested:
                self._transition(OrchestratorState.SERVICES_RUNNING)
                print_ready_banner(
                    self._port_of(started, self.backend),
                    self._port_of(started, self.frontend),
                    self.color_enabled,
                )
                await self.supervisor.wait_for_all_exit(self._shutdown_event)
        finally:
            self._transition(OrchestratorState.SHUTTING_DOWN)
            await self.supervisor.terminate_all()
            self._transition(OrchestratorState.IDLE)
            if started:
                logger.log(SUCCESS, "All services stopped")

    async def _settle(self) -> bool:
        """Pause between services. Returns True if shutdown was requested meanwhile."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.settle_delay)
            return True
        except asyncio.TimeoutError:
            return False

    @staticmethod
    def _port_of(started: List[ServiceDescriptor], descriptor: ServiceDescriptor) -> Optional[int]:
        return descriptor.listen_port if descriptor in started else None

    # ------------------------------------------------------------------
    # One-shot operations
    # ------------------------------------------------------------------

    async def install(self) -> None:
        """Install backend and frontend dependencies regardless of current state."""
        self._transition(OrchestratorState.DEPENDENCIES_CHECKED)
        try:
            await self.bootstrapper.install_backend_dependencies()
            await self.bootstrapper.install_frontend_dependencies()
            logger.log(SUCCESS, "All dependencies installed!")
        finally:
            self._transition(OrchestratorState.IDLE)

    async def build(self) -> bool:
        """Run ``npm run build`` in the frontend. False if there is no frontend."""
        if not self.settings.has_frontend:
            logger.warning("%s directory not found, nothing to build", self.settings.webui_name)
            return False
        await self.bootstrapper.ensure_frontend_dependencies()

        logger.info("Building frontend...")
        try:
            code = await self.bootstrapper.runner.run(
                [self.supervisor.ops.npm_command, "run", "build"],
                cwd=self.settings.webui_dir,
            )
        except OSError as exc:
            raise BuildError(f"Frontend build failed: {exc}") from exc
        if code != 0:
            raise BuildError(f"Frontend build failed (exit code {code})")
        logger.log(SUCCESS, "Frontend build complete!")
        return True

    def status(self) -> List[RunningServiceInfo]:
        """Who is listening on the backend and frontend ports right now."""
        return [
            self.locator.running_info(self.backend.name, self.backend.listen_port),
            self.locator.running_info(self.frontend.name, self.frontend.listen_port),
        ]

    async def stop(self) -> Dict[str, Set[int]]:
        """Stop whatever listens on the service ports. Returns stopped PIDs per service."""
        infos = self.status()
        stopped: Dict[str, Set[int]] = {info.name: set() for info in infos}
        if not any(info.is_running for info in infos):
            logger.warning("No running services detected")
            return stopped

        for info in infos:
            if not info.is_running:
                logger.info("Nothing listening on %s port %d", info.name, info.port)
                continue
            pid_list = ", ".join(str(pid) for pid in sorted(info.pids))
            logger.info("Stopping %s (port %d, PID: %s)...", info.name, info.port, pid_list)
            stopped[info.name] = await self.supervisor.terminate_external(info.pids)
            logger.log(SUCCESS, "%s stopped", info.name.capitalize())
        return stopped

    async def dependency_status(self) -> DependencyStatus:
        return await self.bootstrapper.dependency_status()


class SignalHandler:
    """Turns SIGINT/SIGTERM into ``Orchestrator.request_shutdown()`` on the loop."""

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, orchestrator: Orchestrator):
        self.orchestrator = orchestrator
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous: Dict[int, Any] = {}

    def setup(self) -> None:
        """Set up signal handlers."""
        self._loop = asyncio.get_running_loop()
        for sig in self.SIGNALS:
            self._previous[sig] = signal.signal(sig, self._handle_signal)

    def _handle_signal(self, signum, frame):
        """Handle shutdown signals."""
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self.orchestrator.request_shutdown)

    def restore(self) -> None:
        for sig, previous in self._previous.items():
            signal.signal(sig, previous)
        self._previous.clear()


def build_orchestrator(
    settings: Settings,
    ops: PlatformProcessOps,
    color_enabled: bool = True,
) -> Orchestrator:
    """Wire up the locator, bootstrapper and supervisor for *settings*."""
    bootstrapper = DependencyBootstrapper(settings, ops)
    supervisor = ProcessSupervisor(ops, bootstrapper)
    locator = PortLocator(ops)
    return Orchestrator(settings, supervisor, bootstrapper, locator, color_enabled=color_enabled)
