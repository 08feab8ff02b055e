"""Child-process supervision: spawn, track, and shut down services.

The registry maps service name to the handle of its live child process. It is
owned by one ``ProcessSupervisor`` and only changed by its methods; every
handle is removed once its process has been reaped.
"""

import asyncio
import logging
import os
import time
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Set

from launcher.bootstrapper import DependencyBootstrapper
from launcher.config import KILL_TIMEOUT, POLL_INTERVAL, TERMINATE_GRACE_PERIOD
from launcher.exceptions import DuplicateServiceError, SpawnError
from launcher.models import ProcessHandle, ServiceDescriptor
from launcher.platform_ops import PlatformProcessOps

logger = logging.getLogger(__name__)


class ProcessSupervisor:
    """Spawns services and drives them through graceful-then-forceful shutdown."""

    def __init__(
        self,
        ops: PlatformProcessOps,
        bootstrapper: DependencyBootstrapper,
        grace_period: float = TERMINATE_GRACE_PERIOD,
        poll_interval: float = POLL_INTERVAL,
        kill_timeout: float = KILL_TIMEOUT,
    ):
        self.ops = ops
        self.bootstrapper = bootstrapper
        self.grace_period = grace_period
        self.poll_interval = poll_interval
        self.kill_timeout = kill_timeout
        self._registry: Dict[str, ProcessHandle] = {}

    @property
    def registry(self) -> Mapping[str, ProcessHandle]:
        """Read-only view of tracked handles."""
        return MappingProxyType(self._registry)

    # ------------------------------------------------------------------
    # Spawn
    # ------------------------------------------------------------------

    async def spawn(self, descriptor: ServiceDescriptor, dev_mode: bool) -> ProcessHandle:
        """Ensure dependencies, launch *descriptor* and register its handle."""
        existing = self._registry.get(descriptor.name)
        if existing is not None:
            if existing.is_alive:
                raise DuplicateServiceError(descriptor.name, existing.pid)
            self._forget(existing)

        await self.bootstrapper.ensure(descriptor.kind)

        env = os.environ.copy()
        env.update(descriptor.environment_overrides)
        argv = descriptor.argv(dev_mode)
        logger.debug("Spawning %s: %s", descriptor.name, " ".join(argv))

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(descriptor.working_directory),
                env=env,
                **self.ops.spawn_options(),
            )
        except OSError as exc:
            raise SpawnError(descriptor.name, exc) from exc

        handle = ProcessHandle(descriptor=descriptor, process=process, started_at=time.monotonic())
        self._registry[descriptor.name] = handle
        logger.debug("%s started with PID %d", descriptor.name, process.pid)
        return handle

    # ------------------------------------------------------------------
    # Shutdown of our own children
    # ------------------------------------------------------------------

    async def terminate_all(self) -> None:
        """Stop every tracked child and empty the registry.

        Graceful requests go out to all children before any of them is waited
        on, so shutdown takes as long as the slowest child, not the sum.
        """
        handles = list(self._registry.values())
        if not handles:
            return

        for handle in handles:
            if handle.is_alive and not handle.killed:
                logger.info("Stopping %s (PID %d)...", handle.name, handle.pid)
                try:
                    self.ops.terminate_child(handle.process)
                except ProcessLookupError:
                    pass
                except OSError as exc:
                    logger.warning("Could not signal %s: %s", handle.name, exc)
            handle.killed = True

        await asyncio.gather(*(self._reap(handle) for handle in handles))

    async def _reap(self, handle: ProcessHandle) -> None:
        """Wait out the grace period, then force-kill whatever is left of the group.

        The kill goes out even when the leader exited in time: descendants
        such as uvicorn's reload worker or Vite under npm share its process
        group and may have ignored the graceful signal.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.grace_period
        try:
            try:
                await asyncio.wait_for(handle.process.wait(), timeout=self.grace_period)
            except asyncio.TimeoutError:
                logger.warning("%s did not exit in time, force killing...", handle.name)
            else:
                await asyncio.sleep(max(0.0, deadline - loop.time()))

            try:
                self.ops.kill_child(handle.process)
            except ProcessLookupError:
                pass
            except OSError as exc:
                logger.warning("Could not kill %s: %s", handle.name, exc)

            if handle.returncode is None:
                try:
                    await asyncio.wait_for(handle.process.wait(), timeout=self.kill_timeout)
                except asyncio.TimeoutError:
                    logger.error(
                        "%s (PID %d) is still running %.0fs after kill; no longer tracking it",
                        handle.name, handle.pid, self.kill_timeout,
                    )
        except Exception as exc:  # pragma: no cover
            logger.error("Error while stopping %s: %s", handle.name, exc)
        finally:
            self._forget(handle)

    def _forget(self, handle: ProcessHandle) -> None:
        if self._registry.get(handle.name) is handle:
            del self._registry[handle.name]

    # ------------------------------------------------------------------
    # Shutdown of processes found on our ports
    # ------------------------------------------------------------------

    async def terminate_external(self, pids: Iterable[int]) -> Set[int]:
        """Stop processes this supervisor did not spawn (e.g. a previous run).

        Each PID gets a graceful signal, then a forceful kill if it is still
        alive after the grace period. A PID that is already gone counts as
        stopped. Returns the PIDs that were handled.
        """
        own_pid = os.getpid()
        targets = sorted({int(pid) for pid in pids} - {own_pid})
        if not targets:
            return set()
        await asyncio.gather(*(self._terminate_pid(pid) for pid in targets))
        return set(targets)

    async def _terminate_pid(self, pid: int) -> None:
        try:
            self.ops.terminate(pid)
        except ProcessLookupError:
            return
        except OSError as exc:
            logger.debug("Graceful stop of PID %d failed (%s), escalating", pid, exc)

        await asyncio.sleep(self.grace_period)

        if not self.ops.is_alive(pid):
            return
        logger.debug("PID %d still alive after %.1fs, force killing", pid, self.grace_period)
        try:
            self.ops.force_kill(pid)
        except ProcessLookupError:
            pass
        except OSError as exc:
            logger.warning("Could not kill PID %d: %s", pid, exc)

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    def reap_exited(self) -> None:
        """Drop handles whose process has already exited."""
        for handle in list(self._registry.values()):
            if not handle.is_alive:
                level = logging.INFO if handle.returncode == 0 or handle.killed else logging.WARNING
                logger.log(level, "%s exited with code %s", handle.name, handle.returncode)
                self._forget(handle)

    async def wait_for_all_exit(self, cancel_event: Optional[asyncio.Event] = None) -> None:
        """Block until every tracked child has exited or *cancel_event* is set."""
        while True:
            self.reap_exited()
            if not self._registry:
                return
            if cancel_event is None:
                await asyncio.sleep(self.poll_interval)
                continue
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=self.poll_interval)
                return
            except asyncio.TimeoutError:
                continue
