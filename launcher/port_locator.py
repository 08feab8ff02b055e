"""Find which processes are listening on a TCP port."""

import logging
import subprocess
from typing import Set

from launcher.exceptions import PortEnumerationError
from launcher.models import RunningServiceInfo
from launcher.platform_ops import PlatformProcessOps

logger = logging.getLogger(__name__)


class PortLocator:
    """Best-effort port-to-PID lookup.

    Enumeration failures are reported as "no listener": this is a
    bootstrapping tool and a missing ``lsof`` must not break ``status``.
    """

    def __init__(self, ops: PlatformProcessOps):
        self.ops = ops

    def find_listeners(self, port: int) -> Set[int]:
        if not 1 <= port <= 65535:
            raise ValueError(f"Invalid TCP port: {port}")
        try:
            return set(self.ops.list_listening_pids(port))
        except (PortEnumerationError, OSError, subprocess.SubprocessError) as exc:
            logger.debug("Could not enumerate listeners on port %d: %s", port, exc)
            return set()

    def running_info(self, name: str, port: int) -> RunningServiceInfo:
        return RunningServiceInfo(name=name, port=port, pids=frozenset(self.find_listeners(port)))
