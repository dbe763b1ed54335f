"""
Service manager control for the deploy pipeline.

The orchestrator only needs two capabilities, restart and is-active, so they
sit behind ServiceController. SystemctlServiceController shells out to
systemctl; tests substitute an in-memory controller.

A failed restart is only logged; the health poll that follows decides the
outcome. Any query failure reads as "not active yet" and never ends the
poll loop early.
"""

import asyncio
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional

logger = logging.getLogger(__name__)

ACTIVE_STATE = "active"


class ServiceController(ABC):
    """Restart and health query for a named OS service."""

    @abstractmethod
    async def restart(self, service_name: str) -> None:
        """Ask the service manager to restart the service (best effort)."""

    @abstractmethod
    async def is_active(self, service_name: str) -> bool:
        """True only if the service manager reports the service as active."""


class SystemctlServiceController(ServiceController):
    """ServiceController backed by `systemctl restart` / `systemctl is-active`."""

    def __init__(self, systemctl: str = "systemctl", timeout: int = 60):
        """
        Args:
            systemctl: systemctl executable (name or absolute path)
            timeout: Per-command timeout in seconds
        """
        self.systemctl = systemctl
        self.timeout = timeout

    async def _run(self, args: List[str]) -> Optional[subprocess.CompletedProcess]:
        """
        Run systemctl with `args` in a worker thread.

        Returns:
            CompletedProcess, or None if the command could not be run at all
        """
        command = [self.systemctl] + args
        try:
            return await asyncio.to_thread(
                subprocess.run,
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout
            )
        except FileNotFoundError:
            logger.error(f"{self.systemctl} not found, cannot run: {' '.join(command)}")
        except subprocess.TimeoutExpired:
            logger.warning(f"Command timed out after {self.timeout}s: {' '.join(command)}")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to run {' '.join(command)}: {e}")
        return None

    async def restart(self, service_name: str) -> None:
        result = await self._run(["restart", service_name])
        if result is None:
            return
        if result.returncode != 0:
            logger.warning(
                f"systemctl restart {service_name} exited with {result.returncode}: "
                f"{result.stdout.strip()}"
            )
        else:
            logger.info(f"Restart issued for {service_name}")

    async def is_active(self, service_name: str) -> bool:
        result = await self._run(["is-active", service_name])
        if result is None:
            return False
        state = (result.stdout or "").strip()
        logger.debug(f"{service_name} is-active -> {state!r} (exit {result.returncode})")
        return state == ACTIVE_STATE
