"""
Deploy orchestrator for ConfSync

Runs one encrypted configuration deploy end to end:

    decrypt -> swap config file -> restart service -> poll until active
                                                   |-> commit
                                                   |-> roll back on timeout

Failure policy:
    - Missing shared secret: ConfigurationError before any state is entered
    - Decryption errors: FAILED, nothing on disk was touched
    - Config write errors: FAILED, the atomic write left the old file in place
    - Health timeout with a snapshot: restore file, restart, ROLLED_BACK
    - Health timeout without a snapshot: ROLLBACK_UNAVAILABLE (no restore possible)

Concurrency:
    Deploys are serialized per service name and per resolved config file
    path, with locks held from decrypting until done. Deploys that share
    neither still run in parallel.

Usage:
    orchestrator = DeployOrchestrator(config, SystemctlServiceController())
    result = await orchestrator.deploy(request)
"""

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional

from config.settings import AgentConfig
from models.request_models import DeployRequest
from .config_swap import ConfigSwapManager, resolve_target
from .decryption import decrypt_envelope
from .errors import ConfigurationError, ConfigWriteError, DecryptionError
from .service_controller import ServiceController
from .state_machine import DeployStateMachine
from .types import (
    DeployOutcome,
    DeployResult,
    DeployRun,
    ROLLBACK_UNAVAILABLE_MESSAGE,
    ROLLED_BACK_MESSAGE,
)

logger = logging.getLogger(__name__)

MISSING_SECRET_MESSAGE = "The secret parameter is missing on the server side"


class DeployLocks:
    """
    Reference-counted registry of asyncio.Lock objects keyed by name.

    An entry only exists while at least one deploy holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        """Acquire every key in sorted order; release them all on exit."""
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self._hold_one(key))
            yield

    @asynccontextmanager
    async def _hold_one(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


def _lock_keys(service_name: str, config_path: str) -> List[str]:
    try:
        path = str(resolve_target(config_path))
    except ConfigWriteError:
        # the write step reports the unusable path
        path = config_path
    return [f"service:{service_name}", f"path:{path}"]


class DeployOrchestrator:
    """
    Sequences decryption, config swap, restart and health polling.

    Integrates with:
    - decrypt_envelope for payload decryption
    - ConfigSwapManager for snapshot / write / restore
    - ServiceController for restart and is-active queries
    - DeployStateMachine for transition validation and history
    """

    def __init__(
        self,
        config: AgentConfig,
        controller: ServiceController,
        swap_manager: Optional[ConfigSwapManager] = None,
    ):
        """
        Args:
            config: Immutable agent configuration (secret, poll interval)
            controller: Service controller used for restart / is-active
            swap_manager: Config file manager (default: ConfigSwapManager())
        """
        self.config = config
        self.controller = controller
        self.swap_manager = swap_manager or ConfigSwapManager()
        self.state_machine = DeployStateMachine()
        self.locks = DeployLocks()

    async def deploy(self, request: DeployRequest) -> DeployResult:
        """
        Run a deploy request to completion.

        Returns:
            DeployResult describing the outcome; never raises for pipeline
            failures except ConfigurationError

        Raises:
            ConfigurationError: The agent has no shared secret configured
        """
        if not self.config.secret:
            logger.error(f"Deploy of {request.service_name} refused: no shared secret configured")
            raise ConfigurationError(MISSING_SECRET_MESSAGE)

        keys = await asyncio.to_thread(_lock_keys, request.service_name, request.config_path)
        if any(self.locks.locked(key) for key in keys):
            logger.info(f"Deploy for {request.service_name} is waiting for a deploy already in flight")

        async with self.locks.hold(keys):
            run = DeployRun(service_name=request.service_name, config_path=request.config_path)
            logger.info(
                f"Deploy {run.id}: configPath = {request.config_path}, "
                f"serviceName = {request.service_name}, timeout = {request.timeout}s"
            )
            return await self._execute(run, request)

    async def _execute(self, run: DeployRun, request: DeployRequest) -> DeployResult:
        sm = self.state_machine

        # Decrypting
        sm.transition(run, 'decrypting')
        try:
            new_config = decrypt_envelope(request.content, self.config.secret)
        except DecryptionError as e:
            logger.warning(f"Deploy {run.id}: decryption failed: {e}")
            return self._finish(run, DeployOutcome.FAILED, str(e))

        # Swapping
        sm.transition(run, 'swapping')
        snapshot = await self.swap_manager.read_snapshot(request.config_path)
        run.has_snapshot = snapshot is not None
        try:
            await self.swap_manager.write(request.config_path, new_config)
        except ConfigWriteError as e:
            logger.error(f"Deploy {run.id}: {e}")
            return self._finish(run, DeployOutcome.FAILED, str(e))
        sm.mark_committed(run)

        # Restarting - exit status is ignored, the poll decides
        sm.transition(run, 'restarting')
        await self.controller.restart(request.service_name)

        # Polling
        sm.transition(run, 'polling')
        if await self._wait_until_active(run, request.service_name, request.timeout):
            sm.transition(run, 'committed')
            return self._finish(run, DeployOutcome.APPLIED)

        # Rolling back
        sm.transition(run, 'rolling_back')
        if not sm.should_rollback(run):
            logger.error(
                f"Deploy {run.id}: {request.service_name} did not become active and "
                f"there is no previous configuration to restore"
            )
            return self._finish(run, DeployOutcome.ROLLBACK_UNAVAILABLE, ROLLBACK_UNAVAILABLE_MESSAGE)

        try:
            await self.swap_manager.restore(request.config_path, snapshot)
        except ConfigWriteError as e:
            logger.error(f"Deploy {run.id}: restoring {request.config_path} failed: {e}")
            return self._finish(run, DeployOutcome.ROLLBACK_UNAVAILABLE, ROLLBACK_UNAVAILABLE_MESSAGE)
        await self.controller.restart(request.service_name)

        logger.warning(f"Deploy {run.id}: {request.service_name} rolled back to previous configuration")
        return self._finish(run, DeployOutcome.ROLLED_BACK, ROLLED_BACK_MESSAGE)

    async def _wait_until_active(self, run: DeployRun, service_name: str, timeout: int) -> bool:
        """
        Poll is-active once per interval until it reports active.

        Each iteration sleeps first and consumes one unit of the budget after
        a negative answer; the loop ends when the budget goes below zero.
        timeout=0 therefore still gets exactly one poll.
        """
        remaining = timeout
        while True:
            await asyncio.sleep(self.config.poll_interval)
            run.polls += 1
            if await self.controller.is_active(service_name):
                logger.info(f"Deploy {run.id}: {service_name} active after {run.polls} poll(s)")
                return True
            remaining -= 1
            if remaining < 0:
                logger.warning(
                    f"Deploy {run.id}: {service_name} not active after {run.polls} poll(s), "
                    f"timeout of {timeout}s exhausted"
                )
                return False

    def _finish(self, run: DeployRun, outcome: DeployOutcome, message: str = "") -> DeployResult:
        self.state_machine.transition(run, 'done')
        return DeployResult(outcome=outcome, message=message, run=run)
