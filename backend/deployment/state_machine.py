"""
Deploy state machine for ConfSync

Validates state transitions of a single deploy and keeps the state history
on the DeployRun record.

State Flow:
    start -> decrypting -> swapping -> restarting -> polling -> committed -> done
      |           |            |                        |
      |           |            |                        +-> rolling_back -> done
      +-----------+------------+-> done  (failure before the service was touched)

Commitment Point:
    Once the new configuration file is on disk the run is marked committed.
    From that point on the only recovery path is the rollback branch, and it
    can only restore the file if a snapshot of the previous content exists.

Usage:
    sm = DeployStateMachine()
    run = DeployRun(service_name="sing-box", config_path="/etc/sing-box/config.json")

    sm.transition(run, 'decrypting')
    ...
    sm.mark_committed(run)
    if not healthy and sm.should_rollback(run):
        ...
"""

from datetime import datetime, timezone
import logging

from .types import DeployRun

logger = logging.getLogger(__name__)


class DeployStateMachine:
    """
    State machine for the deploy lifecycle.

    Strictly linear: one conditional branch (poll success vs. timeout) and
    one recovery branch (rollback).
    """

    VALID_TRANSITIONS = {
        'start': ['decrypting', 'done'],
        'decrypting': ['swapping', 'done'],
        'swapping': ['restarting', 'done'],
        'restarting': ['polling'],
        'polling': ['committed', 'rolling_back'],
        'committed': ['done'],
        'rolling_back': ['done'],
        'done': [],  # Terminal state
    }

    VALID_STATES = set(VALID_TRANSITIONS)

    TERMINAL_STATES = {'done'}

    def can_transition(self, from_state: str, to_state: str) -> bool:
        """
        Check if a state transition is valid.

        Examples:
            >>> sm = DeployStateMachine()
            >>> sm.can_transition('start', 'decrypting')
            True
            >>> sm.can_transition('restarting', 'done')
            False
        """
        if from_state not in self.VALID_STATES:
            logger.warning(f"Invalid from_state: {from_state}")
            return False

        if to_state not in self.VALID_STATES:
            logger.warning(f"Invalid to_state: {to_state}")
            return False

        return to_state in self.VALID_TRANSITIONS[from_state]

    def transition(self, run: DeployRun, to_state: str) -> bool:
        """
        Move a run to a new state.

        Side Effects:
            - Updates run.status and appends to run.history
            - Sets started_at on the first transition out of 'start'
            - Sets completed_at on reaching 'done'

        Returns:
            True if the transition happened, False if it was invalid
        """
        from_state = run.status

        if not self.can_transition(from_state, to_state):
            logger.error(
                f"Invalid state transition for deploy {run.id}: {from_state} -> {to_state}"
            )
            return False

        run.status = to_state
        run.history.append(to_state)

        utcnow = datetime.now(timezone.utc)
        if from_state == 'start' and not run.started_at:
            run.started_at = utcnow
        if to_state in self.TERMINAL_STATES and not run.completed_at:
            run.completed_at = utcnow

        logger.info(f"Deploy {run.id} ({run.service_name}): {from_state} -> {to_state}")
        return True

    def mark_committed(self, run: DeployRun) -> None:
        """Record that the new configuration has been written to disk."""
        run.committed = True
        logger.info(f"Deploy {run.id}: new configuration written to {run.config_path}")

    def should_rollback(self, run: DeployRun) -> bool:
        """
        Decide whether the rollback branch can restore anything.

        Checks:
            1. The run is in 'rolling_back'
            2. The new configuration was actually written (committed)
            3. A snapshot of the previous configuration exists
        """
        if run.status != 'rolling_back':
            logger.debug(f"Deploy {run.id}: status '{run.status}' not eligible for rollback")
            return False

        if not run.committed:
            logger.debug(f"Deploy {run.id}: nothing was written, nothing to roll back")
            return False

        if not run.has_snapshot:
            logger.warning(
                f"Deploy {run.id}: rollback requested but no snapshot of "
                f"{run.config_path} was captured"
            )
            return False

        return True
