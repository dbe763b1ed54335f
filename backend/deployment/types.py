"""
Shared types for the deploy pipeline.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


ROLLED_BACK_MESSAGE = "Restarting the service failed and has been restored"
ROLLBACK_UNAVAILABLE_MESSAGE = (
    "Restarting the service failed and no previous configuration was available to restore"
)


class DeployOutcome(Enum):
    """Final result of one deploy request."""
    APPLIED = "applied"                            # Service active within budget
    ROLLED_BACK = "rolled_back"                    # Health timeout, previous config restored
    ROLLBACK_UNAVAILABLE = "rollback_unavailable"  # Health timeout, nothing to restore
    FAILED = "failed"                              # Rejected before the service was touched


@dataclass
class DeployRun:
    """
    Mutable record of one in-flight deploy.

    Owned by a single orchestrator invocation and dropped when the request
    finishes. `committed` flips to True once the new configuration file is
    on disk; `has_snapshot` tells the rollback branch whether there is
    anything to restore.
    """
    service_name: str
    config_path: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    status: str = "start"
    history: List[str] = field(default_factory=lambda: ["start"])
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    committed: bool = False
    has_snapshot: bool = False
    polls: int = 0


@dataclass
class DeployResult:
    """What the orchestrator hands back to the request gateway."""
    outcome: DeployOutcome
    message: str = ""
    run: Optional[DeployRun] = None

    @property
    def success(self) -> bool:
        return self.outcome is DeployOutcome.APPLIED
