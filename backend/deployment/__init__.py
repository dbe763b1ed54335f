"""
Deployment module for ConfSync Agent

Handles encrypted configuration deploys with health verification and
rollback.

Components:
    - decryption: OpenSSL "Salted__" envelope decryption (EVP_BytesToKey + AES-256-CBC)
    - config_swap: Snapshot, atomic write and restore of the target config file
    - service_controller: systemctl restart / is-active behind a small interface
    - state_machine: Deploy state transitions and commitment point tracking
    - orchestrator: decrypt -> swap -> restart -> poll -> commit / roll back
    - routes: POST /deploy
"""

from .config_swap import ConfigSwapManager
from .decryption import decrypt_envelope, encrypt_envelope, evp_bytes_to_key
from .errors import (
    ConfigurationError,
    ConfigWriteError,
    DecryptionError,
    DeployError,
    InvalidCiphertextLength,
    InvalidPadding,
    MalformedEncoding,
    MalformedEnvelope,
)
from .orchestrator import DeployLocks, DeployOrchestrator
from .service_controller import ServiceController, SystemctlServiceController
from .state_machine import DeployStateMachine
from .types import DeployOutcome, DeployResult, DeployRun
from . import routes

__all__ = [
    "ConfigSwapManager",
    "decrypt_envelope",
    "encrypt_envelope",
    "evp_bytes_to_key",
    "ConfigurationError",
    "ConfigWriteError",
    "DecryptionError",
    "DeployError",
    "InvalidCiphertextLength",
    "InvalidPadding",
    "MalformedEncoding",
    "MalformedEnvelope",
    "DeployLocks",
    "DeployOrchestrator",
    "ServiceController",
    "SystemctlServiceController",
    "DeployStateMachine",
    "DeployOutcome",
    "DeployResult",
    "DeployRun",
    "routes",
]
