"""
Configuration Management for ConfSync Agent
Builds one immutable AgentConfig at process start from CLI flags and the
environment, and sets up logging.
"""

import argparse
import os
import logging
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from .paths import DEFAULT_DATA_DIR, get_log_dir

# Fixed client identifier sent by the GUI.for.Cores desktop client
CLIENT_USER_AGENT = "GUI.for.Cores"


def setup_logging(config: "AgentConfig"):
    """Configure application logging with rotation"""
    log_dir = get_log_dir(config.save_path)
    os.makedirs(log_dir, mode=0o700, exist_ok=True)

    root_logger = logging.getLogger()

    # Close and clear any existing handlers to prevent file descriptor leaks
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    level = getattr(logging, config.log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # Max 10MB per file, keep 14 backups
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'confsync.log'),
        maxBytes=10*1024*1024,
        backupCount=14,
        encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(console_formatter)

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    from security.audit import security_audit
    security_audit.configure(log_dir)


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


@dataclass(frozen=True)
class AgentConfig:
    """
    Immutable agent configuration.

    Constructed once (from_args) and passed to create_app(); the request
    gateway and the deploy orchestrator only ever read from it.
    """

    token: str = ""
    secret: str = ""
    address: str = "0.0.0.0"
    port: int = 8080
    cert: str = ""
    key: str = ""
    save_path: str = DEFAULT_DATA_DIR
    log_level: str = "INFO"

    # Deploy pipeline
    poll_interval: float = 1.0
    command_timeout: int = 60
    systemctl: str = "systemctl"

    client_user_agent: str = CLIENT_USER_AGENT

    @property
    def tls_enabled(self) -> bool:
        return bool(self.cert and self.key)

    @classmethod
    def from_args(cls, argv: Optional[List[str]] = None) -> "AgentConfig":
        """
        Parse command line flags, falling back to CONFSYNC_* environment variables.

        Args:
            argv: Argument list (defaults to sys.argv[1:])

        Returns:
            AgentConfig
        """
        parser = argparse.ArgumentParser(
            prog="confsync-agent",
            description="Backup sync and encrypted config deploy agent"
        )
        parser.add_argument('--token', default=os.getenv('CONFSYNC_TOKEN', ''),
                            help='Authorization token shared with the client')
        parser.add_argument('--address', default=os.getenv('CONFSYNC_ADDRESS', '0.0.0.0'),
                            help='Address to listen on')
        parser.add_argument('--port', type=int, default=_env_int('CONFSYNC_PORT', 8080),
                            help='Port to listen on')
        parser.add_argument('--cert', default=os.getenv('CONFSYNC_CERT', ''),
                            help='TLS certificate file path')
        parser.add_argument('--key', default=os.getenv('CONFSYNC_KEY', ''),
                            help='TLS key file path')
        parser.add_argument('--secret', default=os.getenv('CONFSYNC_SECRET', ''),
                            help='Passphrase used to decrypt deploy payloads')
        parser.add_argument('--data-dir', dest='save_path',
                            default=os.getenv('CONFSYNC_DATA_DIR', DEFAULT_DATA_DIR),
                            help='Directory for backups and logs')
        parser.add_argument('--log-level', default=os.getenv('CONFSYNC_LOG_LEVEL', 'INFO'),
                            help='Log level (DEBUG, INFO, WARNING, ERROR)')
        args = parser.parse_args(argv)

        return cls(
            token=args.token,
            secret=args.secret,
            address=args.address,
            port=args.port,
            cert=args.cert,
            key=args.key,
            save_path=args.save_path,
            log_level=args.log_level,
            poll_interval=_env_float('CONFSYNC_POLL_INTERVAL', 1.0),
            command_timeout=_env_int('CONFSYNC_COMMAND_TIMEOUT', 60),
            systemctl=os.getenv('CONFSYNC_SYSTEMCTL', 'systemctl'),
        )

    def validate(self):
        """Validate configuration"""
        if not self.token:
            raise ValueError("You need to specify a token that is the same as the client")

        if self.port < 1 or self.port > 65535:
            raise ValueError(f"Invalid port: {self.port}")

        if bool(self.cert) != bool(self.key):
            raise ValueError("TLS needs both --cert and --key")

        if self.poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive: {self.poll_interval}")

        return True
