"""
Security Audit Logging System for ConfSync Agent
Tracks authentication, path traversal attempts and deploy outcomes
"""

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional


class SecurityAuditLogger:
    """
    Structured security audit log.

    Messages are JSON documents written to a dedicated `security_audit`
    logger that does not propagate to the root logger. The rotating file
    handler is attached by configure(), which setup_logging() calls once the
    data directory is known.
    """
    def __init__(self):
        self.security_logger = logging.getLogger('security_audit')
        self.security_logger.setLevel(logging.INFO)
        self.security_logger.propagate = False  # Don't propagate to root logger
        self._file_handler: Optional[RotatingFileHandler] = None

    def configure(self, log_dir: str):
        """Attach (or replace) the rotating security_audit.log handler."""
        os.makedirs(log_dir, mode=0o700, exist_ok=True)

        if self._file_handler is not None:
            self.security_logger.removeHandler(self._file_handler)
            self._file_handler.close()

        # Max 10MB per file, keep 14 backups
        security_handler = RotatingFileHandler(
            os.path.join(log_dir, 'security_audit.log'),
            maxBytes=10*1024*1024,
            backupCount=14,
            encoding='utf-8'
        )
        security_handler.setLevel(logging.INFO)
        security_handler.setFormatter(logging.Formatter(
            '%(asctime)s - SECURITY - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S UTC'
        ))
        self.security_logger.addHandler(security_handler)
        self._file_handler = security_handler

    def _log_security_event(self, level: str, event_type: str, client_ip: str,
                           endpoint: str = None, user_agent: str = None,
                           details: dict = None, risk_level: str = "LOW"):
        """Internal method to log structured security events"""
        log_data = {
            "event_type": event_type,
            "client_ip": client_ip,
            "endpoint": endpoint,
            "user_agent": user_agent or "unknown",
            "risk_level": risk_level,
            "details": details or {}
        }

        message = json.dumps(log_data, default=str)

        if level.upper() == "ERROR":
            self.security_logger.error(message)
        elif level.upper() == "WARNING":
            self.security_logger.warning(message)
        else:
            self.security_logger.info(message)

    def log_authentication_attempt(self, client_ip: str, success: bool, endpoint: str,
                                   user_agent: str = None, reason: str = None):
        """Log authentication attempts (both success and failure)"""
        event_type = "AUTH_SUCCESS" if success else "AUTH_FAILURE"
        risk_level = "LOW" if success else "MEDIUM"
        level = "INFO" if success else "WARNING"

        self._log_security_event(
            level=level,
            event_type=event_type,
            client_ip=client_ip,
            endpoint=endpoint,
            user_agent=user_agent,
            details={"reason": reason} if reason else None,
            risk_level=risk_level
        )

    def log_path_traversal_attempt(self, client_ip: str, endpoint: str, attempted_path: str):
        """Log a request that tried to escape the backup directory"""
        self._log_security_event(
            level="ERROR",
            event_type="PATH_TRAVERSAL_ATTEMPT",
            client_ip=client_ip,
            endpoint=endpoint,
            details={"attempted_path": attempted_path[:200]},  # Limit log size
            risk_level="HIGH"
        )

    def log_deploy(self, client_ip: str, service_name: str, config_path: str,
                   outcome: str, message: str = None):
        """Log the outcome of a configuration deploy"""
        success = outcome == "applied"
        self._log_security_event(
            level="INFO" if success else "WARNING",
            event_type=f"DEPLOY_{outcome.upper()}",
            client_ip=client_ip,
            endpoint="/deploy",
            details={
                "service_name": service_name,
                "config_path": config_path,
                "message": message,
            },
            risk_level="MEDIUM" if success else "HIGH"
        )


# Global security audit logger instance
security_audit = SecurityAuditLogger()
