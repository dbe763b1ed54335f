"""
Token Authentication for ConfSync Agent

Every endpoint requires both:
- Authorization: Bearer <token>   (token configured with --token)
- User-Agent: GUI.for.Cores       (fixed client identifier)

Requests failing either check get 401 and never reach a handler.
"""

import logging
import secrets

from fastapi import HTTPException, Request, status

from config.settings import AgentConfig
from security.audit import security_audit
from utils.client_ip import get_client_ip

logger = logging.getLogger(__name__)


def check_credentials(config: AgentConfig, authorization: str, user_agent: str) -> bool:
    """
    Compare the presented headers with the configured token and client id.

    Both comparisons are constant-time. An unset token never authenticates.

    Args:
        config: Agent configuration
        authorization: Raw Authorization header ("" if missing)
        user_agent: Raw User-Agent header ("" if missing)

    Returns:
        True if both headers match
    """
    if not config.token:
        return False

    expected_auth = f"Bearer {config.token}"
    auth_ok = secrets.compare_digest(authorization.encode(), expected_auth.encode())
    agent_ok = secrets.compare_digest(user_agent.encode(), config.client_user_agent.encode())
    return auth_ok and agent_ok


async def require_agent_auth(request: Request) -> None:
    """
    FastAPI dependency enforcing token + client authentication.

    Raises:
        HTTPException: 401 if the credentials don't match
    """
    config: AgentConfig = request.app.state.config
    authorization = request.headers.get("authorization", "")
    user_agent = request.headers.get("user-agent", "")
    client_ip = get_client_ip(request)

    if not check_credentials(config, authorization, user_agent):
        reason = "bad token" if user_agent == config.client_user_agent else "unexpected client"
        logger.warning(f"Unauthorized request to {request.url.path} from {client_ip} ({reason})")
        security_audit.log_authentication_attempt(
            client_ip=client_ip,
            success=False,
            endpoint=request.url.path,
            user_agent=user_agent,
            reason=reason
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    logger.debug(f"Authenticated request to {request.url.path} from {client_ip}")
