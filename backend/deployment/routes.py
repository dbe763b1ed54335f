"""
Deploy API routes for ConfSync Agent

POST /deploy decrypts an encrypted configuration, swaps it in, restarts the
service and waits for it to become active, rolling back on timeout.

Responses:
    200 - applied, service active within the timeout
    400 - malformed request body (see exception handlers in main.py)
    500 - rolled back, rollback unavailable, decryption failure or
          missing shared secret (plain text reason)
"""

import asyncio
import functools
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from auth.token_auth import require_agent_auth
from models.request_models import DeployRequest
from security.audit import security_audit
from utils.client_ip import get_client_ip
from .errors import ConfigurationError
from .orchestrator import DeployOrchestrator
from .types import DeployOutcome

logger = logging.getLogger(__name__)

router = APIRouter(tags=["deploy"], dependencies=[Depends(require_agent_auth)])


def get_orchestrator(request: Request) -> DeployOrchestrator:
    """Get the deploy orchestrator (dependency)."""
    return request.app.state.orchestrator


def _report_detached_deploy(client_ip: str, body: DeployRequest, task: asyncio.Task) -> None:
    """Log and audit a deploy whose client disconnected before it finished."""
    if task.cancelled():
        logger.error(f"Detached deploy of {body.service_name} was cancelled")
        return

    exc = task.exception()
    if exc is not None:
        logger.error(f"Detached deploy of {body.service_name} failed: {exc}")
        security_audit.log_deploy(client_ip, body.service_name, body.config_path, "failed", str(exc))
        return

    result = task.result()
    logger.info(f"Detached deploy of {body.service_name} finished: {result.outcome.value}")
    security_audit.log_deploy(
        client_ip, body.service_name, body.config_path, result.outcome.value, result.message
    )


@router.post("/deploy")
async def deploy_config(
    body: DeployRequest,
    request: Request,
    orchestrator: DeployOrchestrator = Depends(get_orchestrator)
):
    """
    Deploy an encrypted configuration file and restart its service.

    The request blocks for up to `timeout` seconds while the service is
    polled. The orchestration is shielded from cancellation: if the client
    disconnects, the deploy (including any rollback) still runs to the end.
    """
    client_ip = get_client_ip(request)
    logger.info(f"Deploy : configPath = {body.config_path}, serviceName = {body.service_name}")

    task = asyncio.ensure_future(orchestrator.deploy(body))
    try:
        result = await asyncio.shield(task)
    except ConfigurationError as e:
        security_audit.log_deploy(client_ip, body.service_name, body.config_path, "failed", str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except asyncio.CancelledError:
        logger.warning(
            f"Client {client_ip} left during deploy of {body.service_name}; finishing in background"
        )
        task.add_done_callback(functools.partial(_report_detached_deploy, client_ip, body))
        raise

    security_audit.log_deploy(
        client_ip, body.service_name, body.config_path, result.outcome.value, result.message
    )

    if result.outcome is DeployOutcome.APPLIED:
        return Response(status_code=status.HTTP_200_OK)

    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.message)
