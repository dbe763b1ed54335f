#!/usr/bin/env python3
"""
ConfSync Agent - backup sync and encrypted configuration deploy agent

Endpoints (all require Bearer token + GUI.for.Cores client header):
    GET/POST/DELETE /backup   list, upload and delete backup blobs
    GET /sync                 download one backup blob
    POST /deploy              decrypt a config, swap it in, restart the
                              service and roll back if it does not come up

Errors are returned as plain text bodies, matching what the desktop client
expects from the agent.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.paths import ensure_data_dirs
from config.settings import AgentConfig, setup_logging
from backups import BackupStore, routes as backup_routes
from deployment import (
    ConfigSwapManager,
    DeployOrchestrator,
    SystemctlServiceController,
    routes as deployment_routes,
)

logger = logging.getLogger(__name__)


def create_app(
    config: AgentConfig,
    orchestrator: Optional[DeployOrchestrator] = None,
    backup_store: Optional[BackupStore] = None,
) -> FastAPI:
    """
    Build the FastAPI application for one agent configuration.

    Args:
        config: Immutable agent configuration
        orchestrator: Deploy orchestrator (default: systemctl-backed)
        backup_store: Backup store (default: rooted at config.save_path)

    Returns:
        FastAPI app with config, orchestrator and backup_store on app.state
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle"""
        scheme = "https" if config.tls_enabled else "http"
        logger.info(f"Starting ConfSync agent on {scheme}://{config.address}:{config.port}")
        if not config.secret:
            logger.warning("No --secret configured: deploy requests will be rejected")
        yield
        logger.info("Shutting down ConfSync agent...")

    app = FastAPI(
        title="ConfSync Agent",
        version="1.0.0",
        lifespan=lifespan
    )

    app.state.config = config
    app.state.orchestrator = orchestrator or DeployOrchestrator(
        config,
        SystemctlServiceController(systemctl=config.systemctl, timeout=config.command_timeout),
        ConfigSwapManager(),
    )
    app.state.backup_store = backup_store or BackupStore(config.save_path)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Render HTTP errors as plain text bodies."""
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """
        Malformed request bodies are a 400, not FastAPI's default 422.
        """
        errors = []
        for error in exc.errors():
            field = ".".join(str(x) for x in error['loc'] if x != 'body')
            errors.append(f"{field}: {error['msg']}" if field else error['msg'])

        logger.warning(f"Validation failed for {request.url.path}: {errors}")
        return PlainTextResponse("; ".join(errors) or "Invalid request data", status_code=400)

    app.include_router(backup_routes.router)
    app.include_router(deployment_routes.router)

    return app


def cli(argv: Optional[List[str]] = None) -> int:
    """Console entry point: parse flags, set up logging and serve."""
    config = AgentConfig.from_args(argv)
    try:
        config.validate()
    except ValueError as e:
        print(e)
        return 1

    ensure_data_dirs(config.save_path)
    setup_logging(config)

    app = create_app(config)

    ssl_kwargs = {}
    if config.tls_enabled:
        ssl_kwargs = {"ssl_certfile": config.cert, "ssl_keyfile": config.key}

    uvicorn.run(
        app,
        host=config.address,
        port=config.port,
        log_config=None,  # keep the handlers installed by setup_logging()
        **ssl_kwargs
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(cli())
