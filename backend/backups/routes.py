"""
Backup API routes for ConfSync Agent

Provides REST endpoints for:
- Listing, uploading and deleting backups (/backup)
- Downloading a single backup (/sync)
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from auth.token_auth import require_agent_auth
from models.request_models import BackupEntry
from security.audit import security_audit
from utils.client_ip import get_client_ip
from .storage import BackupPathError, BackupStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["backups"], dependencies=[Depends(require_agent_auth)])


def get_backup_store(request: Request) -> BackupStore:
    """Get the backup store (dependency)."""
    return request.app.state.backup_store


def _forbidden(request: Request, exc: BackupPathError) -> HTTPException:
    security_audit.log_path_traversal_attempt(
        client_ip=get_client_ip(request),
        endpoint=request.url.path,
        attempted_path=str(exc)
    )
    logger.warning(f"Rejected backup path from {get_client_ip(request)}: {exc}")
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="403")


@router.get("/backup", response_model=List[str])
async def list_backups(
    request: Request,
    tag: str = Query(""),
    store: BackupStore = Depends(get_backup_store)
):
    """List backup file names stored under a tag."""
    try:
        return await store.list_backups(tag)
    except BackupPathError as e:
        raise _forbidden(request, e)
    except OSError as e:
        logger.error(f"Failed to list backups for tag {tag!r}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.post("/backup", status_code=status.HTTP_201_CREATED)
async def upload_backup(
    entry: BackupEntry,
    request: Request,
    store: BackupStore = Depends(get_backup_store)
):
    """Store a backup as <tag>/<id>.json."""
    try:
        await store.save_backup(entry)
    except BackupPathError as e:
        raise _forbidden(request, e)
    except OSError as e:
        logger.error(f"Backup err {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return Response(status_code=status.HTTP_201_CREATED)


@router.delete("/backup")
async def delete_backups(
    request: Request,
    tag: str = Query(""),
    ids: str = Query(""),
    store: BackupStore = Depends(get_backup_store)
):
    """Delete backups by comma-separated ids."""
    try:
        await store.delete_backups(tag, ids.split(","))
    except BackupPathError as e:
        raise _forbidden(request, e)
    except OSError as e:
        logger.error(f"Failed to delete backups {ids!r} in tag {tag!r}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return Response(status_code=status.HTTP_200_OK)


@router.get("/sync")
async def download_backup(
    request: Request,
    tag: str = Query(""),
    id: str = Query(""),
    store: BackupStore = Depends(get_backup_store)
):
    """Return the stored backup bytes as JSON."""
    try:
        content = await store.read_backup(tag, id)
    except BackupPathError as e:
        raise _forbidden(request, e)
    except OSError as e:
        logger.warning(f"Sync read failed for tag {tag!r} id {id!r}: {e}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="403")
    return Response(content=content, media_type="application/json")
