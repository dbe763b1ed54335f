"""
Backup module for ConfSync Agent

Components:
    - storage: Tag/id scoped JSON blobs on the local filesystem
    - routes: /backup (list, upload, delete) and /sync (download)
"""

from .storage import BackupPathError, BackupStore
from . import routes

__all__ = [
    "BackupPathError",
    "BackupStore",
    "routes",
]
