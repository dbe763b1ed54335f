"""
Filesystem storage for client backups.

Simple file I/O - no database interaction. Backups are opaque JSON blobs
stored as <root>/<tag>/<id>.json; the agent never looks inside them.

All public methods are async and run blocking filesystem calls through
asyncio.to_thread() / aiofiles so slow storage does not stall deploys.
"""

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Union

import aiofiles

from config.paths import LOG_DIR_NAME
from models.request_models import BackupEntry

logger = logging.getLogger(__name__)

# Top-level names under the data directory that are not backup tags
RESERVED_TAGS = {LOG_DIR_NAME}


class BackupPathError(ValueError):
    """Requested tag/id resolves outside the backup directory."""


class BackupStore:
    """Tag/id scoped backup blobs under a single root directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def resolve(self, *parts: str) -> Path:
        """
        Join `parts` onto the root and make sure the result stays inside it.

        Raises:
            BackupPathError: The path escapes the root or targets a reserved directory
        """
        candidate = self.root.joinpath(*parts).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise BackupPathError(f"path escapes backup directory: {'/'.join(parts)}")
        relative = candidate.relative_to(self.root).parts
        if relative and relative[0] in RESERVED_TAGS:
            raise BackupPathError(f"reserved path: {'/'.join(parts)}")
        return candidate

    async def list_backups(self, tag: str) -> List[str]:
        """
        List backup file names stored under a tag (directories are skipped).

        Raises:
            BackupPathError: Invalid tag
            OSError: Tag directory cannot be read
        """
        tag_dir = self.resolve(tag)

        def _list():
            return sorted(entry.name for entry in tag_dir.iterdir() if not entry.is_dir())

        names = await asyncio.to_thread(_list)
        logger.info(f"List => where tag = {tag} ({len(names)} entries)")
        return names

    async def save_backup(self, entry: BackupEntry) -> Path:
        """
        Store a backup as <tag>/<id>.json, replacing any previous one.

        Returns:
            Path of the written file
        """
        tag_dir = self.resolve(entry.tag)
        target = self.resolve(entry.tag, f"{entry.id}.json")
        if target.parent != tag_dir:
            raise BackupPathError(f"backup id must not contain path separators: {entry.id}")

        await asyncio.to_thread(tag_dir.mkdir, parents=True, exist_ok=True)
        await self._atomic_write(target, entry.model_dump_json().encode("utf-8"))

        logger.info(f"Backup : id = {entry.id}, tag = {entry.tag}, files.length = {len(entry.files)}")
        return target

    async def delete_backups(self, tag: str, ids: List[str]) -> int:
        """
        Remove backups (files or directories) by id. Missing ids are ignored.

        Returns:
            Number of entries actually removed
        """
        tag_dir = self.resolve(tag)
        targets = []
        for backup_id in ids:
            if not backup_id:
                continue
            target = self.resolve(tag, backup_id)
            if target.parent != tag_dir:
                raise BackupPathError(f"backup id must not contain path separators: {backup_id}")
            targets.append(target)

        def _delete() -> int:
            removed = 0
            for target in targets:
                if target.is_dir():
                    shutil.rmtree(target)
                elif target.exists():
                    target.unlink()
                else:
                    continue
                removed += 1
            return removed

        removed = await asyncio.to_thread(_delete)
        logger.info(f"Remove => where tag = {tag} and id in {','.join(ids)} ({removed} removed)")
        return removed

    async def read_backup(self, tag: str, backup_id: str) -> bytes:
        """
        Read a stored backup file.

        Raises:
            BackupPathError: Invalid tag/id
            OSError: File missing or unreadable
        """
        target = self.resolve(tag, backup_id)
        async with aiofiles.open(target, 'rb') as f:
            return await f.read()

    async def _atomic_write(self, target: Path, content: bytes) -> None:
        """Write content atomically using temp file + rename pattern."""
        fd, temp_path = tempfile.mkstemp(dir=target.parent, suffix='.tmp')
        try:
            async with aiofiles.open(fd, 'wb', closefd=True) as f:
                await f.write(content)
            await asyncio.to_thread(Path(temp_path).chmod, 0o644)
            await asyncio.to_thread(Path(temp_path).replace, target)
        except Exception:
            await asyncio.to_thread(Path(temp_path).unlink, True)  # missing_ok=True
            raise
