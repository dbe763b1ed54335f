"""
Configuration file swap and restore.

Content-agnostic: this module only moves bytes. The previous file content
(the snapshot) is returned to the caller and held in memory for the
duration of one deploy; nothing is persisted besides the target file.

Writes use the temp file + rename pattern so an interrupted write never
leaves a half-written configuration behind.
"""

import asyncio
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Optional, Union

import aiofiles

from .errors import ConfigWriteError

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644

PathLike = Union[str, Path]


class ConfigSwapManager:
    """Reads, replaces and restores a single configuration file."""

    async def read_snapshot(self, path: PathLike) -> Optional[bytes]:
        """
        Read the current configuration for later restoration.

        A failed read is not an error for the deploy: it only means there is
        nothing to roll back to.

        Returns:
            File bytes, or None if the file could not be read
        """
        try:
            async with aiofiles.open(path, 'rb') as f:
                return await f.read()
        except (OSError, ValueError) as e:
            logger.warning(f"No snapshot for {path!r}: {e}")
            return None

    async def write(self, path: PathLike, content: bytes) -> None:
        """
        Replace the file at `path` with `content` atomically.

        Symlinks are followed: the file they point to is replaced and the
        link itself is left in place. Permission bits of an existing file
        are kept; new files get 0644.

        Raises:
            ConfigWriteError: The path could not be resolved or the temp file
                could not be written or renamed. The original file is
                unchanged in that case.
        """
        target = await asyncio.to_thread(resolve_target, path)
        mode = await asyncio.to_thread(_existing_mode, target)

        try:
            fd, temp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix='.tmp')
        except (OSError, ValueError) as e:
            raise ConfigWriteError(f"cannot write {target}: {e}")

        try:
            async with aiofiles.open(fd, 'wb', closefd=True) as f:
                await f.write(content)
            await asyncio.to_thread(os.chmod, temp_path, mode)
            await asyncio.to_thread(os.replace, temp_path, target)
        except OSError as e:
            await asyncio.to_thread(Path(temp_path).unlink, True)  # missing_ok=True
            raise ConfigWriteError(f"cannot write {target}: {e}")

        logger.debug(f"Wrote {len(content)} bytes to {target}")

    async def swap(self, path: PathLike, new_content: bytes) -> Optional[bytes]:
        """
        Snapshot the current file, then replace it with `new_content`.

        Returns:
            The previous content, or None if there was nothing readable
        """
        previous = await self.read_snapshot(path)
        await self.write(path, new_content)
        return previous

    async def restore(self, path: PathLike, previous: bytes) -> None:
        """Put a snapshot taken by swap() back in place."""
        await self.write(path, previous)
        logger.info(f"Restored previous configuration at {path}")


def resolve_target(path: PathLike) -> Path:
    """
    Follow symlinks to the file that actually gets replaced.

    Raises:
        ConfigWriteError: The path cannot be resolved (symlink loop, NUL byte)
    """
    try:
        return Path(path).resolve()
    except (OSError, RuntimeError, ValueError) as e:
        raise ConfigWriteError(f"cannot resolve {path!r}: {e}")


def _existing_mode(target: Path) -> int:
    try:
        return stat.S_IMODE(target.stat().st_mode)
    except (OSError, ValueError):
        return DEFAULT_FILE_MODE
