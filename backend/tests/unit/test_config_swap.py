"""
Unit tests for ConfigSwapManager.

Tests verify:
- Snapshot read (present, missing)
- Atomic replace keeps permission bits and leaves no temp files
- Failed writes raise ConfigWriteError and leave the original untouched
- Restore puts the snapshot back
- Symlinks are written through, never replaced
- Paths the OS rejects (NUL bytes) surface as snapshot misses or ConfigWriteError
"""

import os
import stat
from unittest.mock import patch

import pytest

from deployment.config_swap import ConfigSwapManager, resolve_target
from deployment.errors import ConfigWriteError


class TestSnapshot:

    @pytest.mark.asyncio
    async def test_reads_existing_file(self, config_file, config_a):
        manager = ConfigSwapManager()
        assert await manager.read_snapshot(config_file) == config_a

    @pytest.mark.asyncio
    async def test_missing_file_returns_none(self, tmp_path):
        manager = ConfigSwapManager()
        assert await manager.read_snapshot(tmp_path / "missing.json") is None

    @pytest.mark.asyncio
    async def test_directory_returns_none(self, tmp_path):
        manager = ConfigSwapManager()
        assert await manager.read_snapshot(tmp_path) is None


class TestWrite:

    @pytest.mark.asyncio
    async def test_replaces_content_wholesale(self, config_file, config_b):
        manager = ConfigSwapManager()
        await manager.write(config_file, config_b)

        assert config_file.read_bytes() == config_b

    @pytest.mark.asyncio
    async def test_shorter_content_is_not_appended(self, config_file):
        manager = ConfigSwapManager()
        await manager.write(config_file, b"{}")

        assert config_file.read_bytes() == b"{}"

    @pytest.mark.asyncio
    async def test_keeps_permission_bits(self, config_file, config_b):
        os.chmod(config_file, 0o640)
        manager = ConfigSwapManager()
        await manager.write(config_file, config_b)

        assert stat.S_IMODE(config_file.stat().st_mode) == 0o640

    @pytest.mark.asyncio
    async def test_new_file_gets_default_mode(self, tmp_path, config_b):
        target = tmp_path / "new.json"
        manager = ConfigSwapManager()
        await manager.write(target, config_b)

        assert target.read_bytes() == config_b
        assert stat.S_IMODE(target.stat().st_mode) == 0o644

    @pytest.mark.asyncio
    async def test_no_temp_files_left_behind(self, config_file, config_b):
        manager = ConfigSwapManager()
        await manager.write(config_file, config_b)

        assert sorted(p.name for p in config_file.parent.iterdir()) == [config_file.name]

    @pytest.mark.asyncio
    async def test_missing_directory_raises(self, tmp_path, config_b):
        manager = ConfigSwapManager()
        with pytest.raises(ConfigWriteError):
            await manager.write(tmp_path / "nope" / "config.json", config_b)

    @pytest.mark.asyncio
    async def test_failed_rename_keeps_original(self, config_file, config_a, config_b):
        manager = ConfigSwapManager()
        with patch('deployment.config_swap.os.replace', side_effect=OSError("read-only file system")):
            with pytest.raises(ConfigWriteError, match="read-only"):
                await manager.write(config_file, config_b)

        assert config_file.read_bytes() == config_a
        assert sorted(p.name for p in config_file.parent.iterdir()) == [config_file.name]


class TestSwapAndRestore:

    @pytest.mark.asyncio
    async def test_swap_returns_previous(self, config_file, config_a, config_b):
        manager = ConfigSwapManager()
        previous = await manager.swap(config_file, config_b)

        assert previous == config_a
        assert config_file.read_bytes() == config_b

    @pytest.mark.asyncio
    async def test_swap_without_existing_file(self, tmp_path, config_b):
        target = tmp_path / "fresh.json"
        manager = ConfigSwapManager()
        previous = await manager.swap(target, config_b)

        assert previous is None
        assert target.read_bytes() == config_b

    @pytest.mark.asyncio
    async def test_restore(self, config_file, config_a, config_b):
        manager = ConfigSwapManager()
        previous = await manager.swap(config_file, config_b)
        await manager.restore(config_file, previous)

        assert config_file.read_bytes() == config_a


class TestSymlinkedTarget:

    @pytest.mark.asyncio
    async def test_write_goes_through_link(self, config_file, config_b):
        link = config_file.parent / "current.json"
        link.symlink_to(config_file)
        manager = ConfigSwapManager()

        await manager.write(link, config_b)

        assert link.is_symlink()
        assert config_file.read_bytes() == config_b
        assert sorted(p.name for p in config_file.parent.iterdir()) == ["current.json", config_file.name]

    @pytest.mark.asyncio
    async def test_restore_goes_through_link(self, config_file, config_a, config_b):
        link = config_file.parent / "current.json"
        link.symlink_to(config_file)
        manager = ConfigSwapManager()

        previous = await manager.swap(link, config_b)
        await manager.restore(link, previous)

        assert link.is_symlink()
        assert config_file.read_bytes() == config_a

    @pytest.mark.asyncio
    async def test_link_target_mode_is_kept(self, config_file, config_b):
        os.chmod(config_file, 0o600)
        link = config_file.parent / "current.json"
        link.symlink_to(config_file)

        await ConfigSwapManager().write(link, config_b)

        assert stat.S_IMODE(config_file.stat().st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_dangling_link_creates_target(self, tmp_path, config_b):
        target = tmp_path / "real.json"
        link = tmp_path / "link.json"
        link.symlink_to(target)

        await ConfigSwapManager().write(link, config_b)

        assert link.is_symlink()
        assert target.read_bytes() == config_b


class TestUnusablePaths:

    @pytest.mark.asyncio
    async def test_nul_byte_snapshot_is_none(self):
        assert await ConfigSwapManager().read_snapshot("/tmp/conf\x00sync.json") is None

    @pytest.mark.asyncio
    async def test_nul_byte_write_raises_config_write_error(self, config_b):
        with pytest.raises(ConfigWriteError):
            await ConfigSwapManager().write("/tmp/conf\x00sync.json", config_b)

    def test_resolve_target_follows_links(self, config_file):
        link = config_file.parent / "current.json"
        link.symlink_to(config_file)

        assert resolve_target(link) == config_file.resolve()
        assert resolve_target(str(link)) == config_file.resolve()
