"""Tests for the Filesystem façade."""

from __future__ import annotations

import pytest
from conftest import LifecycleMemoryAdapter, MemoryAdapter, WatchingMemoryAdapter

from mountvfs.config import FilesystemConfig
from mountvfs.filesystem import Filesystem
from mountvfs.fs.adapters import AdapterRegistration
from mountvfs.fs.exceptions import BackendOperationError, ConfigError, StartupError
from mountvfs.fs.mime import DEFAULT_MIME_TYPE
from mountvfs.fs.types import Mountpoint, VFSRequest

# =========================================================================
# Lifecycle
# =========================================================================


class TestInit:
    async def test_mounts_in_configured_order(self, fs: Filesystem):
        assert [m.name for m in fs.list_mountpoints()] == ["home", "shared"]

    async def test_configured_mount_defaults(self, fs: Filesystem):
        home = fs.list_mountpoints()[0]
        assert home.root == "home:/"
        assert home.adapter == "memory"
        assert home.attributes == {"root": "/home"}

    async def test_default_adapter_always_registered(self, fs: Filesystem):
        assert "system" in fs.adapters

    async def test_init_twice_rejected(self, fs: Filesystem):
        with pytest.raises(StartupError, match="already"):
            await fs.init()

    async def test_requires_init(self):
        fs = Filesystem()
        with pytest.raises(StartupError, match="not initialized"):
            await fs.request("exists", VFSRequest(fields={"path": "home:/"}))
        with pytest.raises(StartupError, match="not initialized"):
            await fs.mount({"name": "home"})

    async def test_factory_failure_aborts_init(self):
        def broken(ctx):
            raise OSError("backend offline")

        fs = Filesystem(adapters=[AdapterRegistration("broken", broken)])
        with pytest.raises(OSError, match="offline"):
            await fs.init()

    async def test_unknown_adapter_in_config(self):
        fs = Filesystem(FilesystemConfig(mountpoints=({"name": "x", "adapter": "ghost"},)))
        with pytest.raises(ConfigError, match="ghost"):
            await fs.init()

    async def test_lifecycle_hooks(self):
        fs = Filesystem(adapters=[AdapterRegistration("life", LifecycleMemoryAdapter)])
        await fs.init()
        adapter = fs.adapters.get("life")
        assert isinstance(adapter, LifecycleMemoryAdapter)
        assert adapter.init_count == 1
        await fs.destroy()
        await fs.destroy()
        assert adapter.destroy_count == 1

    async def test_destroy_drops_mountpoints(self, fs: Filesystem):
        await fs.destroy()
        assert fs.list_mountpoints() == []

    async def test_destroy_before_init(self):
        await Filesystem().destroy()

    async def test_context_manager(self):
        async with Filesystem(
            FilesystemConfig(mountpoints=({"name": "m", "adapter": "memory"},)),
            adapters=[AdapterRegistration("memory", MemoryAdapter)],
        ) as fs:
            assert await fs.request("exists", VFSRequest(fields={"path": "m:/"})) is True
        assert fs.list_mountpoints() == []


# =========================================================================
# Mount / Unmount
# =========================================================================


class TestMount:
    async def test_mount_adds_one_entry_with_new_id(self, fs: Filesystem):
        before = fs.list_mountpoints()
        seen = {m.id for m in before}
        mp = await fs.mount({"name": "extra", "adapter": "memory"})
        after = fs.list_mountpoints()
        assert len(after) == len(before) + 1
        assert after[-1] is mp
        assert mp.id not in seen

    async def test_mount_defaults(self, fs: Filesystem):
        mp = await fs.mount({"name": "extra", "adapter": "memory"})
        assert mp.root == "extra:/"
        assert mp.attributes == {}

    async def test_mount_duplicate_name(self, fs: Filesystem):
        a = await fs.mount({"name": "dup", "adapter": "memory"})
        b = await fs.mount({"name": "dup", "adapter": "memory"})
        assert a is not b
        assert a.id != b.id
        assert [m.name for m in fs.list_mountpoints()].count("dup") == 2

    async def test_mount_accepts_mountpoint(self, fs: Filesystem):
        mp = Mountpoint(name="obj", adapter="memory")
        assert await fs.mount(mp) is mp

    async def test_mount_unknown_adapter(self, fs: Filesystem):
        with pytest.raises(ConfigError):
            await fs.mount({"name": "x", "adapter": "ghost"})
        assert "x" not in [m.name for m in fs.list_mountpoints()]

    async def test_unmount(self, fs: Filesystem):
        mp = await fs.mount({"name": "extra", "adapter": "memory"})
        assert await fs.unmount(mp) is True
        assert mp not in fs.list_mountpoints()
        assert await fs.unmount(mp) is False

    async def test_unmount_never_mounted(self, fs: Filesystem):
        assert await fs.unmount(Mountpoint(name="ghost")) is False

    async def test_unmount_closes_watch_exactly_once(
        self, fs: Filesystem, memory: WatchingMemoryAdapter
    ):
        mp = await fs.mount({"name": "w", "adapter": "memory", "attributes": {"root": "/w"}})
        handle = memory.watches[-1]
        await fs.unmount(mp)
        await fs.unmount(mp)
        await fs.destroy()
        assert handle.close_count == 1

    async def test_unmount_lookalike_keeps_live_watch(
        self, fs: Filesystem, memory: WatchingMemoryAdapter
    ):
        mp = await fs.mount({"name": "w", "adapter": "memory", "attributes": {"root": "/w"}})
        lookalike = Mountpoint(name="w", id=mp.id, adapter="memory", attributes={"root": "/w"})
        assert await fs.unmount(lookalike) is False
        assert memory.watches[-1].close_count == 0
        assert fs.watches.get(mp.id) is not None
        assert mp in fs.list_mountpoints()

    async def test_failed_watch_attach_leaves_no_mountpoint(self):
        class BrokenWatchAdapter(MemoryAdapter):
            def watch(self, mountpoint, on_change):
                raise BackendOperationError("cannot watch", code="ENOENT")

        async with Filesystem(
            adapters=[AdapterRegistration("broken", BrokenWatchAdapter)]
        ) as other:
            with pytest.raises(BackendOperationError):
                await other.mount(
                    {"name": "b", "adapter": "broken", "attributes": {"root": "/b"}}
                )
            assert other.list_mountpoints() == []
            assert len(other.watches) == 0


# =========================================================================
# MIME
# =========================================================================


class TestMime:
    async def test_filename_override(self, fs: Filesystem):
        assert fs.mime("home:/src/Makefile") == "text/x-makefile"

    async def test_extension(self, fs: Filesystem):
        assert fs.mime("home:/a.json") == "application/json"

    async def test_fallback(self, fs: Filesystem):
        assert fs.mime("unknown.xyz123") == DEFAULT_MIME_TYPE

    def test_define_from_config(self):
        fs = Filesystem(
            FilesystemConfig(
                mime_define={"application/x-report": ["report"]},
                mime_filenames={"report.final.json": "application/x-final"},
            )
        )
        assert fs.mime("q3.report") == "application/x-report"
        assert fs.mime("report.final.json") == "application/x-final"
        assert fs.mime("other.json") == "application/json"
