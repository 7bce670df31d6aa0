"""
Tests for apkforge.infrastructure.workspace
=============================================

What's Being Tested:
    - create(): unique directories with the standard layout
    - destroy(): idempotent removal, path guard, busy/failed removal mapping
"""

import errno
import shutil
from pathlib import Path

import pytest

from apkforge.core.exceptions import (
    WorkspaceBusyError,
    WorkspaceCleanupError,
    WorkspaceError,
)
from apkforge.infrastructure.workspace import WorkspaceManager


class TestCreate:
    def test_creates_layout(self, workspaces: WorkspaceManager) -> None:
        handle = workspaces.create()
        assert handle.root.is_dir()
        assert handle.unpack_dir.is_dir()
        assert handle.root.parent == workspaces.root_dir
        assert handle.root.name.startswith("apk-")

    def test_names_are_unique(self, workspaces: WorkspaceManager) -> None:
        roots = {workspaces.create().root for _ in range(50)}
        assert len(roots) == 50

    def test_creates_missing_root_dir(self, tmp_path: Path) -> None:
        manager = WorkspaceManager(tmp_path / "a" / "b")
        assert manager.create().root.is_dir()

    def test_relative_root_is_made_absolute(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        manager = WorkspaceManager("work")

        handle = manager.create()

        assert manager.root_dir == (tmp_path / "work").resolve()
        assert handle.root.is_absolute()
        assert handle.unpack_dir.is_absolute()
        assert manager.owns(handle.root)

    def test_custom_prefix_and_suffix(self, tmp_path: Path) -> None:
        manager = WorkspaceManager(tmp_path, name_prefix="job-", artifact_suffix=".zip")
        handle = manager.create()
        assert handle.root.name.startswith("job-")
        assert handle.signed_artifact.suffix == ".zip"

    def test_unwritable_root_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(WorkspaceError):
            WorkspaceManager(blocker).create()


class TestDestroy:
    def test_removes_tree(self, workspaces: WorkspaceManager) -> None:
        handle = workspaces.create()
        (handle.unpack_dir / "res").mkdir()
        (handle.unpack_dir / "res" / "strings.xml").write_text("<resources/>")

        assert workspaces.destroy(handle.root) is True
        assert not handle.root.exists()

    def test_second_destroy_is_noop(self, workspaces: WorkspaceManager) -> None:
        handle = workspaces.create()
        workspaces.destroy(handle.root)
        assert workspaces.destroy(handle.root) is False

    def test_rejects_foreign_path(self, workspaces: WorkspaceManager, tmp_path: Path) -> None:
        foreign = tmp_path / "important"
        foreign.mkdir()
        with pytest.raises(WorkspaceCleanupError) as exc_info:
            workspaces.destroy(foreign)
        assert exc_info.value.error_code == "WORKSPACE_PATH_REJECTED"
        assert foreign.exists()

    def test_rejects_nested_path(self, workspaces: WorkspaceManager) -> None:
        handle = workspaces.create()
        with pytest.raises(WorkspaceCleanupError):
            workspaces.destroy(handle.unpack_dir)

    def test_busy_maps_to_busy_error(
        self, workspaces: WorkspaceManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        handle = workspaces.create()

        def busy(path) -> None:
            raise OSError(errno.EBUSY, "Device or resource busy", str(path))

        monkeypatch.setattr(shutil, "rmtree", busy)
        with pytest.raises(WorkspaceBusyError) as exc_info:
            workspaces.destroy(handle.root)
        assert exc_info.value.details["errno"] == errno.EBUSY

    def test_other_errors_map_to_cleanup_error(
        self, workspaces: WorkspaceManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        handle = workspaces.create()

        def denied(path) -> None:
            raise PermissionError(errno.EACCES, "Permission denied", str(path))

        monkeypatch.setattr(shutil, "rmtree", denied)
        with pytest.raises(WorkspaceCleanupError) as exc_info:
            workspaces.destroy(handle.root)
        assert not isinstance(exc_info.value, WorkspaceBusyError)
