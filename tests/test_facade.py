"""
Tests for apkforge.facade - ApkForge Top-Level Facade
=======================================================

These tests verify the ApkForge facade, the main entry point that ties
together all layers.

What's Being Tested:
    - Initialization and shutdown lifecycle
    - Async context manager (async with)
    - Owner resolution
    - Job submission, listing, retrieval and deletion through the facade
    - Diagnostics
    - Error handling (uninitialized access, invalid payloads)

All tests use in-memory backends and the fake toolchain.
"""

from pathlib import Path

import pytest

from apkforge import ApkForge
from apkforge.core.config import ForgeConfig, ObjectStorageConfig
from apkforge.core.enums import JobStage
from apkforge.core.exceptions import InvalidPayloadError, RecordNotFoundError
from apkforge.infrastructure.artifact_store import ArtifactStore
from apkforge.infrastructure.metadata_registry import MetadataRegistry
from apkforge.integrations.metadata.memory import InMemoryMetadataBackend
from apkforge.integrations.object_storage.memory import InMemoryObjectStorage
from apkforge.orchestration.cleanup import CleanupScheduler
from apkforge.orchestration.pipeline import PipelineOrchestrator
from apkforge.orchestration.sweeper import ExpirySweeper
from tests.helpers import make_forge_config


# =============================================================================
# Tests: Initialization
# =============================================================================
class TestApkForgeInit:
    def test_creates_with_defaults(self) -> None:
        forge = ApkForge()
        assert forge.config is not None
        assert forge.is_initialized is False

    def test_creates_with_custom_config(self, forge_config: ForgeConfig) -> None:
        forge = ApkForge(forge_config)
        assert forge.config is forge_config

    def test_properties(self, forge_config: ForgeConfig) -> None:
        forge = ApkForge(forge_config)
        assert isinstance(forge.store, ArtifactStore)
        assert isinstance(forge.registry, MetadataRegistry)
        assert isinstance(forge.orchestrator, PipelineOrchestrator)
        assert isinstance(forge.cleanup, CleanupScheduler)
        assert isinstance(forge.sweeper, ExpirySweeper)

    def test_object_storage_from_config(self, tmp_path: Path) -> None:
        config = make_forge_config(tmp_path, object_storage=ObjectStorageConfig(backend="memory"))
        forge = ApkForge(config)
        assert isinstance(forge.store.object_storage, InMemoryObjectStorage)


# =============================================================================
# Tests: Lifecycle
# =============================================================================
class TestLifecycle:
    async def test_initialize_and_shutdown(self, forge_config: ForgeConfig) -> None:
        forge = ApkForge(forge_config)
        await forge.initialize()
        assert forge.is_initialized
        assert forge.sweeper.running
        await forge.shutdown()
        assert not forge.is_initialized
        assert not forge.sweeper.running

    async def test_double_initialize_and_shutdown(self, forge_config: ForgeConfig) -> None:
        forge = ApkForge(forge_config)
        await forge.initialize()
        await forge.initialize()
        await forge.shutdown()
        await forge.shutdown()

    async def test_context_manager(self, forge_config: ForgeConfig) -> None:
        async with ApkForge(forge_config) as forge:
            assert forge.is_initialized
        assert not forge.is_initialized

    async def test_shutdown_disconnects_backend(self, forge_config: ForgeConfig) -> None:
        backend = InMemoryMetadataBackend()
        async with ApkForge(forge_config, metadata_backend=backend):
            assert await backend.ping() is True
        assert await backend.ping() is False

    async def test_operations_require_initialize(self, forge_config: ForgeConfig) -> None:
        forge = ApkForge(forge_config)
        with pytest.raises(RuntimeError, match="not initialized"):
            await forge.submit({"apiUrl": "x"})
        with pytest.raises(RuntimeError):
            await forge.list_artifacts()
        with pytest.raises(RuntimeError):
            await forge.retrieve("a1")


# =============================================================================
# Tests: Owner Resolution
# =============================================================================
class TestResolveOwner:
    def test_explicit_owner_wins(self, forge_config: ForgeConfig) -> None:
        forge = ApkForge(forge_config)
        assert forge.resolve_owner("alice", {"userId": "bob"}) == "alice"

    def test_payload_user_id(self, forge_config: ForgeConfig) -> None:
        assert ApkForge(forge_config).resolve_owner(None, {"userId": 42}) == "42"

    def test_default_owner(self, forge_config: ForgeConfig) -> None:
        assert ApkForge(forge_config).resolve_owner(None, {"apiUrl": "x"}) == "guest"

    @pytest.mark.parametrize("owner", ["../etc", "a/b", "a\\b", "bad\nid", "   "])
    def test_unsafe_owner_rejected(self, forge_config: ForgeConfig, owner: str) -> None:
        with pytest.raises(InvalidPayloadError) as exc_info:
            ApkForge(forge_config).resolve_owner(owner, {})
        assert exc_info.value.error_code == "INVALID_OWNER_ID"


# =============================================================================
# Tests: Jobs and Artifacts
# =============================================================================
class TestSubmit:
    async def test_submit_produces_artifact(self, forge: ApkForge) -> None:
        job = await forge.submit({"apiUrl": "https://example.com", "userId": "u-7"})

        assert job.stage == JobStage.READY
        assert job.record.owner_id == "u-7"
        listed = await forge.list_artifacts("u-7")
        assert [r.artifact_id for r in listed] == [job.record.artifact_id]

    async def test_invalid_payload_raises_before_any_work(
        self, forge: ApkForge, forge_config: ForgeConfig
    ) -> None:
        with pytest.raises(InvalidPayloadError):
            await forge.submit({})
        assert not Path(forge_config.workspace.root_dir).exists()

    async def test_explicit_source_artifact(self, forge: ApkForge, tmp_path: Path) -> None:
        job = await forge.submit({"apiUrl": "x"}, source_artifact=tmp_path / "missing.apk")
        assert job.stage == JobStage.FAILED
        assert job.error.error_code == "SOURCE_ARTIFACT_MISSING"

    async def test_list_defaults_to_default_owner(self, forge: ApkForge) -> None:
        job = await forge.submit({"apiUrl": "x"})
        assert [r.artifact_id for r in await forge.list_artifacts()] == [job.record.artifact_id]

    async def test_retrieve_and_delete(self, forge: ApkForge) -> None:
        job = await forge.submit({"apiUrl": "x"})

        download = await forge.retrieve(job.record.artifact_id)
        assert download.local_path is not None

        await forge.delete(job.record.artifact_id)
        with pytest.raises(RecordNotFoundError):
            await forge.retrieve(job.record.artifact_id)

    async def test_sweep_with_nothing_expired(self, forge: ApkForge) -> None:
        await forge.submit({"apiUrl": "x"})
        report = await forge.sweep_expired()
        assert report.removed == []


# =============================================================================
# Tests: Diagnostics
# =============================================================================
class TestDiagnostics:
    async def test_report(self, forge: ApkForge) -> None:
        await forge.submit({"apiUrl": "x"})

        report = await forge.diagnostics()

        assert report["source_artifact"]["exists"] is True
        assert report["source_artifact"]["size_bytes"] > 0
        assert report["toolchain"]["probe"]["available"] is True
        assert report["storage"]["metadata_backend"] == "memory"
        assert report["storage"]["metadata_healthy"] is True
        assert report["storage"]["record_count"] == 1
        assert report["background"]["sweeper_running"] is True

    async def test_missing_source_is_reported(self, tmp_path: Path) -> None:
        config = make_forge_config(tmp_path, source_artifact_path=str(tmp_path / "none.apk"))
        async with ApkForge(config) as forge:
            report = await forge.diagnostics()
        assert report["source_artifact"]["exists"] is False
        assert report["source_artifact"]["size_bytes"] is None
