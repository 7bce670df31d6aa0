"""
Shared Test Fixtures for apkforge
===================================

Fixtures are organized by layer:

    1. Artifacts (zip-based source artifacts)
    2. Configuration (fake toolchain wired through ForgeConfig)
    3. Infrastructure (registry, store, workspaces)
    4. Facade (initialized ApkForge)

The fake toolchain is tests/fake_tools.py, run with the current interpreter,
so every pipeline test starts real child processes.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from apkforge.core.config import ForgeConfig, StorageConfig
from apkforge.facade import ApkForge
from apkforge.infrastructure.artifact_store import ArtifactStore
from apkforge.infrastructure.metadata_registry import MetadataRegistry
from apkforge.infrastructure.workspace import WorkspaceManager
from apkforge.integrations.metadata.memory import InMemoryMetadataBackend
from tests.helpers import CONFIG_PATH, FakeClock, build_artifact, make_forge_config


# =============================================================================
# Artifacts
# =============================================================================

@pytest.fixture
def source_apk(tmp_path: Path) -> Path:
    """Source artifact with an embedded config file."""
    uploads = tmp_path / "uploads"
    uploads.mkdir(exist_ok=True)
    return build_artifact(
        uploads / "release.apk",
        {
            CONFIG_PATH: {"apiUrl": "https://old.example.com", "theme": "dark"},
            "classes.dex": b"\x64\x65\x78\x0a035\x00",
            "AndroidManifest.xml": "<manifest package='com.example.app'/>",
        },
    )


@pytest.fixture
def source_apk_without_config(tmp_path: Path) -> Path:
    """Source artifact missing the embedded config file."""
    uploads = tmp_path / "uploads"
    uploads.mkdir(exist_ok=True)
    return build_artifact(
        uploads / "no-config.apk",
        {"classes.dex": b"\x64\x65\x78\x0a035\x00"},
    )


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def forge_config(tmp_path: Path) -> ForgeConfig:
    """ForgeConfig using the fake toolchain and tmp_path directories."""
    return make_forge_config(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Infrastructure
# =============================================================================

@pytest.fixture
def metadata_backend() -> InMemoryMetadataBackend:
    return InMemoryMetadataBackend()


@pytest.fixture
def registry(metadata_backend: InMemoryMetadataBackend, clock: FakeClock) -> MetadataRegistry:
    return MetadataRegistry(metadata_backend, ttl_seconds=3600, clock=clock)


@pytest.fixture
def store(registry: MetadataRegistry, tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(registry, StorageConfig(artifact_dir=str(tmp_path / "user_apks")))


@pytest.fixture
def workspaces(tmp_path: Path) -> WorkspaceManager:
    return WorkspaceManager(tmp_path / "work")


# =============================================================================
# Facade
# =============================================================================

@pytest.fixture
async def forge(forge_config: ForgeConfig, source_apk: Path):
    """Initialized ApkForge on the fake toolchain; shut down after the test."""
    instance = ApkForge(forge_config)
    await instance.initialize()
    yield instance
    await instance.shutdown()
