"""
apkforge - Per-Request Android Artifact Customization
=======================================================

apkforge takes a prebuilt release artifact, replaces its embedded JSON
configuration with a caller-supplied document, and returns a freshly signed
artifact with a limited lifetime:

    unpack  →  patch config  →  repack  →  sign  →  store (TTL)

Architecture Layers (top to bottom):
    1. Orchestration Layer  - PipelineOrchestrator, CleanupScheduler, ExpirySweeper
    2. Infrastructure Layer - ToolInvoker, Workspaces, ConfigPatcher, ArtifactStore
    3. Integration Layer    - Toolchain, metadata backends, object storage

Quick Start:
    >>> from apkforge import ApkForge
    >>> async with ApkForge() as forge:
    ...     job = await forge.submit({"apiUrl": "https://example.com"})
"""

# =============================================================================
# Package Version
# =============================================================================
__version__ = "0.1.0"

from apkforge.facade import ApkForge

__all__ = ["ApkForge", "__version__"]
