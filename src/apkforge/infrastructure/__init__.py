"""
apkforge.infrastructure - Process, Filesystem & Storage Layer
===============================================================

The components the pipeline drives to do real work:

    ┌─────────────── ORCHESTRATION LAYER ─────────────────┐
    │  PipelineOrchestrator, CleanupScheduler, Sweeper     │
    └─────────────────────┬───────────────────────────────┘
                          │
    ┌─────────────── INFRASTRUCTURE LAYER ────────────────┐
    │  ToolInvoker        child processes, timeout, cap     │
    │  WorkspaceManager   per-job directories               │
    │  ConfigPatcher      embedded config replacement       │
    │  ArtifactStore      local copy + remote mirror        │
    │  MetadataRegistry   records, expiry, per-id locks     │
    └──────────────────────────────────────────────────────┘

Usage:
    from apkforge.infrastructure import ToolInvoker, WorkspaceManager
"""

from apkforge.infrastructure.artifact_store import ArtifactStore
from apkforge.infrastructure.config_patcher import ConfigPatcher
from apkforge.infrastructure.metadata_registry import MetadataRegistry
from apkforge.infrastructure.tool_invoker import ToolInvoker
from apkforge.infrastructure.workspace import WorkspaceManager

__all__ = [
    "ArtifactStore",
    "ConfigPatcher",
    "MetadataRegistry",
    "ToolInvoker",
    "WorkspaceManager",
]
