"""
apkforge.core - Foundation Layer
==================================

Building blocks every other apkforge package depends on:

    - config:      ForgeConfig and its nested sections
    - enums:       JobStage, PipelineStage, ErrorKind, ErrorCategory, backend selectors
    - models:      Job, ArtifactRecord, ToolResult, WorkspaceHandle, ...
    - exceptions:  Structured exception hierarchy
    - logging:     structlog configuration

Dependency Rule:
    core/ depends on nothing else in the apkforge package.
"""

from apkforge.core.config import (
    ForgeConfig,
    MetadataConfig,
    ObjectStorageConfig,
    RedisConfig,
    StorageConfig,
    ToolchainConfig,
    WorkspaceConfig,
    load_config,
)
from apkforge.core.enums import (
    ErrorCategory,
    ErrorKind,
    JobStage,
    MetadataBackendType,
    ObjectStorageType,
    PipelineStage,
)
from apkforge.core.exceptions import (
    ApkForgeError,
    ConfigNotFoundError,
    ConfigParseError,
    ConfigurationError,
    InvalidPayloadError,
    MetadataBackendError,
    RecordExpiredError,
    RecordNotFoundError,
    RemoteStorageError,
    SigningArtifactMissingError,
    SourceArtifactMissingError,
    StorageError,
    ToolError,
    ToolExecutionError,
    ToolOutputOverflowError,
    ToolTimeoutError,
    ToolUnavailableError,
    WorkspaceBusyError,
    WorkspaceCleanupError,
    WorkspaceError,
)
from apkforge.core.models import (
    ArtifactDownload,
    ArtifactRecord,
    Job,
    JobError,
    SweepReport,
    ToolResult,
    WorkspaceHandle,
)

__all__ = [
    # Config
    "ForgeConfig",
    "ToolchainConfig",
    "WorkspaceConfig",
    "StorageConfig",
    "MetadataConfig",
    "RedisConfig",
    "ObjectStorageConfig",
    "load_config",
    # Enums
    "JobStage",
    "PipelineStage",
    "ErrorKind",
    "ErrorCategory",
    "MetadataBackendType",
    "ObjectStorageType",
    # Models
    "Job",
    "JobError",
    "ArtifactRecord",
    "ArtifactDownload",
    "ToolResult",
    "WorkspaceHandle",
    "SweepReport",
    # Exceptions
    "ApkForgeError",
    "ConfigurationError",
    "InvalidPayloadError",
    "SourceArtifactMissingError",
    "ConfigNotFoundError",
    "ConfigParseError",
    "ToolError",
    "ToolUnavailableError",
    "ToolTimeoutError",
    "ToolExecutionError",
    "ToolOutputOverflowError",
    "SigningArtifactMissingError",
    "StorageError",
    "RemoteStorageError",
    "MetadataBackendError",
    "WorkspaceError",
    "WorkspaceCleanupError",
    "WorkspaceBusyError",
    "RecordNotFoundError",
    "RecordExpiredError",
]
