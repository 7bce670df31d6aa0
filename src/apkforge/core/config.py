"""
apkforge.core.config - Configuration Management
=================================================

Configuration for apkforge. Values are loaded with the following priority
(highest first):

    1. Explicit constructor arguments
    2. Environment variables (prefixed with APKFORGE_)
    3. YAML configuration file (apkforge.yaml)
    4. Default values defined in the models below

Configuration flows down from the top-level ForgeConfig:

    ForgeConfig
        ├── ToolchainConfig      → Toolchain, ToolInvoker limits
        ├── WorkspaceConfig      → WorkspaceManager, CleanupScheduler, ConfigPatcher
        ├── StorageConfig        → ArtifactStore, MetadataRegistry TTL, ExpirySweeper
        ├── MetadataConfig       → MetadataBackend (memory | redis)
        │     └── RedisConfig
        └── ObjectStorageConfig  → ObjectStorage mirror (none | memory | minio)

Usage:
    # Load from environment variables:
    config = ForgeConfig()

    # Load from YAML file:
    config = load_config("apkforge.yaml")

    # Explicit overrides:
    config = ForgeConfig(log_level="DEBUG", default_owner_id="anonymous")

Environment Variables:
    APKFORGE_LOG_LEVEL=DEBUG
    APKFORGE_SOURCE_ARTIFACT_PATH=/srv/uploads/release.apk
    APKFORGE_TOOLCHAIN__STAGE_TIMEOUT_SECONDS=600
    APKFORGE_STORAGE__TTL_SECONDS=7200
    APKFORGE_METADATA__BACKEND=redis
    APKFORGE_METADATA__REDIS__URL=redis://prod-host:6379/0
    APKFORGE_OBJECT_STORAGE__BACKEND=minio
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from apkforge.core.enums import MetadataBackendType, ObjectStorageType
from apkforge.core.exceptions import ConfigurationError


# =============================================================================
# Toolchain Configuration
# =============================================================================
# Argument-vector templates for the three external tools. Each list element
# is formatted on its own with str.format(), so a path containing spaces or
# shell metacharacters stays a single argument.
#
# Placeholders:
#   {java} {apktool_jar} {signer_jar}   → from this config
#   {source} {dest}                     → unpack / repack
#   {input} {output_dir}                → sign
# =============================================================================
class ToolchainConfig(BaseModel):
    """Configuration for the unpack, repack and sign tools.

    The defaults drive apktool and uber-apk-signer through ``java -jar``.

    Attributes:
        java_executable: Java launcher used by the default templates.
        apktool_jar: Path to apktool.jar.
        signer_jar: Path to uber-apk-signer.jar.
        unpack_command: Template for ``unpack(source, dest)``.
        repack_command: Template for ``repack(source, dest)``.
        sign_command: Template for ``sign(input, output_dir)``.
        probe_command: Preflight command proving the runtime is installed.
            Empty list disables the probe.
        required_files: Tool files that must exist before a job starts.
        signed_name_suffix: The signer writes ``{stem}{suffix}{ext}``.
        stage_timeout_seconds: Timeout for each of unpack, repack and sign.
        probe_timeout_seconds: Timeout for the preflight probe.
        max_output_bytes: Cap on combined stdout+stderr per invocation.
    """

    java_executable: str = Field(
        default="java",
        description="Java launcher (name on PATH or absolute path)",
    )
    apktool_jar: str = Field(
        default="tools/apktool.jar",
        description="Path to apktool.jar",
    )
    signer_jar: str = Field(
        default="tools/uber-apk-signer.jar",
        description="Path to uber-apk-signer.jar",
    )
    unpack_command: list[str] = Field(
        default_factory=lambda: [
            "{java}", "-jar", "{apktool_jar}", "d", "{source}", "-o", "{dest}", "--force-all",
        ],
        description="argv template for the unpack tool",
    )
    repack_command: list[str] = Field(
        default_factory=lambda: [
            "{java}", "-jar", "{apktool_jar}", "b", "{source}", "-o", "{dest}", "--force-all",
        ],
        description="argv template for the repack tool",
    )
    sign_command: list[str] = Field(
        default_factory=lambda: [
            "{java}", "-jar", "{signer_jar}",
            "--apks", "{input}", "--out", "{output_dir}",
            "--allowResign", "--verbose",
        ],
        description="argv template for the signing tool",
    )
    probe_command: list[str] = Field(
        default_factory=lambda: ["{java}", "-version"],
        description="argv template run once per job before unpacking",
    )
    required_files: list[str] = Field(
        default_factory=lambda: ["{apktool_jar}", "{signer_jar}"],
        description="Tool files (templates) that must exist before a job starts",
    )
    signed_name_suffix: str = Field(
        default="-aligned-debugSigned",
        description="Suffix the signer appends to the input file stem",
    )
    stage_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Per-stage tool timeout in seconds",
    )
    probe_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for the preflight probe in seconds",
    )
    max_output_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Cap on combined stdout+stderr bytes per invocation",
    )


# =============================================================================
# Workspace Configuration
# =============================================================================
class WorkspaceConfig(BaseModel):
    """Configuration for per-job workspaces and their cleanup.

    Attributes:
        root_dir: Parent directory for workspaces (system temp by default).
        name_prefix: Prefix of every workspace directory name.
        success_cleanup_delay_seconds: Delay before destroying a workspace
            after READY.
        failure_cleanup_delay_seconds: Delay before destroying a workspace
            after FAILED. Shorter than the success delay.
        retry_cleanup_delay_seconds: Delay before the single retry when the
            first removal finds the tree busy or non-empty.
        config_relative_path: Location of the configuration file inside the
            unpacked tree.
    """

    root_dir: str = Field(
        default_factory=tempfile.gettempdir,
        description="Directory under which workspaces are created",
    )
    name_prefix: str = Field(
        default="apk-",
        description="Prefix for workspace directory names",
    )
    success_cleanup_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Delay before workspace removal after success",
    )
    failure_cleanup_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Delay before workspace removal after failure",
    )
    retry_cleanup_delay_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Delay before the single removal retry",
    )
    config_relative_path: str = Field(
        default="assets/flutter_assets/assets/config.json",
        description="Configuration file path relative to the unpacked tree",
    )


# =============================================================================
# Storage Configuration
# =============================================================================
class StorageConfig(BaseModel):
    """Configuration for durable artifact storage and expiry.

    Attributes:
        artifact_dir: Local directory holding finished artifacts.
        artifact_suffix: File extension for stored artifacts.
        content_type: MIME type used for uploads and downloads.
        ttl_seconds: Lifetime of each artifact record, fixed at creation.
        sweep_interval_seconds: Period of the background expiry sweep.
        local_download_template: Download reference used when the remote
            mirror is unavailable. ``{artifact_id}`` is substituted.
    """

    artifact_dir: str = Field(
        default="user_apks",
        description="Directory for durable local artifact copies",
    )
    artifact_suffix: str = Field(
        default=".apk",
        description="File extension of stored artifacts",
    )
    content_type: str = Field(
        default="application/vnd.android.package-archive",
        description="MIME type of stored artifacts",
    )
    ttl_seconds: int = Field(
        default=3600,
        ge=1,
        description="Artifact time-to-live in seconds",
    )
    sweep_interval_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Interval between expiry sweeps in seconds",
    )
    local_download_template: str = Field(
        default="/api/download-user-apk/{artifact_id}",
        description="Local retrieval reference template",
    )


# =============================================================================
# Metadata Backend Configuration
# =============================================================================
class RedisConfig(BaseModel):
    """Configuration for the Redis metadata backend.

    Attributes:
        url: Redis connection URL. Format: redis://[password@]host:port/db
        max_connections: Maximum connections in the pool.
        key_prefix: Namespace prefix for all keys written by apkforge.
        socket_timeout: Timeout in seconds for socket operations.
    """

    url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (redis://host:port/db)",
    )
    max_connections: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum number of connections in the Redis pool",
    )
    key_prefix: str = Field(
        default="apkforge:",
        description="Prefix for all Redis keys (namespace isolation)",
    )
    socket_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Socket timeout in seconds for Redis operations",
    )


class MetadataConfig(BaseModel):
    """Selects and configures the metadata backend."""

    backend: MetadataBackendType = Field(
        default=MetadataBackendType.MEMORY,
        description="'memory' for dev/test, 'redis' for durable storage",
    )
    redis: RedisConfig = Field(
        default_factory=RedisConfig,
        description="Redis connection configuration",
    )


# =============================================================================
# Object Storage Configuration
# =============================================================================
class ObjectStorageConfig(BaseModel):
    """Configuration for the opportunistic remote mirror.

    Attributes:
        backend: 'none' disables the mirror, 'memory' is for tests,
            'minio' targets any S3-compatible endpoint.
        endpoint: host:port of the S3 endpoint.
        access_key: Access key.
        secret_key: Secret key.
        secure: Use HTTPS.
        bucket: Bucket receiving uploads (created on first use).
        public_base_url: When set, download URLs are
            ``{public_base_url}/{object_name}`` instead of presigned URLs.
    """

    backend: ObjectStorageType = Field(
        default=ObjectStorageType.NONE,
        description="Remote mirror backend",
    )
    endpoint: str = Field(default="localhost:9000", description="S3 endpoint host:port")
    access_key: Optional[str] = Field(default=None, description="S3 access key")
    secret_key: Optional[str] = Field(default=None, description="S3 secret key")
    secure: bool = Field(default=False, description="Use HTTPS for the S3 endpoint")
    bucket: str = Field(default="apkforge-artifacts", description="Bucket name")
    public_base_url: Optional[str] = Field(
        default=None,
        description="Public URL prefix for uploaded objects (presigned if unset)",
    )


# =============================================================================
# Main Configuration
# =============================================================================
# Environment Variable Mapping:
#   APKFORGE_LOG_LEVEL                   → config.log_level
#   APKFORGE_TOOLCHAIN__JAVA_EXECUTABLE  → config.toolchain.java_executable
#   APKFORGE_METADATA__REDIS__URL        → config.metadata.redis.url
# =============================================================================
class ForgeConfig(BaseSettings):
    """Top-level configuration for apkforge.

    Attributes:
        environment: Deployment environment.
        log_level: Logging level for the structlog filtering logger.
        log_format: 'console' for human-readable output, 'json' for
            log shippers.
        default_owner_id: Owner recorded when a request names none.
        source_artifact_path: Artifact customized when a request names none.
        toolchain: External tool configuration.
        workspace: Workspace and cleanup configuration.
        storage: Durable storage and expiry configuration.
        metadata: Metadata backend configuration.
        object_storage: Remote mirror configuration.

    Example:
        >>> config = ForgeConfig(
        ...     environment="dev",
        ...     storage=StorageConfig(ttl_seconds=600),
        ... )
    """

    # -------------------------------------------------------------------------
    # General Settings
    # -------------------------------------------------------------------------
    environment: Literal["dev", "staging", "prod"] = Field(
        default="dev",
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        description="Log renderer",
    )
    default_owner_id: str = Field(
        default="guest",
        min_length=1,
        description="Owner id used when a request supplies none",
    )
    source_artifact_path: str = Field(
        default="uploads/release.apk",
        description="Default source artifact to customize",
    )

    # -------------------------------------------------------------------------
    # Nested Configurations
    # -------------------------------------------------------------------------
    toolchain: ToolchainConfig = Field(default_factory=ToolchainConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    metadata: MetadataConfig = Field(default_factory=MetadataConfig)
    object_storage: ObjectStorageConfig = Field(default_factory=ObjectStorageConfig)

    model_config = {
        "env_prefix": "APKFORGE_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }


# =============================================================================
# Configuration Loader
# =============================================================================
def load_config(path: Optional[str] = None) -> ForgeConfig:
    """Load apkforge configuration from a YAML file and/or environment variables.

    Args:
        path: Path to a YAML configuration file. If None, looks for
            'apkforge.yaml' in the current directory and falls back to
            defaults plus environment variables.

    Returns:
        A validated ForgeConfig instance.

    Raises:
        FileNotFoundError: If an explicit path is provided but doesn't exist.
        ConfigurationError: If the YAML file is not a valid YAML mapping.
    """
    if path is None:
        default_path = Path("apkforge.yaml")
        if default_path.exists():
            path = str(default_path)

    yaml_data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {path}. "
                f"Create one or use APKFORGE_* environment variables."
            )

        with open(config_path) as f:
            try:
                raw_data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    message=f"Invalid YAML in {path}: {e}",
                    error_code="INVALID_YAML",
                    details={"path": path},
                ) from e

        if raw_data is None:
            raw_data = {}
        if not isinstance(raw_data, dict):
            raise ConfigurationError(
                message=f"Top level of {path} must be a mapping",
                error_code="INVALID_YAML",
                details={"path": path, "type": type(raw_data).__name__},
            )
        yaml_data = raw_data

    return ForgeConfig(**yaml_data)


def get_default_config() -> ForgeConfig:
    """Create a ForgeConfig from defaults and environment variables."""
    return ForgeConfig()
