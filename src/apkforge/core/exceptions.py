"""
apkforge.core.exceptions - Custom Exception Hierarchy
=======================================================

Structured exceptions for apkforge. Components raise specific subclasses that
carry an ``error_code``, a ``details`` dict and a classified ``kind``, so the
orchestrator can turn any failure into a ``JobError`` without inspecting
message text.

Exception Hierarchy:
    ApkForgeError (base)
        ├── ConfigurationError          - Invalid settings at startup
        ├── InvalidPayloadError         - Empty or non-object config payload
        ├── SourceArtifactMissingError  - Source artifact path does not exist
        ├── ToolError
        │     ├── ToolUnavailableError  - Executable or tool file not found
        │     ├── ToolTimeoutError      - Stage exceeded its timeout
        │     ├── ToolExecutionError    - Non-zero exit
        │     │     └── ToolOutputOverflowError
        │     └── SigningArtifactMissingError
        ├── ConfigNotFoundError         - Config file absent after unpack
        ├── ConfigParseError            - Config file not valid JSON
        ├── StorageError                - Both storage tiers failed
        │     ├── RemoteStorageError    - Remote mirror failed (recovered)
        │     └── MetadataBackendError  - Metadata backend failed
        ├── WorkspaceError              - Workspace could not be created
        │     └── WorkspaceCleanupError - Removal failed (logged only)
        │           └── WorkspaceBusyError
        └── RecordNotFoundError         - Unknown artifact id
              └── RecordExpiredError    - Known but past its expiry

Usage:
    >>> raise ToolTimeoutError(
    ...     message="unpack exceeded 300s",
    ...     stage="unpack",
    ...     timeout_seconds=300,
    ... )
"""

from __future__ import annotations

from typing import Any, Optional

from apkforge.core.enums import ErrorCategory, ErrorKind


# =============================================================================
# Base Exception
# =============================================================================
class ApkForgeError(Exception):
    """Base exception for all apkforge errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable code in UPPER_SNAKE_CASE.
        details: Additional debugging context (paths, exit codes, tails).
        kind: Classified failure kind (class-level default, see ErrorKind).
        category: INPUT, INFRASTRUCTURE or LOOKUP.

    Example:
        >>> try:
        ...     await orchestrator.run(job)
        ... except ApkForgeError as e:
        ...     print(f"[{e.kind.value}] {e.message}")
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    category: ErrorCategory = ErrorCategory.INFRASTRUCTURE

    def __init__(
        self,
        message: str,
        error_code: str = "APKFORGE_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize this exception for logs and API responses."""
        return {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "category": self.category.value,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# Configuration Error
# =============================================================================
class ConfigurationError(ApkForgeError):
    """Raised when apkforge settings are invalid or inconsistent.

    Example:
        >>> raise ConfigurationError(
        ...     message="Unknown object storage backend: 's4'",
        ...     error_code="UNKNOWN_BACKEND",
        ... )
    """

    kind = ErrorKind.CONFIGURATION

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


# =============================================================================
# Caller Input Errors
# =============================================================================
# These tell the caller to fix the request; resubmitting the same input will
# fail the same way.
# =============================================================================
class InvalidPayloadError(ApkForgeError):
    """The configuration payload is empty or not a JSON object."""

    kind = ErrorKind.INVALID_PAYLOAD
    category = ErrorCategory.INPUT

    def __init__(
        self,
        message: str,
        error_code: str = "INVALID_PAYLOAD",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class SourceArtifactMissingError(ApkForgeError):
    """The source artifact to customize does not exist.

    Attributes:
        path: The path that was checked.
    """

    kind = ErrorKind.SOURCE_ARTIFACT_MISSING
    category = ErrorCategory.INPUT

    def __init__(
        self,
        message: str,
        path: str,
        error_code: str = "SOURCE_ARTIFACT_MISSING",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["path"] = path

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.path = path


class ConfigNotFoundError(ApkForgeError):
    """The unpacked tree has no configuration file at the expected path.

    This means the source artifact does not have the expected internal layout.
    """

    kind = ErrorKind.CONFIG_NOT_FOUND
    category = ErrorCategory.INPUT

    def __init__(
        self,
        message: str,
        path: str,
        error_code: str = "CONFIG_NOT_FOUND",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["path"] = path

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.path = path


class ConfigParseError(ApkForgeError):
    """The original or rewritten configuration file is not valid JSON."""

    kind = ErrorKind.CONFIG_PARSE_FAILURE
    category = ErrorCategory.INPUT

    def __init__(
        self,
        message: str,
        path: str,
        error_code: str = "CONFIG_PARSE_FAILURE",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["path"] = path

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.path = path


# =============================================================================
# Tool Errors
# =============================================================================
# Raised by the ToolInvoker and the orchestrator's stage checks. All carry
# the pipeline stage that was running, so one exception type per failure
# mode is enough for every stage.
# =============================================================================
class ToolError(ApkForgeError):
    """Base for failures of an external tool invocation.

    Attributes:
        stage: Pipeline stage name ("unpack", "repack", "sign", ...), or None.
    """

    kind = ErrorKind.TOOL_EXECUTION_FAILURE

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        error_code: str = "TOOL_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        if stage:
            enriched_details["stage"] = stage

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.stage = stage


class ToolUnavailableError(ToolError):
    """A required executable or tool file could not be found."""

    kind = ErrorKind.TOOL_UNAVAILABLE

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        error_code: str = "TOOL_UNAVAILABLE",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, stage=stage, error_code=error_code, details=details)


class ToolTimeoutError(ToolError):
    """A tool ran longer than its stage timeout and was killed.

    Attributes:
        timeout_seconds: The bound that was exceeded.
    """

    kind = ErrorKind.TOOL_TIMEOUT

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        error_code: str = "TOOL_TIMEOUT",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        if timeout_seconds is not None:
            enriched_details["timeout_seconds"] = timeout_seconds

        super().__init__(
            message=message, stage=stage, error_code=error_code, details=enriched_details
        )

        self.timeout_seconds = timeout_seconds


class ToolExecutionError(ToolError):
    """A tool exited with a non-zero status.

    Attributes:
        exit_code: The process exit status (None when the process was killed).
    """

    kind = ErrorKind.TOOL_EXECUTION_FAILURE

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        exit_code: Optional[int] = None,
        error_code: str = "TOOL_EXECUTION_FAILURE",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        if exit_code is not None:
            enriched_details["exit_code"] = exit_code

        super().__init__(
            message=message, stage=stage, error_code=error_code, details=enriched_details
        )

        self.exit_code = exit_code


class ToolOutputOverflowError(ToolExecutionError):
    """A tool wrote more combined output than the configured cap.

    Attributes:
        max_output_bytes: The cap that was exceeded.
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        max_output_bytes: Optional[int] = None,
        error_code: str = "TOOL_OUTPUT_OVERFLOW",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        if max_output_bytes is not None:
            enriched_details["max_output_bytes"] = max_output_bytes

        super().__init__(
            message=message, stage=stage, error_code=error_code, details=enriched_details
        )

        self.max_output_bytes = max_output_bytes


class SigningArtifactMissingError(ToolError):
    """The signing tool reported success but its expected output is absent.

    A tool-contract mismatch rather than a process-level error.
    """

    kind = ErrorKind.SIGNING_ARTIFACT_MISSING

    def __init__(
        self,
        message: str,
        expected_path: str,
        stage: Optional[str] = "sign",
        error_code: str = "SIGNING_ARTIFACT_MISSING",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["expected_path"] = expected_path

        super().__init__(
            message=message, stage=stage, error_code=error_code, details=enriched_details
        )

        self.expected_path = expected_path


# =============================================================================
# Storage Errors
# =============================================================================
class StorageError(ApkForgeError):
    """Persisting or reading artifact data failed.

    Surfaced to a job only when both the local and the remote tier failed.
    """

    kind = ErrorKind.STORAGE_FAILURE

    def __init__(
        self,
        message: str,
        error_code: str = "STORAGE_FAILURE",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class RemoteStorageError(StorageError):
    """The remote object-storage mirror rejected an upload or delete."""

    def __init__(
        self,
        message: str,
        error_code: str = "REMOTE_STORAGE_FAILURE",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class MetadataBackendError(StorageError):
    """The metadata backend could not complete a read or write."""

    def __init__(
        self,
        message: str,
        error_code: str = "METADATA_BACKEND_FAILURE",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


# =============================================================================
# Workspace Errors
# =============================================================================
class WorkspaceError(ApkForgeError):
    """A workspace directory could not be created.

    Attributes:
        path: The workspace path involved.
    """

    kind = ErrorKind.WORKSPACE_FAILURE

    def __init__(
        self,
        message: str,
        path: str,
        error_code: str = "WORKSPACE_FAILURE",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["path"] = path

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.path = path


class WorkspaceCleanupError(WorkspaceError):
    """Removing a workspace failed. Logged by the cleanup scheduler, never surfaced."""

    kind = ErrorKind.WORKSPACE_CLEANUP_FAILURE

    def __init__(
        self,
        message: str,
        path: str,
        error_code: str = "WORKSPACE_CLEANUP_FAILURE",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, path=path, error_code=error_code, details=details)


class WorkspaceBusyError(WorkspaceCleanupError):
    """Removal failed because files are still in use (EBUSY / ENOTEMPTY)."""

    def __init__(
        self,
        message: str,
        path: str,
        error_code: str = "WORKSPACE_BUSY",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, path=path, error_code=error_code, details=details)


# =============================================================================
# Lookup Errors
# =============================================================================
class RecordNotFoundError(ApkForgeError):
    """No artifact record exists for the given id.

    Attributes:
        artifact_id: The id that was looked up.
    """

    kind = ErrorKind.RECORD_NOT_FOUND
    category = ErrorCategory.LOOKUP

    def __init__(
        self,
        message: str,
        artifact_id: str,
        error_code: str = "RECORD_NOT_FOUND",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["artifact_id"] = artifact_id

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.artifact_id = artifact_id


class RecordExpiredError(RecordNotFoundError):
    """The record exists but its expiry has passed.

    Subclasses RecordNotFoundError: callers that only care about presence can
    catch the parent and treat both the same.
    """

    kind = ErrorKind.RECORD_EXPIRED

    def __init__(
        self,
        message: str,
        artifact_id: str,
        error_code: str = "RECORD_EXPIRED",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message, artifact_id=artifact_id, error_code=error_code, details=details
        )
