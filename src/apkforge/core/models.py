"""
apkforge.core.models - Core Data Models
=========================================

Pydantic models that flow between the pipeline components.

Model Overview:
    Job              → One pipeline run (request-scoped, never persisted)
    WorkspaceHandle  → Paths inside one job's ephemeral workspace
    ToolResult       → Captured outcome of one external tool invocation
    ArtifactRecord   → Persisted metadata of a stored artifact
    ArtifactDownload → What a caller gets back from ArtifactStore.retrieve()
    JobError         → Classified failure attached to a FAILED job
    SweepReport      → Outcome of one expiry sweep

Data Flow:
    ┌────────────┐  Job   ┌──────────────────┐  ToolResult  ┌──────────────┐
    │  ApkForge  │ ─────→ │  Orchestrator    │ ←─────────── │ ToolInvoker  │
    │  (facade)  │ ←───── │                  │              └──────────────┘
    └────────────┘  Job   │                  │ ArtifactRecord ┌────────────┐
                          │                  │ ←───────────── │ Artifact-  │
                          └──────────────────┘                │ Store      │
                                                              └────────────┘
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from apkforge.core.enums import ErrorCategory, ErrorKind, JobStage
from apkforge.core.exceptions import ApkForgeError, ToolExecutionError


# =============================================================================
# Helpers
# =============================================================================
def _generate_id() -> str:
    """Generate a unique identifier using UUID4."""
    return str(uuid4())


def _now() -> datetime:
    """Get the current UTC timestamp. Every timestamp in apkforge is UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# Workspace Handle
# =============================================================================
class WorkspaceHandle(BaseModel):
    """Paths of one job's workspace.

    The layout mirrors the three tool contracts:

        {root}/
            decompiled/                      ← unpack destination
            modified_release.apk             ← repack output
            signed_modified_release.apk      ← canonical signed artifact

    Attributes:
        root: The workspace directory. Exclusively owned by one job.
        unpack_dir: Destination tree of the unpack tool.
        repacked_artifact: Output path of the repack tool.
        signed_artifact: Where the signed artifact is relocated to.
    """

    root: Path
    unpack_dir: Path
    repacked_artifact: Path
    signed_artifact: Path

    @classmethod
    def for_root(cls, root: Path, suffix: str = ".apk") -> WorkspaceHandle:
        """Build the standard layout under ``root``."""
        return cls(
            root=root,
            unpack_dir=root / "decompiled",
            repacked_artifact=root / f"modified_release{suffix}",
            signed_artifact=root / f"signed_modified_release{suffix}",
        )


# =============================================================================
# Tool Result
# =============================================================================
class ToolResult(BaseModel):
    """Captured outcome of one external tool invocation.

    Attributes:
        command: The argument vector that was executed.
        exit_code: Process exit status.
        stdout: Captured standard output (bounded by the invoker's cap).
        stderr: Captured standard error (bounded by the invoker's cap).
        duration_seconds: Wall-clock time the process ran.
    """

    command: list[str]
    exit_code: int
    stdout: bytes = b""
    stderr: bytes = b""
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def stderr_tail(self, limit: int = 2000) -> str:
        """Last ``limit`` characters of stderr (falling back to stdout), decoded."""
        data = self.stderr or self.stdout
        return data.decode("utf-8", errors="replace")[-limit:]

    def check(self, stage: Optional[str] = None) -> ToolResult:
        """Raise ToolExecutionError if the tool exited non-zero.

        Returns:
            self, so calls can be chained.
        """
        if not self.succeeded:
            raise ToolExecutionError(
                message=(
                    f"{stage or 'tool'} failed with exit code {self.exit_code}"
                ),
                stage=stage,
                exit_code=self.exit_code,
                details={
                    "command": self.command[0] if self.command else "",
                    "output_tail": self.stderr_tail(),
                },
            )
        return self


# =============================================================================
# Artifact Record
# =============================================================================
class ArtifactRecord(BaseModel):
    """Persisted metadata describing one stored artifact.

    Exactly one record exists per artifact id. ``expires_at`` is fixed at
    creation (``created_at + ttl``) and never extended by access.

    Attributes:
        artifact_id: Globally unique identifier (UUID4).
        owner_id: Opaque owner identifier.
        file_name: Stored file name, ``{owner_id}_{artifact_id}{suffix}``.
        created_at: When the artifact was stored (UTC).
        expires_at: When the artifact stops being retrievable (UTC).
        download_url: Remote URL, or the local retrieval reference.
        remote_object_id: Object id in the remote mirror, if uploaded.
        size_bytes: Size of the stored artifact.

    Example:
        >>> record = ArtifactRecord.create(
        ...     owner_id="guest",
        ...     suffix=".apk",
        ...     ttl_seconds=3600,
        ... )
        >>> record.expires_at - record.created_at
        datetime.timedelta(seconds=3600)
    """

    artifact_id: str = Field(default_factory=_generate_id)
    owner_id: str = Field(min_length=1)
    file_name: str
    created_at: datetime = Field(default_factory=_now)
    expires_at: datetime
    download_url: str = ""
    remote_object_id: Optional[str] = None
    size_bytes: int = Field(default=0, ge=0)

    @classmethod
    def create(
        cls,
        owner_id: str,
        suffix: str,
        ttl_seconds: int,
        created_at: Optional[datetime] = None,
        artifact_id: Optional[str] = None,
    ) -> ArtifactRecord:
        """Create a record with a fresh id, derived file name and expiry."""
        artifact_id = artifact_id or _generate_id()
        created_at = created_at or _now()
        return cls(
            artifact_id=artifact_id,
            owner_id=owner_id,
            file_name=f"{owner_id}_{artifact_id}{suffix}",
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=ttl_seconds),
        )

    @property
    def is_remote(self) -> bool:
        """True when the download reference points at the remote mirror."""
        return self.download_url.startswith(("http://", "https://"))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True once ``now`` is at or past ``expires_at``."""
        return (now or _now()) >= self.expires_at

    def to_json(self) -> str:
        """Serialize for a metadata backend."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes | dict[str, Any]) -> ArtifactRecord:
        """Deserialize from a metadata backend value."""
        if isinstance(data, dict):
            return cls.model_validate(data)
        return cls.model_validate(json.loads(data))


# =============================================================================
# Artifact Download
# =============================================================================
class ArtifactDownload(BaseModel):
    """Result of retrieving an artifact.

    Callers either redirect to ``redirect_url`` or stream ``local_path``.
    At least one of them is always set.

    Attributes:
        record: The (non-expired) artifact record.
        local_path: The durable local copy, if present on disk.
        redirect_url: The remote URL, if the artifact was mirrored.
    """

    record: ArtifactRecord
    local_path: Optional[Path] = None
    redirect_url: Optional[str] = None

    @property
    def file_name(self) -> str:
        return self.record.file_name

    def open(self):
        """Open the local copy for binary reading.

        Raises:
            FileNotFoundError: If there is no local copy.
        """
        if self.local_path is None:
            raise FileNotFoundError(
                f"Artifact {self.record.artifact_id} has no local copy"
            )
        return open(self.local_path, "rb")

    def read_bytes(self) -> bytes:
        """Read the whole local copy."""
        with self.open() as f:
            return f.read()


# =============================================================================
# Job Error
# =============================================================================
class JobError(BaseModel):
    """A classified failure attached to a FAILED job.

    Attributes:
        kind: The failure class (see ErrorKind).
        category: INPUT (fix your request) or INFRASTRUCTURE.
        message: Human-readable detail.
        error_code: Machine-readable code from the raising component.
        stage: The pipeline stage that was running.
        details: Additional context (paths, exit codes, bounded output tail).
    """

    kind: ErrorKind
    category: ErrorCategory
    message: str
    error_code: str = "UNKNOWN_ERROR"
    stage: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(
        cls, error: BaseException, stage: Optional[str] = None
    ) -> JobError:
        """Classify any exception raised by a pipeline stage."""
        if isinstance(error, ApkForgeError):
            return cls(
                kind=error.kind,
                category=error.category,
                message=error.message,
                error_code=error.error_code,
                stage=stage,
                details=dict(error.details),
            )
        return cls(
            kind=ErrorKind.INTERNAL,
            category=ErrorCategory.INFRASTRUCTURE,
            message=f"Unexpected {type(error).__name__} during {stage or 'pipeline'}",
            error_code="INTERNAL_ERROR",
            stage=stage,
            details={"error": str(error)},
        )

    @property
    def is_input_error(self) -> bool:
        return self.category == ErrorCategory.INPUT


# =============================================================================
# Job
# =============================================================================
class Job(BaseModel):
    """One run of the transformation pipeline.

    Created on submit and returned to the caller in a terminal stage.
    Jobs are updated with ``model_copy(update=...)`` as they advance.

    Attributes:
        job_id: Unique identifier used in logs.
        owner_id: Owner the produced artifact will belong to.
        config_payload: The document that replaces the artifact's config file.
        source_artifact: The artifact to customize.
        workspace: The job's workspace, once allocated.
        stage: Current state machine position.
        record: The stored artifact's metadata (READY only).
        error: The classified failure (FAILED only).
        stage_history: One entry per transition, with timestamps.
        created_at: When the job was submitted.
        finished_at: When the job reached a terminal stage.

    Example:
        >>> job = Job(
        ...     owner_id="guest",
        ...     config_payload={"apiUrl": "https://example.com"},
        ...     source_artifact=Path("uploads/release.apk"),
        ... )
        >>> job.stage
        <JobStage.CREATED: 'created'>
    """

    job_id: str = Field(default_factory=_generate_id)
    owner_id: str = Field(min_length=1)
    config_payload: dict[str, Any]
    source_artifact: Path
    workspace: Optional[WorkspaceHandle] = None
    stage: JobStage = JobStage.CREATED
    record: Optional[ArtifactRecord] = None
    error: Optional[JobError] = None
    stage_history: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal

    @property
    def succeeded(self) -> bool:
        return self.stage == JobStage.READY

    @property
    def failed(self) -> bool:
        return self.stage == JobStage.FAILED


# =============================================================================
# Sweep Report
# =============================================================================
class SweepReport(BaseModel):
    """Outcome of one expiry sweep.

    Attributes:
        removed: Artifact ids whose records were removed.
        failed: Artifact ids that could not be removed this time.
        started_at: Sweep start (UTC).
        finished_at: Sweep end (UTC).
    """

    removed: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_now)
    finished_at: Optional[datetime] = None

    @property
    def removed_count(self) -> int:
        return len(self.removed)
