"""
apkforge.core.enums - Type-Safe Enumerations
==============================================

All enumeration types used throughout apkforge. Every enum inherits from
both ``str`` and ``Enum`` so values serialize to plain strings in JSON and
compare equal to their string form (``JobStage.READY == "ready"``).

Mapping to the pipeline:

    ┌─────────────────────────────────────────────────────────────────┐
    │  PIPELINE                                                       │
    │    JobStage:      CREATED → UNPACKED → ... → READY | FAILED     │
    │    PipelineStage: the step that was running when a job failed   │
    ├─────────────────────────────────────────────────────────────────┤
    │  ERRORS                                                         │
    │    ErrorKind:     one value per failure class                   │
    │    ErrorCategory: "fix your input" vs "infrastructure problem"  │
    ├─────────────────────────────────────────────────────────────────┤
    │  BACKENDS                                                       │
    │    MetadataBackendType, ObjectStorageType                       │
    └─────────────────────────────────────────────────────────────────┘
"""

from enum import Enum


# =============================================================================
# Job Stage Enumeration
# =============================================================================
# The per-job state machine. Stages advance strictly in declaration order;
# FAILED is absorbing and reachable from any non-terminal stage.
#
#   CREATED → UNPACKED → PATCHED → REPACKED → SIGNED → STORED → READY
#      └──────────┴─────────┴──────────┴─────────┴────────┴──→ FAILED
# =============================================================================
class JobStage(str, Enum):
    """Lifecycle states of a single pipeline job.

    Usage:
        >>> job.stage == JobStage.READY
        True
        >>> JobStage.FAILED.is_terminal
        True
    """

    CREATED = "created"       # Job accepted, nothing on disk yet
    UNPACKED = "unpacked"     # Source artifact decompiled into the workspace
    PATCHED = "patched"       # Configuration file replaced with the payload
    REPACKED = "repacked"     # Patched tree rebuilt into an unsigned artifact
    SIGNED = "signed"         # Unsigned artifact signed and relocated
    STORED = "stored"         # Signed artifact persisted and registered
    READY = "ready"           # Terminal success
    FAILED = "failed"         # Terminal failure

    @property
    def is_terminal(self) -> bool:
        """True for READY and FAILED."""
        return self in (JobStage.READY, JobStage.FAILED)

    def next_stage(self) -> "JobStage":
        """Return the successor on the success path.

        Raises:
            ValueError: If called on a terminal stage.
        """
        if self.is_terminal:
            raise ValueError(f"Stage {self.value!r} is terminal")
        order = list(_SUCCESS_PATH)
        return order[order.index(self) + 1]


_SUCCESS_PATH = (
    JobStage.CREATED,
    JobStage.UNPACKED,
    JobStage.PATCHED,
    JobStage.REPACKED,
    JobStage.SIGNED,
    JobStage.STORED,
    JobStage.READY,
)


# =============================================================================
# Pipeline Stage Enumeration
# =============================================================================
# Names the unit of work that was running, used in error details and logs.
# A job in stage UNPACKED that fails is failing in PipelineStage.PATCH.
# =============================================================================
class PipelineStage(str, Enum):
    """The individual steps of the transformation pipeline."""

    PREPARE = "prepare"   # Payload validation, source check, preflight, workspace
    UNPACK = "unpack"
    PATCH = "patch"
    REPACK = "repack"
    SIGN = "sign"
    STORE = "store"


# =============================================================================
# Error Kind Enumeration
# =============================================================================
# Every failure surfaced to a caller is mapped to exactly one of these
# before it leaves the orchestrator. Raw process output or OS error text is
# never the only signal.
# =============================================================================
class ErrorKind(str, Enum):
    """Classified failure kinds."""

    # --- Caller input ---
    INVALID_PAYLOAD = "invalid_payload"
    SOURCE_ARTIFACT_MISSING = "source_artifact_missing"
    CONFIG_NOT_FOUND = "config_not_found"
    CONFIG_PARSE_FAILURE = "config_parse_failure"

    # --- Infrastructure ---
    TOOL_UNAVAILABLE = "tool_unavailable"
    TOOL_TIMEOUT = "tool_timeout"
    TOOL_EXECUTION_FAILURE = "tool_execution_failure"
    SIGNING_ARTIFACT_MISSING = "signing_artifact_missing"
    STORAGE_FAILURE = "storage_failure"
    WORKSPACE_FAILURE = "workspace_failure"
    WORKSPACE_CLEANUP_FAILURE = "workspace_cleanup_failure"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"

    # --- Lookups ---
    RECORD_NOT_FOUND = "record_not_found"
    RECORD_EXPIRED = "record_expired"


class ErrorCategory(str, Enum):
    """Coarse grouping of ErrorKind for callers.

    INPUT failures are fixed by resubmitting with different input;
    INFRASTRUCTURE failures are operator problems; LOOKUP covers
    not-found / expired reads.
    """

    INPUT = "input"
    INFRASTRUCTURE = "infrastructure"
    LOOKUP = "lookup"


# =============================================================================
# Backend Selectors
# =============================================================================
class MetadataBackendType(str, Enum):
    """Which MetadataBackend implementation the registry sits on."""

    MEMORY = "memory"
    REDIS = "redis"


class ObjectStorageType(str, Enum):
    """Which remote mirror ArtifactStore uploads to (NONE disables it)."""

    NONE = "none"
    MEMORY = "memory"
    MINIO = "minio"
