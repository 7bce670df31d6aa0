"""
apkforge.orchestration.pipeline - Job State Machine
=====================================================

Drives one job from CREATED to READY or FAILED. This is the only place
where pipeline failures are classified: every stage raises a specific
ApkForgeError and the orchestrator turns it into the job's ``JobError``.

Stage Flow:
    ┌─────────┐
    │ CREATED │  validate payload, check source, create workspace, preflight
    └────┬────┘
         │ unpack tool   → workspace/decompiled/
    ┌────▼─────┐
    │ UNPACKED │
    └────┬─────┘
         │ ConfigPatcher → decompiled/assets/flutter_assets/assets/config.json
    ┌────▼────┐
    │ PATCHED │
    └────┬────┘
         │ repack tool   → workspace/modified_release.apk
    ┌────▼─────┐
    │ REPACKED │
    └────┬─────┘
         │ sign tool     → workspace/modified_release-aligned-debugSigned.apk
         │ rename        → workspace/signed_modified_release.apk
    ┌────▼───┐
    │ SIGNED │
    └────┬───┘
         │ ArtifactStore.persist()
    ┌────▼───┐     ┌───────┐
    │ STORED │ ──→ │ READY │
    └────────┘     └───────┘

    Any stage ──(error)──→ FAILED

Failure Semantics:
    - No stage is retried.
    - A record is only registered by the STORE stage, so a failed job never
      leaves a record behind.
    - Exactly one workspace cleanup is scheduled per job, from ``finally``,
      with the success or the (shorter) failure delay. It is never awaited.

Usage:
    >>> orchestrator = PipelineOrchestrator(
    ...     toolchain, invoker, workspaces, patcher, store, cleanup,
    ... )
    >>> job = await orchestrator.run(Job(owner_id="guest", config_payload={...},
    ...                                  source_artifact=Path("uploads/release.apk")))
    >>> job.stage
    <JobStage.READY: 'ready'>
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Optional

import structlog

from apkforge.core.config import WorkspaceConfig
from apkforge.core.enums import JobStage, PipelineStage
from apkforge.core.exceptions import (
    ApkForgeError,
    InvalidPayloadError,
    SigningArtifactMissingError,
    SourceArtifactMissingError,
    ToolExecutionError,
)
from apkforge.core.models import Job, JobError, WorkspaceHandle, _now
from apkforge.infrastructure.artifact_store import ArtifactStore
from apkforge.infrastructure.config_patcher import ConfigPatcher
from apkforge.infrastructure.tool_invoker import ToolInvoker
from apkforge.infrastructure.workspace import WorkspaceManager
from apkforge.integrations.toolchain import Toolchain
from apkforge.orchestration.cleanup import CleanupScheduler


# =============================================================================
# Logger Setup
# =============================================================================
logger = structlog.get_logger()


def validate_payload(payload: Any) -> dict[str, Any]:
    """Reject configuration payloads that are not a non-empty JSON object.

    Raises:
        InvalidPayloadError: If ``payload`` is not a dict or is empty.
    """
    if not isinstance(payload, dict):
        raise InvalidPayloadError(
            message="Configuration payload must be a JSON object",
            details={"type": type(payload).__name__},
        )
    if not payload:
        raise InvalidPayloadError(message="Configuration payload is empty")
    return payload


class PipelineOrchestrator:
    """Runs jobs through unpack → patch → repack → sign → store.

    Jobs are independent: the orchestrator holds no per-job state, so any
    number of ``run()`` calls may be in flight at once.

    Attributes:
        _toolchain: Renders the tool argument vectors.
        _invoker: Runs the tools.
        _workspaces: Creates per-job workspaces.
        _patcher: Replaces the embedded configuration file.
        _store: Persists the signed artifact.
        _cleanup: Removes workspaces after the job is terminal.
        _workspace_config: Cleanup delays.
    """

    def __init__(
        self,
        toolchain: Toolchain,
        invoker: ToolInvoker,
        workspaces: WorkspaceManager,
        patcher: ConfigPatcher,
        store: ArtifactStore,
        cleanup: CleanupScheduler,
        workspace_config: Optional[WorkspaceConfig] = None,
    ) -> None:
        self._toolchain = toolchain
        self._invoker = invoker
        self._workspaces = workspaces
        self._patcher = patcher
        self._store = store
        self._cleanup = cleanup
        self._workspace_config = workspace_config or WorkspaceConfig()
        self._logger = logger.bind(component="pipeline_orchestrator")

    # =========================================================================
    # Main Entry Point
    # =========================================================================

    async def run(self, job: Job) -> Job:
        """Execute every stage of ``job`` and return it in a terminal stage.

        Never raises for pipeline failures; they are returned as
        ``job.error`` with ``job.stage == FAILED``.
        """
        log = self._logger.bind(job_id=job.job_id, owner_id=job.owner_id)
        log.info("job_started", source_artifact=str(job.source_artifact))

        job = job.model_copy(update={"stage_history": [self._history_entry(job.stage)]})
        step = PipelineStage.PREPARE
        workspace: Optional[WorkspaceHandle] = None

        try:
            # --- Prepare ---
            validate_payload(job.config_payload)
            source = job.source_artifact.resolve()
            if not await asyncio.to_thread(source.is_file):
                raise SourceArtifactMissingError(
                    message=f"Source artifact not found: {job.source_artifact}",
                    path=str(job.source_artifact),
                )
            workspace = await asyncio.to_thread(self._workspaces.create)
            job = job.model_copy(update={"workspace": workspace})
            await self._toolchain.preflight(self._invoker, workspace.root)

            # --- Unpack ---
            step = PipelineStage.UNPACK
            await self._run_tool(
                self._toolchain.unpack_command(source, workspace.unpack_dir),
                workspace,
                step,
            )
            job = self._advance(job, JobStage.UNPACKED, log)

            # --- Patch ---
            step = PipelineStage.PATCH
            await asyncio.to_thread(
                self._patcher.patch, workspace.unpack_dir, job.config_payload
            )
            job = self._advance(job, JobStage.PATCHED, log)

            # --- Repack ---
            step = PipelineStage.REPACK
            await self._run_tool(
                self._toolchain.repack_command(workspace.unpack_dir, workspace.repacked_artifact),
                workspace,
                step,
            )
            if not await asyncio.to_thread(workspace.repacked_artifact.is_file):
                raise ToolExecutionError(
                    message="Repack tool succeeded but produced no artifact",
                    stage=step.value,
                    error_code="REPACK_OUTPUT_MISSING",
                    details={"expected_path": str(workspace.repacked_artifact)},
                )
            job = self._advance(job, JobStage.REPACKED, log)

            # --- Sign ---
            step = PipelineStage.SIGN
            await self._run_tool(
                self._toolchain.sign_command(workspace.repacked_artifact, workspace.root),
                workspace,
                step,
            )
            signed_output = self._toolchain.signed_output_path(
                workspace.repacked_artifact, workspace.root
            )
            if not await asyncio.to_thread(signed_output.is_file):
                raise SigningArtifactMissingError(
                    message="Signing tool succeeded but its signed artifact is missing",
                    expected_path=str(signed_output),
                )
            await asyncio.to_thread(os.replace, signed_output, workspace.signed_artifact)
            job = self._advance(job, JobStage.SIGNED, log)

            # --- Store ---
            step = PipelineStage.STORE
            record = await self._store.persist(workspace.signed_artifact, job.owner_id)
            job = self._advance(job, JobStage.STORED, log, record=record)

            job = self._advance(job, JobStage.READY, log, finished_at=_now())
            log.info(
                "job_completed",
                artifact_id=record.artifact_id,
                download_url=record.download_url,
            )
            return job

        except ApkForgeError as e:
            job = self._fail(job, JobError.from_exception(e, step.value), log)
            return job

        except Exception as e:
            log.exception("job_internal_error", stage=step.value)
            job = self._fail(job, JobError.from_exception(e, step.value), log)
            return job

        finally:
            if workspace is not None:
                delay = (
                    self._workspace_config.success_cleanup_delay_seconds
                    if job.stage == JobStage.READY
                    else self._workspace_config.failure_cleanup_delay_seconds
                )
                self._cleanup.schedule(workspace.root, delay)

    # =========================================================================
    # Stage Helpers
    # =========================================================================

    async def _run_tool(
        self, argv: list[str], workspace: WorkspaceHandle, step: PipelineStage
    ) -> None:
        config = self._toolchain.config
        result = await self._invoker.run(
            argv[0],
            argv[1:],
            working_dir=workspace.root,
            timeout=config.stage_timeout_seconds,
            max_output_bytes=config.max_output_bytes,
            stage=step.value,
        )
        result.check(step.value)

    @staticmethod
    def _history_entry(stage: JobStage, **extra: Any) -> dict[str, Any]:
        return {"stage": stage.value, "at": _now().isoformat(), **extra}

    def _advance(self, job: Job, stage: JobStage, log: Any, **updates: Any) -> Job:
        expected = job.stage.next_stage()
        if stage != expected:
            raise RuntimeError(f"Illegal transition {job.stage.value} → {stage.value}")
        history = list(job.stage_history) + [self._history_entry(stage)]
        log.info("job_stage_completed", stage=stage.value)
        return job.model_copy(update={"stage": stage, "stage_history": history, **updates})

    def _fail(self, job: Job, error: JobError, log: Any) -> Job:
        history = list(job.stage_history) + [
            self._history_entry(JobStage.FAILED, failed_from=job.stage.value)
        ]
        log.warning(
            "job_failed",
            stage=error.stage,
            kind=error.kind.value,
            category=error.category.value,
            error_code=error.error_code,
            error=error.message,
        )
        return job.model_copy(update={
            "stage": JobStage.FAILED,
            "error": error,
            "stage_history": history,
            "finished_at": _now(),
        })
