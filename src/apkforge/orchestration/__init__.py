"""
apkforge.orchestration - Pipeline Control Layer
=================================================

    - PipelineOrchestrator: the per-job state machine
    - CleanupScheduler:     deferred workspace removal with one retry
    - ExpirySweeper:        periodic removal of expired artifacts
"""

from apkforge.orchestration.cleanup import CleanupScheduler
from apkforge.orchestration.pipeline import PipelineOrchestrator, validate_payload
from apkforge.orchestration.sweeper import ExpirySweeper

__all__ = [
    "CleanupScheduler",
    "ExpirySweeper",
    "PipelineOrchestrator",
    "validate_payload",
]
