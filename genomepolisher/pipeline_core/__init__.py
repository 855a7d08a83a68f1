"""
Pipeline infrastructure for genomepolisher.

This package provides the core abstractions of the polishing pipeline:
- RunConfig: Immutable run parameters
- PipelineContext: Container for the state of one invocation
- Stage: Abstract base class implementing the idempotent stage contract
- Workspace: Stage directory and output naming
- PipelineRunner: Sequential stage execution
- scan_resume_state: Derive the starting assembly of a resumed run
"""

from .context import PipelineContext, ReadType, RunConfig, StageRecord
from .resume import ResumePoint, scan_resume_state
from .runner import PipelineRunner
from .stage import Stage
from .workspace import Workspace

__all__ = [
    "PipelineContext",
    "ReadType",
    "RunConfig",
    "StageRecord",
    "Stage",
    "Workspace",
    "PipelineRunner",
    "ResumePoint",
    "scan_resume_state",
]
