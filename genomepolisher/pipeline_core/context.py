"""
Run configuration and pipeline context.

This module provides the immutable RunConfig built once from the command line
and configuration file, and the PipelineContext that flows through all stages,
carrying the workspace, the assembly pointers and per-stage records.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set, TYPE_CHECKING

if TYPE_CHECKING:
    from ..utils import CommandRunner
    from .workspace import Workspace

logger = logging.getLogger(__name__)


class ReadType(Enum):
    """Long-read sequencing technology, selects the minimap2 preset."""

    ONT = "ont"
    PACBIO = "pacbio"

    @property
    def minimap2_preset(self) -> str:
        """Return the minimap2 ``-x`` preset for this read type."""
        return "map-ont" if self is ReadType.ONT else "map-pb"

    @classmethod
    def from_string(cls, value: str) -> "ReadType":
        """Parse a read type case-insensitively.

        Raises
        ------
        ValueError
            If the value is neither 'ont' nor 'pacbio'
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Invalid read type: {value}. Supported types are 'ont' or 'pacbio'."
            )


@dataclass(frozen=True)
class RunConfig:
    """Immutable parameters of one polishing run.

    Attributes
    ----------
    prefix : str
        Prefix for all stage output file names
    max_iterations : int
        Number of Racon and Pilon rounds
    read_type : ReadType
        Long-read technology
    contigs : Path
        Initial assembly
    long_reads : Path
        Long reads used by minimap2, Racon and Medaka
    assemblies_dir : Path
        Root of the per-stage directories
    output_dir : Path
        Directory receiving the published final assembly
    short_reads_1, short_reads_2 : Path, optional
        Short-read pair for Pilon polishing
    threads : int
        Thread count handed to the external tools
    java_heap : str
        Pilon JVM heap size
    pilon_jar : Path, optional
        Located Pilon jar; None means Pilon stages are soft-skipped
    clean_intermediate : bool
        Delete intermediate artifacts after successful stages
    resume : bool
        Derive the starting assembly from existing stage outputs
    """

    prefix: str
    max_iterations: int
    read_type: ReadType
    contigs: Path
    long_reads: Path
    assemblies_dir: Path
    output_dir: Path
    short_reads_1: Optional[Path] = None
    short_reads_2: Optional[Path] = None
    threads: int = 4
    java_heap: str = "64G"
    pilon_jar: Optional[Path] = None
    clean_intermediate: bool = False
    resume: bool = False

    @property
    def short_reads_available(self) -> bool:
        """Whether the Pilon phase is part of the run."""
        return self.short_reads_1 is not None

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-friendly view used for hashing and reporting."""
        return {
            "prefix": self.prefix,
            "max_iterations": self.max_iterations,
            "read_type": self.read_type.value,
            "contigs": str(self.contigs),
            "long_reads": str(self.long_reads),
            "short_reads_1": str(self.short_reads_1) if self.short_reads_1 else None,
            "short_reads_2": str(self.short_reads_2) if self.short_reads_2 else None,
            "assemblies_dir": str(self.assemblies_dir),
            "output_dir": str(self.output_dir),
            "threads": self.threads,
            "java_heap": self.java_heap,
            "pilon_jar": str(self.pilon_jar) if self.pilon_jar else None,
            "clean_intermediate": self.clean_intermediate,
            "resume": self.resume,
        }


@dataclass
class StageRecord:
    """Outcome of one stage in the current invocation."""

    name: str
    status: str  # "executed", "skipped", "soft_skipped", "resumed"
    input_path: Optional[Path] = None
    output_path: Optional[Path] = None
    duration: float = 0.0
    message: str = ""


@dataclass
class PipelineContext:
    """Container for all pipeline state of a single invocation.

    The context is created fresh at process start and discarded at exit; the
    filesystem is the only durable state.

    Attributes
    ----------
    config : RunConfig
        Immutable run parameters
    workspace : Workspace
        Path layout of the run
    runner : CommandRunner
        Executes external commands
    file_exists : Callable[[Path], bool]
        Existence check for resume markers
    current_assembly : Path
        Input to the next polishing stage
    final_assembly : Path, optional
        Assembly published by the finalize stage
    completed_stages : Set[str]
        Names of stages that completed, were skipped or soft-skipped
    stage_records : Dict[str, StageRecord]
        Per-stage outcomes in execution order
    checkpoint_state : Any, optional
        PipelineState recording provenance of stage outputs
    """

    config: RunConfig
    workspace: "Workspace"
    runner: "CommandRunner"
    file_exists: Callable[[Path], bool] = os.path.isfile
    start_time: datetime = field(default_factory=datetime.now)

    current_assembly: Optional[Path] = None
    final_assembly: Optional[Path] = None

    completed_stages: Set[str] = field(default_factory=set)
    stage_records: Dict[str, StageRecord] = field(default_factory=dict)
    tool_versions: Dict[str, str] = field(default_factory=dict)

    checkpoint_state: Optional[Any] = None

    def __post_init__(self):
        if self.current_assembly is None:
            self.current_assembly = Path(self.config.contigs)

    def mark_complete(self, stage_name: str, record: Optional[StageRecord] = None) -> None:
        """Mark a stage as complete and store its record.

        Parameters
        ----------
        stage_name : str
            Name of the stage to mark complete
        record : StageRecord, optional
            Outcome of the stage
        """
        self.completed_stages.add(stage_name)
        if record is not None:
            self.stage_records[stage_name] = record
        logger.debug(f"Stage '{stage_name}' marked as complete")

    def is_complete(self, stage_name: str) -> bool:
        """Check if a stage has been completed."""
        return stage_name in self.completed_stages

    def update_assembly(self, path: Path, final: bool = False) -> None:
        """Move the current assembly pointer.

        Parameters
        ----------
        path : Path
            New current assembly
        final : bool
            Also record the path as the assembly to publish
        """
        logger.debug(f"Current assembly: {self.current_assembly} -> {path}")
        self.current_assembly = Path(path)
        if final:
            self.final_assembly = Path(path)

    def executed_stages(self) -> list:
        """Names of stages that ran external commands in this invocation."""
        return [name for name, rec in self.stage_records.items() if rec.status == "executed"]

    def get_execution_time(self) -> float:
        """Get the elapsed execution time in seconds."""
        return (datetime.now() - self.start_time).total_seconds()

    def __repr__(self) -> str:
        """Return string representation showing key state information."""
        return (
            f"PipelineContext("
            f"stages_completed={len(self.completed_stages)}, "
            f"current_assembly={self.current_assembly}, "
            f"execution_time={self.get_execution_time():.1f}s)"
        )
