"""
Stage - Abstract base class for all pipeline stages.

This module provides the Stage abstraction every polishing step inherits
from. The idempotent execution contract (skip when the expected output
exists, fail fast on command errors, move the assembly pointer on success,
clean intermediates on request) lives in ``Stage.__call__`` so individual
stages only describe their command sequence.
"""

import logging
import shutil
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Set

from .context import PipelineContext, StageRecord
from .error_handling import (
    CommandError,
    PipelineError,
    ResourceNotFoundError,
    StageExecutionError,
)

logger = logging.getLogger(__name__)


class Stage(ABC):
    """Abstract base class for all pipeline stages.

    Each stage declares its dependencies and the path of the file it
    produces, and implements ``_process`` to run its external commands.
    Execution is handled by ``__call__``, which validates dependencies,
    short-circuits on an existing output, logs, times and records the stage.
    """

    #: Whether the stage output becomes the current assembly
    tracks_assembly: bool = True
    #: Whether the stage output also becomes the assembly to publish
    updates_final: bool = False

    def __init__(self):
        """Initialize the stage with subtask tracking."""
        self._subtask_times: Dict[str, float] = {}

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for the stage.

        Returns
        -------
        str
            The stage name used for dependency tracking and logging
        """
        pass

    @property
    def dependencies(self) -> Set[str]:
        """Stage names that must complete before this stage.

        Returns
        -------
        Set[str]
            Set of stage names this stage depends on
        """
        return set()

    @property
    def description(self) -> str:
        """Human-readable description for logging."""
        return f"Stage: {self.name}"

    def expected_output(self, context: PipelineContext) -> Optional[Path]:
        """Path whose existence marks the stage as complete.

        Stages returning None always run.
        """
        return None

    def stage_dir(self, context: PipelineContext) -> Optional[Path]:
        """Working directory created before the stage runs."""
        return None

    def intermediate_files(self, context: PipelineContext) -> List[Path]:
        """Stage-local artifacts removed when intermediate cleanup is enabled."""
        return []

    def __call__(self, context: PipelineContext) -> PipelineContext:
        """Execute the stage idempotently.

        Parameters
        ----------
        context : PipelineContext
            The pipeline context

        Returns
        -------
        PipelineContext
            Updated context after stage execution

        Raises
        ------
        PipelineError
            If dependencies are not satisfied or an external command fails
        StageExecutionError
            If the stage fails with an unexpected exception
        """
        missing_deps = [dep for dep in sorted(self.dependencies) if not context.is_complete(dep)]
        if missing_deps:
            raise PipelineError(
                f"Stage '{self.name}' requires these stages to complete first: "
                f"{', '.join(missing_deps)}",
                stage=self.name,
            )

        if context.is_complete(self.name):
            logger.info(f"Stage '{self.name}' already complete, skipping")
            return context

        output = self.expected_output(context)
        if output is not None and context.file_exists(output):
            return self._skip_existing(context, output)

        try:
            self.validate_prerequisites(context)
        except ResourceNotFoundError as e:
            return self._soft_skip(context, e)

        logger.info(f"Executing {self.description}")
        input_path = context.current_assembly
        start_time = time.time()

        if context.checkpoint_state:
            context.checkpoint_state.start_step(self.name, input_file=input_path)

        try:
            self._pre_execute(context)
            updated_context = self._process(context)

            if output is not None and self.tracks_assembly:
                updated_context.update_assembly(output, final=self.updates_final)

            if updated_context.config.clean_intermediate:
                self._remove_intermediates(updated_context)

        except PipelineError as e:
            self._record_failure(context, start_time, e)
            raise
        except Exception as e:
            self._record_failure(context, start_time, e)
            raise StageExecutionError(self.name, e) from e

        elapsed = time.time() - start_time
        updated_context.mark_complete(
            self.name,
            StageRecord(
                name=self.name,
                status="executed",
                input_path=input_path,
                output_path=output,
                duration=elapsed,
            ),
        )
        if updated_context.checkpoint_state:
            outputs = [str(output)] if output is not None else []
            updated_context.checkpoint_state.complete_step(self.name, outputs)

        logger.info(f"Stage '{self.name}' completed successfully in {elapsed:.1f}s")
        return updated_context

    def _skip_existing(self, context: PipelineContext, output: Path) -> PipelineContext:
        logger.info(f"Skipping step: {self.description} (already completed). Output exists at {output}")
        if self.tracks_assembly:
            context.update_assembly(output, final=self.updates_final)
        context.mark_complete(
            self.name,
            StageRecord(
                name=self.name,
                status="skipped",
                input_path=None,
                output_path=output,
                message="output already present",
            ),
        )
        return context

    def _soft_skip(self, context: PipelineContext, error: ResourceNotFoundError) -> PipelineContext:
        logger.warning(
            f"{self.description}: {error}. Skipping this stage and continuing with "
            f"{context.current_assembly}"
        )
        context.mark_complete(
            self.name,
            StageRecord(
                name=self.name,
                status="soft_skipped",
                input_path=context.current_assembly,
                output_path=None,
                message=str(error),
            ),
        )
        return context

    def _record_failure(self, context: PipelineContext, start_time: float, error: Exception) -> None:
        elapsed = time.time() - start_time
        logger.error(f"Stage '{self.name}' failed after {elapsed:.1f}s: {error}")
        if context.checkpoint_state:
            context.checkpoint_state.fail_step(self.name, str(error))

    def _remove_intermediates(self, context: PipelineContext) -> None:
        output = self.expected_output(context)
        for path in self.intermediate_files(context):
            path = Path(path)
            if output is not None and path == output:
                continue
            try:
                if path.is_dir():
                    shutil.rmtree(path)
                elif path.exists():
                    path.unlink()
                else:
                    continue
                logger.info(f"{self.description}: Removed intermediate {path}")
            except OSError as e:
                logger.warning(f"{self.description}: Failed to remove intermediate {path}: {e}")

    def run_command(
        self,
        context: PipelineContext,
        cmd: List[str],
        stdout_path: Optional[Path] = None,
        label: Optional[str] = None,
    ) -> None:
        """Run one external command of this stage, failing fast.

        Parameters
        ----------
        context : PipelineContext
            The pipeline context providing the command runner
        cmd : List[str]
            Command and arguments
        stdout_path : Path, optional
            File receiving the command's stdout
        label : str, optional
            Subtask name used for timing (default: the executable name)

        Raises
        ------
        CommandError
            If the command exits with a non-zero status
        """
        label = label or str(cmd[0])
        start = self._start_subtask(label)
        result = context.runner.run([str(c) for c in cmd], stdout_path=stdout_path)
        self._end_subtask(label, start)
        if result.returncode != 0:
            raise CommandError([str(c) for c in cmd], result.returncode, self.name, result.output)

    @abstractmethod
    def _process(self, context: PipelineContext) -> PipelineContext:
        """Core processing logic - must be implemented by subclasses.

        Parameters
        ----------
        context : PipelineContext
            The pipeline context

        Returns
        -------
        PipelineContext
            Updated context after processing
        """
        pass

    def _pre_execute(self, context: PipelineContext) -> None:
        """Create the stage working directory."""
        stage_dir = self.stage_dir(context)
        if stage_dir is not None:
            stage_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"{self.description}: Directory ensured at {stage_dir}")

    def validate_prerequisites(self, context: PipelineContext) -> None:
        """Validate stage-specific prerequisites beyond dependencies.

        Raise ResourceNotFoundError to skip the stage with a warning; any
        other exception aborts the pipeline.
        """
        pass

    def __repr__(self) -> str:
        """Return string representation of the stage."""
        deps = f", depends_on={self.dependencies}" if self.dependencies else ""
        return f"{self.__class__.__name__}(name='{self.name}'{deps})"

    def _start_subtask(self, subtask_name: str) -> float:
        start_time = time.time()
        logger.debug(f"Stage '{self.name}': Starting subtask '{subtask_name}'")
        return start_time

    def _end_subtask(self, subtask_name: str, start_time: float) -> None:
        elapsed = time.time() - start_time
        self._subtask_times[subtask_name] = self._subtask_times.get(subtask_name, 0.0) + elapsed
        logger.debug(f"Stage '{self.name}': Completed subtask '{subtask_name}' in {elapsed:.1f}s")

    @property
    def subtask_times(self) -> Dict[str, float]:
        """Get recorded subtask durations.

        Returns
        -------
        Dict[str, float]
            Dictionary of subtask names to durations in seconds
        """
        return self._subtask_times.copy()
