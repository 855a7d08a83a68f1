"""
PipelineRunner - Executes stages strictly one after another in dependency order.

Each stage consumes the assembly produced by the previous one, so there is
no parallelism across stages; the runner validates the plan, runs the stages
sequentially, stops at the first fatal error and reports stage timings.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Tuple

from .context import PipelineContext
from .stage import Stage

logger = logging.getLogger(__name__)


class PipelineRunner:
    """Executes stages in a strict total order.

    The runner analyzes stage dependencies and determines the execution
    order. Stages with no ordering constraint between them keep the order in
    which they were supplied. It handles:
    - Duplicate and circular dependency detection
    - Sequential execution with fail-fast error propagation
    - Stage timing summary
    """

    def __init__(self):
        """Initialize the pipeline runner."""
        self._execution_times: Dict[str, float] = {}
        self._subtask_times: Dict[str, Dict[str, float]] = {}

    def run(self, stages: List[Stage], context: PipelineContext) -> PipelineContext:
        """Execute all stages in dependency order.

        Parameters
        ----------
        stages : List[Stage]
            List of stages to execute
        context : PipelineContext
            Initial pipeline context

        Returns
        -------
        PipelineContext
            Final context after all stages complete

        Raises
        ------
        ValueError
            If duplicate stage names or circular dependencies are detected
        PipelineError
            If any stage fails; later stages are not attempted
        """
        start_time = time.time()
        logger.info(f"Starting pipeline execution with {len(stages)} stages")

        execution_order = self._create_execution_order(stages)
        logger.debug(f"Execution order: {[s.name for s in execution_order]}")

        for position, stage in enumerate(execution_order, start=1):
            logger.debug(f"Step {position}/{len(execution_order)}: '{stage.name}'")
            context = self._execute_stage(stage, context)

        total_time = time.time() - start_time
        logger.info(f"Pipeline execution completed in {total_time:.1f}s")

        self._log_execution_summary()

        return context

    def _create_execution_order(self, stages: List[Stage]) -> List[Stage]:
        """Topologically sort stages, keeping the supplied order for ties.

        Parameters
        ----------
        stages : List[Stage]
            All stages to execute

        Returns
        -------
        List[Stage]
            Stages in execution order

        Raises
        ------
        ValueError
            If duplicate names, unknown dependencies or circular
            dependencies are detected
        """
        graph = {stage.name: stage for stage in stages}
        if len(graph) != len(stages):
            raise ValueError("Duplicate stage names detected")

        position = {stage.name: i for i, stage in enumerate(stages)}
        dependents = defaultdict(set)
        in_degree = {}
        for stage in stages:
            unknown = stage.dependencies - graph.keys()
            if unknown:
                raise ValueError(
                    f"Stage '{stage.name}' depends on stages not in the pipeline: "
                    f"{sorted(unknown)}"
                )
            in_degree[stage.name] = len(stage.dependencies)
            for dep in stage.dependencies:
                dependents[dep].add(stage.name)

        ready = [name for name, degree in in_degree.items() if degree == 0]
        order: List[Stage] = []
        while ready:
            ready.sort(key=position.get)
            name = ready.pop(0)
            order.append(graph[name])
            for dependent in dependents[name]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)

        if len(order) != len(stages):
            unprocessed = set(graph) - {s.name for s in order}
            raise ValueError(f"Circular dependency detected involving stages: {unprocessed}")

        return order

    def _execute_stage(self, stage: Stage, context: PipelineContext) -> PipelineContext:
        """Execute a single stage and track timing."""
        start_time = time.time()
        result = stage(context)
        self._execution_times[stage.name] = time.time() - start_time

        if stage.subtask_times:
            self._subtask_times[stage.name] = stage.subtask_times

        return result

    def _log_execution_summary(self) -> None:
        """Log summary of stage execution times."""
        if not self._execution_times:
            return

        logger.info("=" * 60)
        logger.info("Stage Execution Summary")
        logger.info("=" * 60)

        total_time = sum(self._execution_times.values())

        for stage_name, elapsed in self._execution_times.items():
            percentage = (elapsed / total_time) * 100 if total_time > 0 else 0
            logger.info(f"{stage_name:30s} {elapsed:6.1f}s ({percentage:4.1f}%)")

            for subtask_name, subtask_elapsed in self._subtask_times.get(stage_name, {}).items():
                subtask_percentage = (subtask_elapsed / elapsed) * 100 if elapsed > 0 else 0
                logger.info(
                    f"  └─ {subtask_name:26s} {subtask_elapsed:6.1f}s ({subtask_percentage:4.1f}%)"
                )

        logger.info("-" * 60)
        logger.info(f"{'Total stage time:':30s} {total_time:6.1f}s")
        logger.info("=" * 60)

    def dry_run(self, stages: List[Stage], context: PipelineContext) -> List[Tuple[str, str]]:
        """Show the execution plan without running stages.

        Parameters
        ----------
        stages : List[Stage]
            Stages to analyze
        context : PipelineContext
            Context used to check for expected outputs

        Returns
        -------
        List[Tuple[str, str]]
            ``(stage name, "skip" | "run")`` in execution order; stages already
            complete in the context or with an existing output are skipped
        """
        plan = []
        for stage in self._create_execution_order(stages):
            output = stage.expected_output(context)
            done = context.is_complete(stage.name) or (
                output is not None and context.file_exists(output)
            )
            action = "skip" if done else "run"
            plan.append((stage.name, action))
        return plan
