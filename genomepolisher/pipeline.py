# File: genomepolisher/pipeline.py
# Location: genomepolisher/genomepolisher/pipeline.py

"""
Polishing pipeline assembly and execution.

Builds the fixed stage list (Racon x N, Medaka, Pilon x N when short reads
are available, finalize, report, cleanup), prepares the pipeline context,
applies the resume point of a resumed run and hands everything to the
PipelineRunner.
"""

import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .checkpoint import PipelineState
from .pipeline_core import (
    PipelineContext,
    PipelineRunner,
    ResumePoint,
    RunConfig,
    Stage,
    StageRecord,
    Workspace,
    scan_resume_state,
)
from .stages import (
    CleanupStage,
    FinalizeStage,
    MedakaConsensusStage,
    PilonIterationStage,
    PolishingReportStage,
    RaconIterationStage,
)
from .utils import CommandRunner
from .version import __version__

logger = logging.getLogger("genomepolisher")


def build_pipeline_stages(config: RunConfig, html_report: bool = False) -> List[Stage]:
    """Build the ordered list of stages for a run.

    Parameters
    ----------
    config : RunConfig
        Run parameters
    html_report : bool
        Also render the HTML summary report

    Returns
    -------
    List[Stage]
        Stages in execution order
    """
    stages: List[Stage] = []
    n = config.max_iterations

    stages.extend(RaconIterationStage(i) for i in range(1, n + 1))
    stages.append(MedakaConsensusStage(after=f"racon_iter{n}"))
    last = "medaka"

    if config.short_reads_available:
        stages.extend(PilonIterationStage(i, after="medaka") for i in range(1, n + 1))
        last = f"pilon_iter{n}"
    else:
        logger.info("Polishing Pipeline: No short reads provided. Skipping Pilon polishing.")

    stages.append(FinalizeStage(after=last))
    stages.append(PolishingReportStage(after="finalize", html=html_report))

    if config.clean_intermediate:
        stages.append(CleanupStage(after="polishing_report"))

    return stages


def create_workspace(config: RunConfig) -> Workspace:
    """Return the workspace of a run without creating any directory."""
    return Workspace(config.assemblies_dir, config.output_dir, config.prefix)


def apply_resume_point(context: PipelineContext, point: ResumePoint) -> List[str]:
    """Mark the unbroken run of completed stages as resumed.

    Walks the polishing chain in execution order (Racon iterations, Medaka,
    Pilon iterations when short reads are available) and marks each stage
    whose output is present, stopping at the first missing output. Stages
    after a gap are left to their own existence check, so a missing Racon
    iteration is rebuilt from the last assembly before it. The current
    assembly pointer moves to the output of the last marked stage.

    Parameters
    ----------
    context : PipelineContext
        Fresh pipeline context
    point : ResumePoint
        Result of scan_resume_state

    Returns
    -------
    List[str]
        Names of the stages marked as resumed
    """
    config = context.config
    workspace = context.workspace

    chain: List[Tuple[str, Path]] = [
        (f"racon_iter{i}", workspace.racon_output(i)) for i in range(1, config.max_iterations + 1)
    ]
    chain.append(("medaka", workspace.medaka_output()))
    if config.short_reads_available:
        chain.extend(
            (f"pilon_iter{i}", workspace.pilon_output(i))
            for i in range(1, config.max_iterations + 1)
        )

    resumed: List[Tuple[str, Path]] = []
    for name, output in chain:
        if not context.file_exists(output):
            break
        resumed.append((name, output))

    for name, output in resumed:
        context.mark_complete(
            name,
            StageRecord(name=name, status="resumed", output_path=output, message="resume point"),
        )

    resume_from = resumed[-1][1] if resumed else Path(config.contigs)
    if not point.is_fresh and resume_from != point.current_assembly:
        logger.warning(
            f"Polishing Pipeline: Existing outputs do not form an unbroken chain up to "
            f"{point.current_assembly}; stages after the gap re-check their own outputs"
        )
    if not resumed:
        return []

    last_name = resumed[-1][0]
    context.update_assembly(resume_from, final=not last_name.startswith("racon_iter"))
    logger.info(f"Polishing Pipeline: Resuming after {last_name} from {resume_from}")
    return [name for name, _ in resumed]


def create_pipeline_context(
    config: RunConfig,
    runner: Optional[CommandRunner] = None,
    file_exists: Callable[[Path], bool] = os.path.isfile,
    persist_state: bool = True,
) -> PipelineContext:
    """Create the context of one invocation, applying the resume point if requested.

    Parameters
    ----------
    config : RunConfig
        Run parameters
    runner : CommandRunner, optional
        Executes external commands
    file_exists : Callable[[Path], bool]
        Existence check for resume markers
    persist_state : bool
        Record stage provenance in the checkpoint state file; disabled for
        dry runs, which must not write anything

    Returns
    -------
    PipelineContext
        Context ready to be passed to the runner
    """
    workspace = create_workspace(config)
    context = PipelineContext(
        config=config,
        workspace=workspace,
        runner=runner or CommandRunner(),
        file_exists=file_exists,
    )

    state = PipelineState(str(config.assemblies_dir))
    loaded = state.load()
    if loaded and config.resume and not state.configuration_matches(config.to_dict()):
        logger.warning(
            "Polishing Pipeline: Configuration differs from the run that produced the "
            "existing outputs; they are reused as-is."
        )

    if config.resume:
        point = scan_resume_state(config, workspace, file_exists, state if loaded else None)
        apply_resume_point(context, point)

    if persist_state:
        workspace.create()
        state.initialize(config.to_dict(), __version__)
        context.checkpoint_state = state

    return context


def plan_pipeline(
    config: RunConfig,
    html_report: bool = False,
    file_exists: Callable[[Path], bool] = os.path.isfile,
) -> List[Tuple[str, str]]:
    """Return the stage plan of a run without executing anything.

    Returns
    -------
    List[Tuple[str, str]]
        ``(stage name, "skip" | "run")`` in execution order
    """
    context = create_pipeline_context(config, file_exists=file_exists, persist_state=False)
    stages = build_pipeline_stages(config, html_report=html_report)
    plan = PipelineRunner().dry_run(stages, context)

    logger.info("Dry run: stage plan")
    for name, action in plan:
        logger.info(f"  {name:20s} {'skip (output present)' if action == 'skip' else 'run'}")
    return plan


def run_polishing_pipeline(
    config: RunConfig,
    runner: Optional[CommandRunner] = None,
    html_report: bool = False,
    file_exists: Callable[[Path], bool] = os.path.isfile,
    tool_versions: Optional[Dict[str, str]] = None,
) -> PipelineContext:
    """Run the polishing pipeline.

    Parameters
    ----------
    config : RunConfig
        Run parameters
    runner : CommandRunner, optional
        Executes external commands
    html_report : bool
        Also render the HTML summary report
    file_exists : Callable[[Path], bool]
        Existence check for resume markers
    tool_versions : dict, optional
        Tool versions shown in the reports

    Returns
    -------
    PipelineContext
        Final context

    Raises
    ------
    PipelineError
        If any stage fails fatally; later stages are not attempted
    """
    context = create_pipeline_context(config, runner=runner, file_exists=file_exists)
    if tool_versions:
        context.tool_versions.update(tool_versions)

    stages = build_pipeline_stages(config, html_report=html_report)
    logger.info(f"Pipeline configured with {len(stages)} stages")

    try:
        context = PipelineRunner().run(stages, context)
    except Exception as e:
        logger.error(f"Polishing Pipeline: Aborted: {e}")
        raise

    logger.info(
        f"Polishing Pipeline: Completed successfully. Final assembly: "
        f"{context.workspace.final_output()}"
    )
    return context
