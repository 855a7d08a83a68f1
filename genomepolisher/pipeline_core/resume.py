"""
Resume scanning - derive the starting point of a resumed run from disk.

Stage output files are the only durable record of progress. The scanner looks
for the furthest completed stage of each family and picks the assembly the
next stage should consume. Racon results are superseded by the Medaka result,
which is superseded by Pilon results.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .context import RunConfig
from .workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResumePoint:
    """Furthest completed stage per family and the assembly to continue from."""

    current_assembly: Path
    last_racon: int = 0
    medaka_done: bool = False
    last_pilon: int = 0

    @property
    def next_racon(self) -> int:
        """Index of the first Racon iteration without output."""
        return self.last_racon + 1

    @property
    def next_pilon(self) -> int:
        """Index of the first Pilon iteration without output."""
        return self.last_pilon + 1

    @property
    def is_fresh(self) -> bool:
        """True when no stage output was found."""
        return self.last_racon == 0 and not self.medaka_done and self.last_pilon == 0


def _highest_completed(
    max_iterations: int, output_for: Callable[[int], Path], file_exists: Callable[[Path], bool]
) -> int:
    for index in range(max_iterations, 0, -1):
        if file_exists(output_for(index)):
            return index
    return 0


def scan_resume_state(
    config: RunConfig,
    workspace: Workspace,
    file_exists: Callable[[Path], bool],
    checkpoint_state: Optional[object] = None,
) -> ResumePoint:
    """Determine where a resumed run continues.

    Parameters
    ----------
    config : RunConfig
        Run parameters
    workspace : Workspace
        Output naming convention
    file_exists : Callable[[Path], bool]
        Existence check for resume markers
    checkpoint_state : PipelineState, optional
        Recorded provenance; mismatches are logged as warnings only

    Returns
    -------
    ResumePoint
        The highest completed stage of each family and the assembly the
        next stage should consume
    """
    current = Path(config.contigs)
    # (step name, expected input) of the output the current assembly came from
    provenance = []

    last_racon = _highest_completed(config.max_iterations, workspace.racon_output, file_exists)
    if last_racon:
        current = workspace.racon_output(last_racon)
        previous = workspace.racon_output(last_racon - 1) if last_racon > 1 else config.contigs
        provenance.append((f"racon_iter{last_racon}", previous))
        logger.info(
            f"Polishing Pipeline: Found completed Racon iteration {last_racon}. "
            f"Current assembly: {current}"
        )

    medaka_done = file_exists(workspace.medaka_output())
    if medaka_done:
        current = workspace.medaka_output()
        provenance.append(("medaka", workspace.racon_output(config.max_iterations)))
        logger.info(f"Polishing Pipeline: Found completed Medaka polishing. Current assembly: {current}")

    last_pilon = 0
    if config.short_reads_available:
        last_pilon = _highest_completed(config.max_iterations, workspace.pilon_output, file_exists)
        if last_pilon:
            current = workspace.pilon_output(last_pilon)
            previous = (
                workspace.pilon_output(last_pilon - 1)
                if last_pilon > 1
                else workspace.medaka_output()
            )
            provenance.append((f"pilon_iter{last_pilon}", previous))
            logger.info(
                f"Polishing Pipeline: Found completed Pilon iteration {last_pilon}. "
                f"Current assembly: {current}"
            )

    if checkpoint_state is not None:
        for step_name, expected_input in provenance:
            if checkpoint_state.check_provenance(step_name, str(expected_input)) is False:
                logger.warning(
                    f"Polishing Pipeline: Output of '{step_name}' was not produced from "
                    f"{expected_input} or changed since it was recorded; it is reused as-is"
                )

    point = ResumePoint(
        current_assembly=current,
        last_racon=last_racon,
        medaka_done=medaka_done,
        last_pilon=last_pilon,
    )
    if point.is_fresh:
        logger.info("Polishing Pipeline: No completed stages found, starting from the contigs")
    return point
