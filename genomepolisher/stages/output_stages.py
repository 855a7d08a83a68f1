"""
Output stages.

This module contains the stages that run after polishing:
- FinalizeStage: Publish the final assembly under the output directory
- PolishingReportStage: Write the per-stage summary (TSV, optional HTML)
- CleanupStage: Remove all per-stage directories
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional, Set

from ..pipeline_core import PipelineContext, Stage
from ..pipeline_core.error_handling import PipelineError
from ..report import build_summary_table, generate_html_report, write_summary_tsv

logger = logging.getLogger(__name__)


class FinalizeStage(Stage):
    """Copy the final assembly to ``<output_dir>/<prefix>_final_assembly.fasta``.

    An already published file is left untouched.
    """

    tracks_assembly = False

    def __init__(self, after: Optional[str] = None):
        super().__init__()
        self.after = after

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "finalize"

    @property
    def dependencies(self) -> Set[str]:
        """Return the stage dependencies."""
        return {self.after} if self.after else set()

    @property
    def description(self) -> str:
        """Return a description of the stage."""
        return "Final Assembly Output"

    def stage_dir(self, context: PipelineContext) -> Path:
        """Return the output directory."""
        return context.workspace.output_dir

    def expected_output(self, context: PipelineContext) -> Path:
        """Return the published assembly path."""
        return context.workspace.final_output()

    def _process(self, context: PipelineContext) -> PipelineContext:
        source = context.final_assembly or context.current_assembly
        if source is None or not Path(source).is_file():
            raise PipelineError(f"Final assembly {source} does not exist", stage=self.name)

        destination = self.expected_output(context)
        partial = destination.with_name(destination.name + ".partial")
        shutil.copyfile(source, partial)
        os.replace(partial, destination)
        context.final_assembly = Path(source)
        logger.info(f"Polishing Pipeline: Final assembly saved to {destination}")
        return context


class PolishingReportStage(Stage):
    """Write ``<prefix>_polishing_summary.tsv`` and optionally an HTML report."""

    tracks_assembly = False

    def __init__(self, after: Optional[str] = None, html: bool = False):
        super().__init__()
        self.after = after
        self.html = html

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "polishing_report"

    @property
    def dependencies(self) -> Set[str]:
        """Return the stage dependencies."""
        return {self.after} if self.after else set()

    @property
    def description(self) -> str:
        """Return a description of the stage."""
        return "Polishing Summary Report"

    def _process(self, context: PipelineContext) -> PipelineContext:
        df = build_summary_table(context)
        write_summary_tsv(df, context.workspace.get_output_path("_polishing_summary", ".tsv"))
        if self.html:
            generate_html_report(
                df, context, context.workspace.get_output_path("_polishing_report", ".html")
            )
        return context


class CleanupStage(Stage):
    """Remove every ``racon_iter*``, ``medaka`` and ``pilon_iter*`` directory."""

    tracks_assembly = False

    def __init__(self, after: Optional[str] = None):
        super().__init__()
        self.after = after

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "cleanup"

    @property
    def dependencies(self) -> Set[str]:
        """Return the stage dependencies."""
        return {self.after} if self.after else set()

    @property
    def description(self) -> str:
        """Return a description of the stage."""
        return "Intermediate Cleanup"

    def _process(self, context: PipelineContext) -> PipelineContext:
        logger.info("Polishing Pipeline: Initiating cleanup of intermediate files...")
        removed = context.workspace.remove_stage_dirs()
        logger.info(
            f"Polishing Pipeline: Removed {len(removed)} intermediate directories "
            f"as per '--clean' flag."
        )
        return context
