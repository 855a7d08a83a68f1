"""
Polishing stages.

This module contains the stages that call the external polishing tools:
- RaconIterationStage: minimap2 alignment + Racon consensus, one iteration
- MedakaConsensusStage: single Medaka consensus pass
- PilonIterationStage: BWA/Samtools short-read alignment + Pilon, one iteration

Racon and Pilon share IterativePolishingStage, which owns the iteration
naming and chaining; the subclasses only describe their command sequence.
"""

import logging
import os
import shutil
from abc import abstractmethod
from pathlib import Path
from typing import List, Optional, Set

from ..pipeline_core import PipelineContext, Stage
from ..pipeline_core.error_handling import PipelineError, ResourceNotFoundError

logger = logging.getLogger(__name__)

BWA_INDEX_SUFFIXES = (".amb", ".ann", ".bwt", ".pac", ".sa")


class IterativePolishingStage(Stage):
    """One iteration of an iterated polishing family.

    Parameters
    ----------
    index : int
        Iteration number, starting at 1
    after : str, optional
        Stage the first iteration runs after; later iterations always run
        after the previous iteration of the same family
    """

    family: str = ""
    label: str = ""

    def __init__(self, index: int, after: Optional[str] = None):
        super().__init__()
        if index < 1:
            raise ValueError(f"Iteration index must be >= 1, got {index}")
        self.index = index
        self.after = after

    @property
    def name(self) -> str:
        """Return the stage name."""
        return f"{self.family}_iter{self.index}"

    @property
    def dependencies(self) -> Set[str]:
        """Return the stage dependencies."""
        if self.index > 1:
            return {f"{self.family}_iter{self.index - 1}"}
        return {self.after} if self.after else set()

    @property
    def description(self) -> str:
        """Return a description of the stage."""
        return f"{self.label} Iteration {self.index}"

    def stage_dir(self, context: PipelineContext) -> Path:
        """Return the iteration directory."""
        return context.workspace.stage_dir(self.family, self.index)

    def _process(self, context: PipelineContext) -> PipelineContext:
        assembly = context.current_assembly
        logger.info(f"{self.description}: Started polishing {assembly}")
        self.polish(context, Path(assembly), self.stage_dir(context))
        logger.info(
            f"{self.description}: Polishing completed. Output FASTA: {self.expected_output(context)}"
        )
        return context

    @abstractmethod
    def polish(self, context: PipelineContext, assembly: Path, work_dir: Path) -> None:
        """Run the external command sequence of one iteration."""


class RaconIterationStage(IterativePolishingStage):
    """Align long reads with minimap2 and polish with Racon."""

    family = "racon"
    label = "Racon"

    def expected_output(self, context: PipelineContext) -> Path:
        """Return the Racon consensus of this iteration."""
        return context.workspace.racon_output(self.index)

    def alignment_path(self, context: PipelineContext) -> Path:
        """Return the PAF alignment of this iteration."""
        return self.stage_dir(context) / f"alignment_iter{self.index}.paf"

    def intermediate_files(self, context: PipelineContext) -> List[Path]:
        """Return files removed after a successful iteration."""
        return [self.alignment_path(context)]

    def polish(self, context: PipelineContext, assembly: Path, work_dir: Path) -> None:
        """Run minimap2 then Racon, publishing the consensus atomically."""
        config = context.config
        paf = self.alignment_path(context)
        output = self.expected_output(context)

        self.run_command(
            context,
            [
                "minimap2",
                "-x",
                config.read_type.minimap2_preset,
                "-t",
                config.threads,
                assembly,
                config.long_reads,
            ],
            stdout_path=paf,
        )
        logger.info(f"{self.description}: Minimap2 alignment completed. Output PAF: {paf}")

        # The output file is the resume marker, so it must only appear complete
        partial = output.with_name(output.name + ".partial")
        self.run_command(
            context,
            ["racon", "-t", config.threads, config.long_reads, paf, assembly],
            stdout_path=partial,
        )
        os.replace(partial, output)


class MedakaConsensusStage(Stage):
    """Single Medaka consensus pass over the Racon result."""

    updates_final = True

    def __init__(self, after: Optional[str] = None):
        super().__init__()
        self.after = after

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "medaka"

    @property
    def dependencies(self) -> Set[str]:
        """Return the stage dependencies."""
        return {self.after} if self.after else set()

    @property
    def description(self) -> str:
        """Return a description of the stage."""
        return "Medaka Polishing"

    def stage_dir(self, context: PipelineContext) -> Path:
        """Return the Medaka directory."""
        return context.workspace.stage_dir("medaka")

    def expected_output(self, context: PipelineContext) -> Path:
        """Return the stable copy of the Medaka consensus."""
        return context.workspace.medaka_output()

    def scratch_dir(self, context: PipelineContext) -> Path:
        """Return the directory medaka_consensus writes into."""
        return self.stage_dir(context) / "medaka_output"

    def intermediate_files(self, context: PipelineContext) -> List[Path]:
        """Return the Medaka scratch directory."""
        return [self.scratch_dir(context)]

    def _process(self, context: PipelineContext) -> PipelineContext:
        config = context.config
        scratch = self.scratch_dir(context)
        logger.info(f"{self.description}: Started polishing {context.current_assembly}")

        self.run_command(
            context,
            [
                "medaka_consensus",
                "-i",
                config.long_reads,
                "-d",
                context.current_assembly,
                "-o",
                scratch,
                "-t",
                config.threads,
            ],
        )

        consensus = scratch / "consensus.fasta"
        if not consensus.is_file():
            raise PipelineError(
                f"Medaka finished without writing {consensus}", stage=self.name
            )
        output = self.expected_output(context)
        partial = output.with_name(output.name + ".partial")
        shutil.copyfile(consensus, partial)
        os.replace(partial, output)
        logger.info(f"{self.description}: Consensus assembly saved to {output}")
        return context


class PilonIterationStage(IterativePolishingStage):
    """Align short reads with BWA/Samtools and polish with Pilon.

    The Pilon jar is the one optional resource of the pipeline: when it was
    not located the iteration is skipped with a warning and the previous
    assembly is kept.
    """

    family = "pilon"
    label = "Pilon"
    updates_final = True

    def expected_output(self, context: PipelineContext) -> Path:
        """Return the Pilon FASTA of this iteration."""
        return context.workspace.pilon_output(self.index)

    def output_name(self, context: PipelineContext) -> str:
        """Return the ``--output`` prefix passed to Pilon."""
        return f"{context.config.prefix}_pilon_iter{self.index}"

    def index_prefix(self, context: PipelineContext) -> Path:
        """Return the BWA index prefix, kept inside the iteration directory."""
        return self.stage_dir(context) / f"bwa_index_iter{self.index}"

    def sam_path(self, context: PipelineContext) -> Path:
        """Return the unsorted alignment."""
        return self.stage_dir(context) / f"pilon_aligned_iter{self.index}.sam"

    def bam_path(self, context: PipelineContext) -> Path:
        """Return the sorted alignment."""
        return self.stage_dir(context) / f"pilon_aligned_iter{self.index}.bam"

    def intermediate_files(self, context: PipelineContext) -> List[Path]:
        """Return alignment and index files removed after a successful iteration."""
        bam = self.bam_path(context)
        index_prefix = str(self.index_prefix(context))
        files = [self.sam_path(context), bam, Path(f"{bam}.bai")]
        files.extend(Path(index_prefix + suffix) for suffix in BWA_INDEX_SUFFIXES)
        return files

    def validate_prerequisites(self, context: PipelineContext) -> None:
        """Require a located Pilon jar."""
        jar = context.config.pilon_jar
        if jar is None:
            raise ResourceNotFoundError("Pilon JAR (path is not set)", stage=self.name)
        if not Path(jar).is_file():
            raise ResourceNotFoundError(f"Pilon JAR ({jar})", stage=self.name)

    def polish(self, context: PipelineContext, assembly: Path, work_dir: Path) -> None:
        """Run the BWA/Samtools alignment and Pilon."""
        config = context.config
        index_prefix = self.index_prefix(context)
        sam = self.sam_path(context)
        bam = self.bam_path(context)

        reads = [config.short_reads_1]
        if config.short_reads_2:
            reads.append(config.short_reads_2)

        self.run_command(context, ["bwa", "index", "-p", index_prefix, assembly], label="bwa index")
        self.run_command(
            context,
            ["bwa", "mem", "-t", config.threads, "-o", sam, index_prefix, *reads],
            label="bwa mem",
        )
        self.run_command(
            context,
            ["samtools", "sort", "-@", config.threads, "-o", bam, sam],
            label="samtools sort",
        )
        self.run_command(context, ["samtools", "index", bam], label="samtools index")
        logger.info(f"{self.description}: BWA alignment completed. Output BAM: {bam}")

        reads_flag = "--frags" if config.short_reads_2 else "--unpaired"
        self.run_command(
            context,
            [
                "java",
                f"-Xmx{config.java_heap}",
                "-jar",
                config.pilon_jar,
                "--genome",
                assembly,
                reads_flag,
                bam,
                "--output",
                self.output_name(context),
                "--outdir",
                work_dir,
            ],
            label="pilon",
        )

        if not self.expected_output(context).is_file():
            raise PipelineError(
                f"Pilon finished without writing {self.expected_output(context)}",
                stage=self.name,
            )
