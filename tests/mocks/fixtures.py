"""Test fixtures and factory functions."""

from pathlib import Path
from typing import Optional

from genomepolisher.pipeline_core import PipelineContext, ReadType, RunConfig, Workspace

from .external_tools import DEFAULT_FASTA, FakeCommandRunner


def write_fasta(path: Path, content: str = DEFAULT_FASTA) -> Path:
    """Write a small FASTA file, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def create_test_inputs(base_dir: Path, short_reads: bool = False, paired: bool = True) -> dict:
    """Create input files for a run.

    Returns
    -------
    dict
        Paths keyed by 'contigs', 'long_reads', 'short_reads_1', 'short_reads_2'
    """
    inputs_dir = Path(base_dir) / "inputs"
    inputs_dir.mkdir(parents=True, exist_ok=True)
    inputs = {
        "contigs": write_fasta(inputs_dir / "contigs.fasta", ">ctg1\nACGTTGCA\n"),
        "long_reads": write_fasta(inputs_dir / "long.fastq", "@r1\nACGT\n+\nIIII\n"),
        "short_reads_1": None,
        "short_reads_2": None,
    }
    if short_reads:
        inputs["short_reads_1"] = write_fasta(inputs_dir / "R1.fastq", "@s1\nACGT\n+\nIIII\n")
        if paired:
            inputs["short_reads_2"] = write_fasta(inputs_dir / "R2.fastq", "@s1\nTGCA\n+\nIIII\n")
    return inputs


def create_run_config(
    base_dir: Path,
    short_reads: bool = False,
    paired: bool = True,
    pilon_jar: bool = True,
    **overrides,
) -> RunConfig:
    """Create a RunConfig with real input files under ``base_dir``.

    Parameters
    ----------
    base_dir : Path
        Directory holding inputs, the assemblies directory and the output directory
    short_reads : bool
        Provide short reads (enables the Pilon phase)
    paired : bool
        Provide R2 as well as R1
    pilon_jar : bool
        Create a Pilon jar file and reference it
    **overrides
        RunConfig fields to override

    Returns
    -------
    RunConfig
        Run parameters for tests
    """
    base_dir = Path(base_dir)
    inputs = create_test_inputs(base_dir, short_reads=short_reads, paired=paired)

    jar = None
    if pilon_jar:
        jar = base_dir / "share" / "pilon-1.24-0" / "pilon.jar"
        jar.parent.mkdir(parents=True, exist_ok=True)
        jar.write_text("jar")

    values = {
        "prefix": "sample",
        "max_iterations": 2,
        "read_type": ReadType.ONT,
        "contigs": inputs["contigs"],
        "long_reads": inputs["long_reads"],
        "assemblies_dir": base_dir / "assemblies",
        "output_dir": base_dir / "polished_assemblies",
        "short_reads_1": inputs["short_reads_1"],
        "short_reads_2": inputs["short_reads_2"],
        "threads": 4,
        "java_heap": "8G",
        "pilon_jar": jar,
    }
    values.update(overrides)
    return RunConfig(**values)


def create_test_context(
    base_dir: Path,
    runner: Optional[FakeCommandRunner] = None,
    config: Optional[RunConfig] = None,
    **config_overrides,
) -> PipelineContext:
    """Create a PipelineContext backed by a fake command runner.

    Parameters
    ----------
    base_dir : Path
        Directory for inputs and outputs
    runner : FakeCommandRunner, optional
        Runner to use (a fresh one if not specified)
    config : RunConfig, optional
        Configuration to use instead of building one
    **config_overrides
        Arguments for create_run_config

    Returns
    -------
    PipelineContext
        Configured test context
    """
    config = config or create_run_config(base_dir, **config_overrides)
    workspace = Workspace(config.assemblies_dir, config.output_dir, config.prefix)
    workspace.create()
    return PipelineContext(
        config=config,
        workspace=workspace,
        runner=runner or FakeCommandRunner(),
    )
