"""Command-line interface for genomepolisher."""

import argparse
import dataclasses
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .checkpoint import PipelineState
from .config import load_config
from .environment import (
    check_required_tools,
    log_tool_versions,
    resolve_pilon_jar,
    setup_conda_environment,
)
from .pipeline import plan_pipeline, run_polishing_pipeline
from .pipeline_core import RunConfig
from .pipeline_core.error_handling import PipelineError, validate_output_directory
from .utils import CommandRunner
from .validators import (
    validate_input_files,
    validate_java_heap,
    validate_positive_int,
    validate_read_type,
)
from .version import __version__

logger = logging.getLogger("genomepolisher")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

log_level_map = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def create_parser() -> argparse.ArgumentParser:
    """Create and return the argument parser for the genomepolisher CLI."""
    parser = argparse.ArgumentParser(
        description="genomepolisher: Iteratively polish a genome assembly "
        "with Racon, Medaka and Pilon."
    )

    # General Options
    general_group = parser.add_argument_group("General Options")
    general_group.add_argument(
        "--version",
        action="version",
        version=f"genomepolisher {__version__}",
        help="Show the current version and exit",
    )
    general_group.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        default="INFO",
        help="Set the logging level",
    )
    general_group.add_argument(
        "--verbose", action="store_true", help="Enable verbose logging (same as --log-level DEBUG)"
    )
    general_group.add_argument(
        "--log-file",
        help="Path to the log file (default: <workdir>/LOG.txt). Tool output is written "
        "next to it as <name>_output.txt.",
    )
    general_group.add_argument(
        "-c",
        "--config",
        help="Path to a JSON configuration file overriding the packaged defaults",
        default=None,
    )

    # Core Input/Output
    io_group = parser.add_argument_group("Core Input/Output")
    io_group.add_argument(
        "--workdir",
        default=".",
        help="Working directory; stage outputs go to <workdir>/assemblies (default: .)",
    )
    io_group.add_argument(
        "--output",
        dest="output_dir",
        help="Directory for the final assembly, relative paths are resolved against "
        "the working directory (default: polished_assemblies)",
    )
    io_group.add_argument("--prefix", help="Prefix for output files (default: assembly)")
    io_group.add_argument("--long-reads", help="Long reads FASTQ file")
    io_group.add_argument("--contigs", help="Contigs FASTA file to polish")
    io_group.add_argument("--short-reads1", help="First short reads FASTQ file (enables Pilon)")
    io_group.add_argument("--short-reads2", help="Second short reads FASTQ file (paired-end)")
    io_group.add_argument(
        "--read-type",
        help="Long-read type for minimap2: ont or pacbio, case-insensitive (default: ont)",
    )

    # Polishing Options
    polish_group = parser.add_argument_group("Polishing Options")
    polish_group.add_argument("--threads", help="Number of threads passed to the tools (default: 4)")
    polish_group.add_argument(
        "--max-iter",
        dest="max_iterations",
        help="Number of Racon and Pilon iterations (default: 3)",
    )
    polish_group.add_argument("--java-heap", help="Java heap size for Pilon (default: 64G)")
    polish_group.add_argument(
        "--pilon-jar",
        help="Path to the Pilon JAR; searched in $CONDA_PREFIX/share when omitted",
    )

    # Environment Options
    env_group = parser.add_argument_group("Environment Options")
    env_group.add_argument(
        "--conda-env", help="Conda environment holding the tools (default: genome_correction)"
    )
    env_group.add_argument(
        "--setup-env",
        action="store_true",
        help="Create the conda environment and install the tools before running",
    )

    # Checkpoint & Resume Options
    checkpoint_group = parser.add_argument_group("Checkpoint & Resume Options")
    checkpoint_group.add_argument(
        "--resume",
        action="store_true",
        help="Continue after the last completed stage found in the assemblies directory",
    )
    checkpoint_group.add_argument(
        "--show-checkpoint-status",
        action="store_true",
        help="Show the recorded stage status of the working directory and exit",
    )

    # Reporting & Cleanup
    output_group = parser.add_argument_group("Reporting & Cleanup")
    output_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the configuration and the stage plan without running any tool",
    )
    output_group.add_argument(
        "--clean",
        dest="clean_intermediate",
        action="store_true",
        default=None,
        help="Remove intermediate files and stage directories after success",
    )
    output_group.add_argument(
        "--html-report",
        action="store_true",
        default=None,
        help="Also write an HTML polishing report to the output directory",
    )

    return parser


def parse_args(args_list: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Parameters
    ----------
    args_list : list, optional
        List of arguments to parse. If None, uses sys.argv

    Returns
    -------
    argparse.Namespace
        Parsed arguments
    """
    parser = create_parser()
    return parser.parse_args(args_list)


def _setting(args: argparse.Namespace, cfg: Dict[str, Any], key: str) -> Any:
    """CLI value if given, otherwise the configuration value."""
    value = getattr(args, key, None)
    return value if value is not None else cfg.get(key)


def _under(base: Path, path: Any) -> Path:
    path = Path(path)
    return path if path.is_absolute() else base / path


def build_run_config(
    args: argparse.Namespace, cfg: Dict[str, Any], pilon_jar: Optional[Path] = None
) -> RunConfig:
    """
    Merge CLI arguments over the configuration and validate the result.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command-line arguments.
    cfg : dict
        Configuration loaded by load_config.
    pilon_jar : Path, optional
        Located Pilon jar.

    Returns
    -------
    RunConfig
        Immutable run parameters.

    Raises
    ------
    ConfigurationError
        If any parameter or input file is invalid.
    """
    workdir = Path(args.workdir)
    short_reads_1 = _setting(args, cfg, "short_reads1") or None
    short_reads_2 = _setting(args, cfg, "short_reads2") or None
    long_reads = _setting(args, cfg, "long_reads")
    contigs = _setting(args, cfg, "contigs")

    validate_input_files(long_reads, contigs, short_reads_1, short_reads_2)

    return RunConfig(
        prefix=str(_setting(args, cfg, "prefix")),
        max_iterations=validate_positive_int(_setting(args, cfg, "max_iterations"), "max_iterations"),
        read_type=validate_read_type(_setting(args, cfg, "read_type")),
        contigs=Path(contigs),
        long_reads=Path(long_reads),
        assemblies_dir=workdir / "assemblies",
        output_dir=_under(workdir, _setting(args, cfg, "output_dir")),
        short_reads_1=Path(short_reads_1) if short_reads_1 else None,
        short_reads_2=Path(short_reads_2) if short_reads_2 else None,
        threads=validate_positive_int(_setting(args, cfg, "threads"), "threads"),
        java_heap=validate_java_heap(_setting(args, cfg, "java_heap")),
        pilon_jar=pilon_jar,
        clean_intermediate=bool(_setting(args, cfg, "clean_intermediate")),
        resume=args.resume,
    )


def configure_file_logging(log_file: Path, level: int, resume: bool) -> Path:
    """
    Attach a file handler to the package logger and prepare the program-output file.

    The log file and the program-output file are truncated on a fresh run and
    appended to on ``--resume``.

    Returns
    -------
    Path
        The program-output file receiving tool output.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    mode = "a" if resume else "w"

    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()

    fh = logging.FileHandler(log_file, mode=mode, encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(fh)

    program_output = log_file.with_name(f"{log_file.stem}_output.txt")
    with open(program_output, mode, encoding="utf-8"):
        pass
    logger.info(f"Logging initialized. Log file: {log_file}")
    return program_output


def log_configuration_summary(config: RunConfig, args: argparse.Namespace, cfg: Dict[str, Any]) -> None:
    """Log every effective run parameter."""
    logger.info("Configuration Summary:")
    logger.info(f"  Working Directory: {args.workdir}")
    logger.info(f"  Assemblies Directory: {config.assemblies_dir}")
    logger.info(f"  Output Directory: {config.output_dir}")
    logger.info(f"  Prefix: {config.prefix}")
    logger.info(f"  Long Reads File: {config.long_reads}")
    logger.info(f"  Short Reads File 1: {config.short_reads_1 or 'Not Provided'}")
    logger.info(f"  Short Reads File 2: {config.short_reads_2 or 'Not Provided'}")
    logger.info(f"  Contigs File: {config.contigs}")
    logger.info(f"  Threads: {config.threads}")
    logger.info(f"  Max Iterations: {config.max_iterations}")
    logger.info(f"  Java Heap Size: {config.java_heap}")
    logger.info(f"  Pilon JAR Path: {config.pilon_jar or 'Not Provided'}")
    logger.info(f"  Conda Environment: {_setting(args, cfg, 'conda_env')}")
    logger.info(f"  Read Type for Minimap2: {config.read_type.value}")
    logger.info(f"  Short Reads Provided: {config.short_reads_available}")
    logger.info(f"  Cleanup Intermediate Files: {config.clean_intermediate}")
    logger.info(f"  Resume Pipeline: {config.resume}")
    logger.info(f"  Dry Run: {args.dry_run}")


def show_checkpoint_status(workdir: Path) -> int:
    """Print the recorded stage status of a working directory."""
    assemblies_dir = workdir / "assemblies"
    pipeline_state = PipelineState(str(assemblies_dir))
    if pipeline_state.load():
        print(pipeline_state.get_summary())
    else:
        print(f"No checkpoint state found in {assemblies_dir}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run main entry point for the genomepolisher CLI.

    Steps:
        1. Parse arguments and load the configuration.
        2. Validate parameters and input files into a RunConfig; nothing is
           written to the working directory before this succeeds.
        3. Configure file logging, optionally set up the conda environment
           and locate the Pilon jar.
        4. On --dry-run, log the stage plan and stop.
        5. Check the required tools, log their versions and run the pipeline.

    Returns
    -------
    int
        0 on success, 1 on invalid configuration or a failed stage.
    """
    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
    )

    args = parse_args(argv)

    level = logging.DEBUG if args.verbose else log_level_map[args.log_level]
    logger.setLevel(level)

    workdir = Path(args.workdir)
    if args.show_checkpoint_status:
        return show_checkpoint_status(workdir)

    start_time = datetime.datetime.now()

    try:
        cfg = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        return 1
    logger.debug(f"Configuration loaded: {cfg}")

    try:
        config = build_run_config(args, cfg)
    except PipelineError as e:
        logger.error(f"Genome Polisher Pipeline failed: {e}")
        return 1

    try:
        validate_output_directory(workdir)
        log_file = _under(workdir, args.log_file or cfg.get("log_file", "LOG.txt"))
        program_output = configure_file_logging(log_file, level, args.resume)
        logger.info(f"Genome Polisher Pipeline started at {start_time.isoformat()}")
        logger.info(f"Program Output File: {program_output}")
        logger.debug(f"CLI arguments: {args}")

        runner = CommandRunner(program_output)

        if args.setup_env and not args.dry_run:
            setup_conda_environment(
                _setting(args, cfg, "conda_env"), cfg.get("required_packages", []), runner
            )

        # Jar lookup reads $CONDA_PREFIX; must run after the environment setup
        if config.short_reads_available:
            pilon_jar = resolve_pilon_jar(_setting(args, cfg, "pilon_jar"))
            config = dataclasses.replace(config, pilon_jar=pilon_jar)

        log_configuration_summary(config, args, cfg)
        html_report = bool(_setting(args, cfg, "html_report"))

        if args.dry_run:
            logger.info("Performing dry run...")
            plan_pipeline(config, html_report=html_report)
            logger.info("Dry run completed successfully.")
            return 0

        check_required_tools(config.short_reads_available)
        tool_versions = log_tool_versions(pilon_jar=config.pilon_jar)

        run_polishing_pipeline(
            config, runner=runner, html_report=html_report, tool_versions=tool_versions
        )
    except (PipelineError, PermissionError) as e:
        logger.error(f"Genome Polisher Pipeline failed: {e}")
        return 1

    duration = (datetime.datetime.now() - start_time).total_seconds()
    logger.info(f"Genome Polisher Pipeline completed successfully in {duration:.1f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
