# File: genomepolisher/environment.py
# Location: genomepolisher/genomepolisher/environment.py

"""
Tool environment handling.

Locates the Pilon jar, determines which external tools a run needs, logs
their versions and, on request, prepares a conda environment holding the
polishing tools. Environment management itself is delegated to conda and
micromamba; this module only invokes them.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .pipeline_core.error_handling import CommandError, ConfigurationError, ToolNotFoundError
from .utils import CommandRunner, check_external_tools, get_tool_version

logger = logging.getLogger("genomepolisher")

LONG_READ_TOOLS = ["minimap2", "racon", "medaka_consensus"]
SHORT_READ_TOOLS = ["bwa", "samtools", "java"]
VERSION_TOOLS = ["minimap2", "racon", "medaka", "samtools", "bwa", "java"]
PACKAGE_CHANNELS = ["conda-forge", "bioconda"]


def required_tools(short_reads: bool) -> List[str]:
    """
    Return the executables a run needs on PATH.

    Parameters
    ----------
    short_reads : bool
        Whether the Pilon phase runs.

    Returns
    -------
    List[str]
        Executable names.
    """
    tools = list(LONG_READ_TOOLS)
    if short_reads:
        tools.extend(SHORT_READ_TOOLS)
    return tools


def check_required_tools(short_reads: bool) -> None:
    """Raise ToolNotFoundError for the first required tool missing from PATH."""
    missing = check_external_tools(required_tools(short_reads))
    if missing:
        raise ToolNotFoundError(missing[0])


def locate_pilon_jar(conda_prefix: Optional[Union[str, Path]]) -> Optional[Path]:
    """
    Search ``<conda_prefix>/share`` for a Pilon jar.

    Parameters
    ----------
    conda_prefix : str or Path, optional
        Prefix of the active conda environment.

    Returns
    -------
    Path or None
        First matching ``pilon*.jar`` in sorted order, or None.
    """
    if not conda_prefix:
        return None
    share = Path(conda_prefix) / "share"
    if not share.is_dir():
        return None
    for jar in sorted(share.rglob("pilon*.jar")):
        if jar.is_file():
            return jar
    return None


def resolve_pilon_jar(
    explicit: Optional[Union[str, Path]] = None, conda_prefix: Optional[Union[str, Path]] = None
) -> Optional[Path]:
    """
    Pick the Pilon jar for a run.

    An explicitly given jar wins; otherwise the conda environment is
    searched (``conda_prefix`` or ``$CONDA_PREFIX``). A missing jar is not an
    error here: the Pilon stages skip themselves with a warning.
    """
    if explicit:
        jar = Path(explicit)
        if not jar.is_file():
            logger.warning(f"Pilon JAR {jar} does not exist. Pilon-based polishing will be skipped.")
        return jar

    jar = locate_pilon_jar(conda_prefix or os.environ.get("CONDA_PREFIX"))
    if jar is None:
        logger.warning("Pilon JAR file not found. Pilon-based polishing will be skipped.")
    else:
        logger.info(f"Pilon JAR path set to: {jar}")
    return jar


def log_tool_versions(
    tools: Iterable[str] = VERSION_TOOLS, pilon_jar: Optional[Union[str, Path]] = None
) -> Dict[str, str]:
    """
    Log and return the version of each tool.

    Parameters
    ----------
    tools : iterable of str
        Tools understood by ``get_tool_version``.
    pilon_jar : str or Path, optional
        When given, the Pilon version is looked up as well.

    Returns
    -------
    Dict[str, str]
        Tool name to version string ('N/A' when unknown).
    """
    names = list(tools)
    if pilon_jar and Path(pilon_jar).is_file():
        names.append("pilon")

    versions = {}
    for tool in names:
        versions[tool] = get_tool_version(tool, pilon_jar=pilon_jar)
        logger.info(f"{tool} version: {versions[tool]}")
    return versions


def _conda_environments(runner: CommandRunner) -> Dict[str, Path]:
    result = runner.run(["conda", "env", "list"])
    if not result.ok:
        raise CommandError(["conda", "env", "list"], result.returncode, output=result.output)

    environments = {}
    for line in result.output.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = [p for p in line.split() if p != "*"]
        if len(parts) == 2:
            environments[parts[0]] = Path(parts[1])
    return environments


def _run_or_raise(runner: CommandRunner, cmd: List[str]) -> str:
    result = runner.run(cmd)
    if not result.ok:
        raise CommandError(cmd, result.returncode, output=result.output)
    return result.output


def setup_conda_environment(
    env_name: str, packages: List[str], runner: Optional[CommandRunner] = None
) -> Path:
    """
    Create (if absent) a conda environment and install the polishing tools.

    The environment is created holding micromamba, which then installs
    ``packages`` from conda-forge and bioconda. The environment's ``bin``
    directory is prepended to PATH for the rest of the process.

    Parameters
    ----------
    env_name : str
        Name of the conda environment.
    packages : list of str
        Packages to install.
    runner : CommandRunner, optional
        Command runner; a plain one is used when omitted.

    Returns
    -------
    Path
        Prefix of the environment.

    Raises
    ------
    ToolNotFoundError
        If conda is not installed.
    CommandError
        If any conda or micromamba command fails.
    """
    runner = runner or CommandRunner()
    if check_external_tools(["conda"]):
        raise ToolNotFoundError("conda")

    packages = [p.strip() for p in packages if p and p.strip()]
    if not packages:
        raise ConfigurationError(
            "No packages configured for the conda environment", "required_packages"
        )

    logger.info("Starting Conda environment setup...")
    mamba_root = Path(_run_or_raise(runner, ["conda", "info", "--base"]).strip().splitlines()[-1])
    logger.info(f"Set MAMBA_ROOT_PREFIX to {mamba_root}")

    environments = _conda_environments(runner)
    if env_name in environments:
        logger.info(f"Conda environment '{env_name}' already exists.")
    else:
        logger.info(f"Creating Conda environment '{env_name}' with Micromamba...")
        _run_or_raise(runner, ["conda", "create", "-y", "-n", env_name, "micromamba"])
        environments = _conda_environments(runner)
    env_prefix = environments.get(env_name, mamba_root / "envs" / env_name)

    micromamba = env_prefix / "bin" / "micromamba"
    cmd = [str(micromamba), "install", "-y", "-r", str(mamba_root), "-p", str(env_prefix)]
    for channel in PACKAGE_CHANNELS:
        cmd.extend(["-c", channel])
    cmd.extend(packages)
    logger.info(f"Installing required packages into Conda environment '{env_name}'...")
    _run_or_raise(runner, cmd)

    os.environ["PATH"] = f"{env_prefix / 'bin'}{os.pathsep}{os.environ.get('PATH', '')}"
    os.environ["CONDA_PREFIX"] = str(env_prefix)
    logger.info(f"Conda environment setup complete: {env_prefix}")
    return env_prefix
