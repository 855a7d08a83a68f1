# File: genomepolisher/utils.py
# Location: genomepolisher/genomepolisher/utils.py

"""
Utility functions module.

Provides helpers for running external commands, checking tool availability,
and retrieving tool versions.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger("genomepolisher")


@dataclass
class CommandResult:
    """Exit status and captured output of one external command."""

    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        """Whether the command exited with status 0."""
        return self.returncode == 0


class CommandRunner:
    """Run external commands synchronously and capture their output.

    Tool output (stderr, and stdout unless redirected to a file) is appended
    to ``program_output`` when one is configured, keeping the main log
    readable.

    Parameters
    ----------
    program_output : str or Path, optional
        File receiving the combined output of every command
    """

    def __init__(self, program_output: Optional[Union[str, Path]] = None):
        self.program_output = Path(program_output) if program_output else None

    def run(self, cmd: List[str], stdout_path: Optional[Union[str, Path]] = None) -> CommandResult:
        """Run a command and wait for it to exit.

        Parameters
        ----------
        cmd : list of str
            Command and its arguments.
        stdout_path : str or Path, optional
            File receiving the command's stdout. If None, stdout is captured
            together with stderr.

        Returns
        -------
        CommandResult
            Exit status and combined captured output. A non-zero return code
            is reported, not raised; callers decide how to react.
        """
        cmd = [str(c) for c in cmd]
        logger.info("Executing command: %s", " ".join(cmd))

        try:
            if stdout_path:
                with open(stdout_path, "w", encoding="utf-8") as out_f:
                    result = subprocess.run(
                        cmd, stdout=out_f, stderr=subprocess.PIPE, text=True, errors="replace"
                    )
                output = result.stderr or ""
            else:
                result = subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    errors="replace",
                )
                output = result.stdout or ""
            returncode = result.returncode
        except FileNotFoundError as e:
            # Missing executable behaves like a shell "command not found"
            output = str(e)
            returncode = 127

        self._append_program_output(cmd, output)

        if returncode != 0:
            logger.error("Command failed with exit status %d: %s", returncode, " ".join(cmd))
        else:
            logger.info("Command completed successfully: %s", " ".join(cmd))
        return CommandResult(returncode=returncode, output=output)

    def _append_program_output(self, cmd: List[str], output: str) -> None:
        if not self.program_output:
            return
        self.program_output.parent.mkdir(parents=True, exist_ok=True)
        with open(self.program_output, "a", encoding="utf-8") as f:
            f.write(f"$ {' '.join(cmd)}\n")
            if output:
                f.write(output if output.endswith("\n") else output + "\n")


def check_external_tools(tools: List[str]) -> List[str]:
    """
    Check if external tools are available in PATH.

    Parameters
    ----------
    tools : List[str]
        List of tool names to check for availability

    Returns
    -------
    List[str]
        Tools that were not found; empty if all are available
    """
    missing = []
    for tool in tools:
        if not shutil.which(tool):
            logger.error(f"Required tool not found in PATH: {tool}")
            missing.append(tool)
        else:
            logger.debug(f"Found tool in PATH: {tool}")
    return missing


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return "N/A"


def get_tool_version(tool_name: str, pilon_jar: Optional[Union[str, Path]] = None) -> str:
    """
    Retrieve the version of a given tool.

    Supported tools:

    - minimap2
    - racon
    - medaka
    - samtools
    - bwa
    - java
    - pilon (requires ``pilon_jar``)

    Parameters
    ----------
    tool_name : str
        Name of the tool to retrieve version for.
    pilon_jar : str or Path, optional
        Pilon jar used for the 'pilon' lookup.

    Returns
    -------
    str
        Version string or 'N/A' if not found or cannot be retrieved.
    """

    def parse_first_line(stdout, stderr):
        return _first_line(stdout) if stdout.strip() else _first_line(stderr)

    def parse_samtools(stdout, stderr):
        for line in stdout.splitlines():
            if line.startswith("samtools"):
                return line.strip()
        return "N/A"

    def parse_bwa(stdout, stderr):
        # bwa prints usage (including its version) to stderr and exits 1
        for line in stderr.splitlines():
            if line.startswith("Version"):
                return line.split(":", 1)[-1].strip()
        return "N/A"

    def parse_java(stdout, stderr):
        return _first_line(stderr) if stderr.strip() else _first_line(stdout)

    tool_map = {
        "minimap2": {"command": ["minimap2", "--version"], "parse_func": parse_first_line},
        "racon": {"command": ["racon", "--version"], "parse_func": parse_first_line},
        "medaka": {"command": ["medaka", "--version"], "parse_func": parse_first_line},
        "samtools": {"command": ["samtools", "--version"], "parse_func": parse_samtools},
        "bwa": {"command": ["bwa"], "parse_func": parse_bwa},
        "java": {"command": ["java", "-version"], "parse_func": parse_java},
    }
    if pilon_jar:
        tool_map["pilon"] = {
            "command": ["java", "-jar", str(pilon_jar), "--version"],
            "parse_func": parse_first_line,
        }

    if tool_name not in tool_map:
        logger.warning("No version retrieval logic for %s. Returning 'N/A'.", tool_name)
        return "N/A"

    cmd = tool_map[tool_name]["command"]
    parse_func = tool_map[tool_name]["parse_func"]

    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            check=False,
        )
        version = parse_func(result.stdout, result.stderr)
        if version == "N/A":
            logger.warning("Could not parse version for %s. Returning 'N/A'.", tool_name)
        return version
    except OSError as e:
        logger.warning("Failed to retrieve version for %s: %s", tool_name, e)
        return "N/A"
