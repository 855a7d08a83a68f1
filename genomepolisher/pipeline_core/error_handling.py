"""
Error handling utilities for the polishing pipeline.

This module provides:
- Custom exception classes for the different failure kinds
- Validation helpers for input files and output directories

Fatal errors propagate up through the stages and the runner; only the
command-line entry point turns them into a process exit code.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, stage: Optional[str] = None, details: Optional[Dict] = None):
        """Initialize pipeline error.

        Parameters
        ----------
        message : str
            Error message
        stage : str, optional
            Stage where error occurred
        details : dict, optional
            Additional error details
        """
        super().__init__(message)
        self.stage = stage
        self.details = details or {}


class ConfigurationError(PipelineError):
    """Raised when run parameters are missing or invalid."""

    def __init__(self, message: str, parameter: Optional[str] = None):
        """Initialize configuration error."""
        super().__init__(message, None, {"parameter": parameter} if parameter else {})
        self.parameter = parameter


class ToolNotFoundError(PipelineError):
    """Raised when a required external tool is not found."""

    def __init__(self, tool: str, stage: Optional[str] = None):
        """Initialize tool not found error."""
        message = f"Required tool '{tool}' not found in PATH"
        super().__init__(message, stage, {"tool": tool})


class ResourceNotFoundError(PipelineError):
    """Raised when an optional resource a stage needs cannot be located.

    Stages treat this as a soft failure: the stage is skipped with a
    warning and the pipeline continues with the previous assembly.
    """

    def __init__(self, resource: str, stage: Optional[str] = None):
        """Initialize resource not found error."""
        message = f"Required resource '{resource}' could not be located"
        super().__init__(message, stage, {"resource": resource})
        self.resource = resource


class CommandError(PipelineError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, cmd: List[str], returncode: int, stage: Optional[str] = None,
                 output: str = ""):
        """Initialize command error."""
        message = f"Command failed with exit status {returncode}: {' '.join(cmd)}"
        super().__init__(message, stage, {"cmd": list(cmd), "returncode": returncode})
        self.cmd = list(cmd)
        self.returncode = returncode
        self.output = output


class StageExecutionError(PipelineError):
    """Raised when a stage fails with an unexpected exception."""

    def __init__(self, stage_name: str, original_error: Exception):
        """Initialize stage execution error."""
        message = f"Stage '{stage_name}' failed: {str(original_error)}"
        super().__init__(
            message,
            stage_name,
            {
                "original_error": str(original_error),
                "error_type": type(original_error).__name__,
            },
        )
        self.original_error = original_error


def validate_file_exists(file_path: Union[str, Path], description: str = "file") -> Path:
    """Validate that a file exists, is a regular file and is not empty.

    Parameters
    ----------
    file_path : str or Path
        Path to validate
    description : str
        Human-readable name of the file used in error messages

    Returns
    -------
    Path
        Validated path object

    Raises
    ------
    ConfigurationError
        If the file is missing, not a regular file, or empty
    """
    path = Path(file_path)

    if not path.exists():
        raise ConfigurationError(f"{description} '{path}' does not exist.")

    if not path.is_file():
        raise ConfigurationError(f"{description} '{path}' is not a regular file.")

    if path.stat().st_size == 0:
        raise ConfigurationError(f"{description} '{path}' is empty.")

    return path


def validate_output_directory(output_dir: Union[str, Path], create: bool = True) -> Path:
    """Validate output directory.

    Parameters
    ----------
    output_dir : str or Path
        Output directory path
    create : bool
        Whether to create directory if it doesn't exist

    Returns
    -------
    Path
        Validated directory path

    Raises
    ------
    ConfigurationError
        If the path exists but is not a directory, or is missing and
        ``create`` is False
    PermissionError
        If directory cannot be created or written to
    """
    path = Path(output_dir)

    if path.exists():
        if not path.is_dir():
            raise ConfigurationError(f"'{path}' exists but is not a directory.")
    elif create:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            raise PermissionError(f"Cannot create directory: {path}")
        logger.debug(f"Created directory: {path}")
    else:
        raise ConfigurationError(f"Directory does not exist: {path}")

    # Check if writable
    test_file = path / ".write_test"
    try:
        test_file.touch()
        test_file.unlink()
    except PermissionError:
        raise PermissionError(f"Cannot write to directory: {path}")

    return path
