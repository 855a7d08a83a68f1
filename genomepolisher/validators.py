# File: genomepolisher/validators.py
# Location: genomepolisher/genomepolisher/validators.py

"""
Validation module for genomepolisher.

This module provides functions to validate:
- Input files (long reads, contigs, optional short-read pair)
- Numeric parameters (threads, iteration count)
- The Pilon JVM heap size
- The long-read type

All checks run before any stage and raise ConfigurationError, so an
invalid invocation never touches the assemblies directory.
"""

import logging
import re
from pathlib import Path
from typing import Any, Optional, Union

from .pipeline_core.context import ReadType
from .pipeline_core.error_handling import ConfigurationError, validate_file_exists

logger = logging.getLogger("genomepolisher")

JAVA_HEAP_PATTERN = re.compile(r"^\d+[KMGkmg]?$")


def validate_positive_int(value: Any, parameter: str) -> int:
    """
    Validate that a parameter is an integer >= 1.

    Parameters
    ----------
    value : Any
        Raw value from the command line or the configuration file.
    parameter : str
        Parameter name used in the error message.

    Returns
    -------
    int
        The validated value.

    Raises
    ------
    ConfigurationError
        If the value is not a positive integer.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"{parameter} must be a positive integer, got {value!r}", parameter)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"{parameter} must be a positive integer, got {value!r}", parameter
        ) from None
    if number != value and str(number) != str(value).strip():
        raise ConfigurationError(f"{parameter} must be a positive integer, got {value!r}", parameter)
    if number < 1:
        raise ConfigurationError(f"{parameter} must be >= 1, got {number}", parameter)
    return number


def validate_java_heap(java_heap: Any) -> str:
    """Validate a JVM heap size such as ``64G`` or ``512m``."""
    value = str(java_heap).strip()
    if not JAVA_HEAP_PATTERN.match(value):
        raise ConfigurationError(
            f"Invalid Java heap size '{java_heap}' (expected e.g. 64G, 512M)", "java_heap"
        )
    return value


def validate_read_type(read_type: Any) -> ReadType:
    """Convert a read type string (case-insensitive) to a ReadType."""
    try:
        return ReadType.from_string(str(read_type))
    except ValueError as e:
        raise ConfigurationError(str(e), "read_type") from None


def validate_input_files(
    long_reads: Optional[Union[str, Path]],
    contigs: Optional[Union[str, Path]],
    short_reads_1: Optional[Union[str, Path]] = None,
    short_reads_2: Optional[Union[str, Path]] = None,
) -> None:
    """
    Validate the input files of a polishing run.

    Parameters
    ----------
    long_reads : str or Path
        Long reads; required, must exist and be non-empty.
    contigs : str or Path
        Initial assembly; required, must exist and be non-empty.
    short_reads_1 : str or Path, optional
        First short-read file; must exist when given.
    short_reads_2 : str or Path, optional
        Second short-read file; requires short_reads_1.

    Raises
    ------
    ConfigurationError
        If a required file is missing or empty, or R2 is given without R1.
    """
    if not long_reads:
        raise ConfigurationError("Long reads file is required (--long-reads)", "long_reads")
    if not contigs:
        raise ConfigurationError("Contigs file is required (--contigs)", "contigs")

    validate_file_exists(long_reads, "Long reads file")
    validate_file_exists(contigs, "Contigs file")

    if short_reads_2 and not short_reads_1:
        raise ConfigurationError(
            "--short-reads2 was given without --short-reads1", "short_reads_2"
        )
    if short_reads_1:
        validate_file_exists(short_reads_1, "Short reads file (R1)")
    if short_reads_2:
        validate_file_exists(short_reads_2, "Short reads file (R2)")

    logger.debug("Input files validated")
