"""
Workspace - Centralized file path management for polishing runs.

This module provides the Workspace class that owns the naming convention of
every stage directory and stage output. The output file names double as
resume markers, so they must stay stable across releases.
"""

import logging
import shutil
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


class Workspace:
    """Manages all file paths for a polishing run.

    Layout::

        <assemblies_dir>/racon_iter<i>/<prefix>_racon_iter<i>.fasta
        <assemblies_dir>/medaka/<prefix>_medaka_consensus.fasta
        <assemblies_dir>/pilon_iter<i>/<prefix>_pilon_iter<i>.fasta
        <output_dir>/<prefix>_final_assembly.fasta

    Attributes
    ----------
    assemblies_dir : Path
        Root of the per-stage directories
    output_dir : Path
        Directory for published results
    prefix : str
        Prefix for generated files
    """

    STAGE_DIR_PATTERNS = ("racon_iter*", "medaka", "pilon_iter*")

    def __init__(self, assemblies_dir: Path, output_dir: Path, prefix: str):
        """Initialize workspace paths without touching the filesystem.

        Parameters
        ----------
        assemblies_dir : Path
            Root of the per-stage directories
        output_dir : Path
            Directory for published results
        prefix : str
            Prefix for generated files
        """
        self.assemblies_dir = Path(assemblies_dir)
        self.output_dir = Path(output_dir)
        self.prefix = prefix

    def create(self) -> None:
        """Create the assemblies and output directories."""
        self.assemblies_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(
            f"Workspace initialized: assemblies_dir={self.assemblies_dir}, "
            f"output_dir={self.output_dir}"
        )

    def stage_dir(self, family: str, index: Optional[int] = None) -> Path:
        """Return the working directory of a stage.

        Parameters
        ----------
        family : str
            Stage family: 'racon', 'medaka' or 'pilon'
        index : int, optional
            Iteration number for iterated families

        Returns
        -------
        Path
            ``<assemblies_dir>/<family>_iter<index>`` or ``<assemblies_dir>/<family>``
        """
        if index is None:
            return self.assemblies_dir / family
        return self.assemblies_dir / f"{family}_iter{index}"

    def racon_output(self, index: int) -> Path:
        """Expected output of Racon iteration ``index``."""
        return self.stage_dir("racon", index) / f"{self.prefix}_racon_iter{index}.fasta"

    def medaka_output(self) -> Path:
        """Expected output of the Medaka consensus stage."""
        return self.stage_dir("medaka") / f"{self.prefix}_medaka_consensus.fasta"

    def pilon_output(self, index: int) -> Path:
        """Expected output of Pilon iteration ``index``."""
        return self.stage_dir("pilon", index) / f"{self.prefix}_pilon_iter{index}.fasta"

    def final_output(self) -> Path:
        """Published location of the polished assembly."""
        return self.output_dir / f"{self.prefix}_final_assembly.fasta"

    def get_output_path(self, suffix: str, extension: str = ".tsv") -> Path:
        """Generate a path in the output directory from the prefix.

        Parameters
        ----------
        suffix : str
            Suffix appended to the prefix (e.g. "_polishing_summary")
        extension : str
            File extension including dot (default: ".tsv")
        """
        return self.output_dir / f"{self.prefix}{suffix}{extension}"

    def list_stage_dirs(self) -> List[Path]:
        """List existing per-stage directories."""
        if not self.assemblies_dir.exists():
            return []
        found = []
        for pattern in self.STAGE_DIR_PATTERNS:
            found.extend(p for p in sorted(self.assemblies_dir.glob(pattern)) if p.is_dir())
        return found

    def remove_stage_dirs(self) -> List[Path]:
        """Remove all per-stage directories.

        Returns
        -------
        List[Path]
            Directories that were removed
        """
        removed = []
        for stage_dir in self.list_stage_dirs():
            try:
                shutil.rmtree(stage_dir)
                removed.append(stage_dir)
                logger.debug(f"Removed stage directory: {stage_dir}")
            except OSError as e:
                logger.warning(f"Failed to remove stage directory {stage_dir}: {e}")
        return removed

    def __repr__(self) -> str:
        """Return string representation of the workspace."""
        return (
            f"Workspace(assemblies_dir='{self.assemblies_dir}', "
            f"output_dir='{self.output_dir}', prefix='{self.prefix}')"
        )

