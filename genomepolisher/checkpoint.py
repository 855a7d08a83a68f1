"""Pipeline checkpoint state for genomepolisher.

Resume decisions are driven by stage output files. This module keeps a JSON
record next to those files describing which input each output was built
from, so a resumed run can warn when an existing output does not belong to
the current chain of assemblies, and so the state of a run can be inspected.
"""

import hashlib
import json
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger("genomepolisher")


@dataclass
class FileInfo:
    """Information about a file for validation."""

    path: str
    size: int
    mtime: float

    @classmethod
    def from_file(cls, filepath: str) -> "FileInfo":
        """Create FileInfo from an existing file."""
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"File not found: {filepath}")

        stat = os.stat(filepath)
        return cls(path=str(filepath), size=stat.st_size, mtime=stat.st_mtime)

    def validate(self) -> bool:
        """Validate that the file matches the stored info."""
        if not os.path.exists(self.path):
            return False

        stat = os.stat(self.path)
        if stat.st_size != self.size:
            return False

        # Allow some tolerance for mtime (filesystem precision)
        return abs(stat.st_mtime - self.mtime) <= 1.0


@dataclass
class StepInfo:
    """Information about a pipeline step."""

    name: str
    status: str  # "running", "completed", "soft_skipped", "failed"
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    input_file: Optional[str] = None
    output_files: List[FileInfo] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def duration(self) -> Optional[float]:
        """Calculate step duration in seconds."""
        if self.start_time and self.end_time:
            return self.end_time - self.start_time
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["output_files"] = [asdict(f) for f in self.output_files]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepInfo":
        """Create StepInfo from dictionary."""
        data = dict(data)
        data["output_files"] = [FileInfo(**f) for f in data.get("output_files", [])]
        return cls(**data)


class PipelineState:
    """Persists per-step provenance of a polishing run."""

    STATE_FILE_NAME = ".genomepolisher_state.json"
    STATE_VERSION = "1.0"

    # Parameters that change what a stage output contains
    HASHED_PARAMETERS = ("prefix", "max_iterations", "read_type", "contigs", "long_reads",
                         "short_reads_1", "short_reads_2")

    def __init__(self, state_dir: str):
        """Initialize pipeline state manager.

        Parameters
        ----------
        state_dir : str
            Directory holding the state file (the assemblies directory)
        """
        self.state_dir = str(state_dir)
        self.state_file = os.path.join(self.state_dir, self.STATE_FILE_NAME)

        self.state: Dict[str, Any] = {
            "version": self.STATE_VERSION,
            "pipeline_version": None,
            "start_time": None,
            "last_update": None,
            "configuration_hash": None,
            "steps": {},
        }

    def initialize(self, configuration: Dict[str, Any], pipeline_version: str) -> None:
        """Start a new record, keeping steps from a previous run."""
        self.state["pipeline_version"] = pipeline_version
        self.state["start_time"] = time.time()
        self.state["configuration_hash"] = self._hash_configuration(configuration)
        self.save()

    def load(self) -> bool:
        """Load existing state from file.

        Returns
        -------
        bool
            True if state was loaded successfully, False otherwise
        """
        if not os.path.exists(self.state_file):
            return False

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                loaded_state = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load pipeline state from {self.state_file}: {e}")
            return False

        if loaded_state.get("version") != self.STATE_VERSION:
            logger.warning(
                f"State file version mismatch: "
                f"{loaded_state.get('version')} != {self.STATE_VERSION}"
            )
            return False

        loaded_state["steps"] = {
            name: StepInfo.from_dict(info) for name, info in loaded_state.get("steps", {}).items()
        }
        self.state = loaded_state
        logger.debug(f"Loaded pipeline state from {self.state_file}")
        return True

    def save(self) -> None:
        """Write the state file atomically."""
        os.makedirs(self.state_dir, exist_ok=True)
        self.state["last_update"] = time.time()
        data = dict(self.state)
        data["steps"] = {name: step.to_dict() for name, step in self.state["steps"].items()}

        temp_file = f"{self.state_file}.tmp"
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(temp_file, self.state_file)

    def configuration_matches(self, configuration: Dict[str, Any]) -> bool:
        """Whether the stored configuration hash matches ``configuration``.

        A state without a stored hash matches anything.
        """
        stored = self.state.get("configuration_hash")
        return stored is None or stored == self._hash_configuration(configuration)

    def start_step(self, step_name: str, input_file: Optional[str] = None) -> None:
        """Record that a step started."""
        self.state["steps"][step_name] = StepInfo(
            name=step_name,
            status="running",
            start_time=time.time(),
            input_file=str(input_file) if input_file else None,
        )
        self.save()

    def complete_step(self, step_name: str, output_files: List[str], status: str = "completed") -> None:
        """Record that a step finished and fingerprint its outputs."""
        step = self.state["steps"].get(step_name) or StepInfo(name=step_name, status=status)
        step.status = status
        step.end_time = time.time()
        step.output_files = [
            FileInfo.from_file(path) for path in output_files if os.path.exists(path)
        ]
        self.state["steps"][step_name] = step
        self.save()

    def fail_step(self, step_name: str, error: str) -> None:
        """Record that a step failed."""
        step = self.state["steps"].get(step_name) or StepInfo(name=step_name, status="failed")
        step.status = "failed"
        step.end_time = time.time()
        step.error = error
        self.state["steps"][step_name] = step
        self.save()

    def get_step(self, step_name: str) -> Optional[StepInfo]:
        """Return the stored record of a step, if any."""
        return self.state["steps"].get(step_name)

    def check_provenance(self, step_name: str, expected_input: Optional[str]) -> Optional[bool]:
        """Check that a step's output was produced from ``expected_input``.

        Returns
        -------
        bool or None
            None if the step or its input is unknown, True if the recorded
            input matches and every recorded output is unchanged, False
            otherwise
        """
        step = self.get_step(step_name)
        if step is None or step.input_file is None or expected_input is None:
            return None
        if os.path.abspath(step.input_file) != os.path.abspath(str(expected_input)):
            return False
        return all(info.validate() for info in step.output_files)

    def get_summary(self) -> str:
        """Human-readable status of all recorded steps."""
        lines = [f"Pipeline state: {self.state_file}"]
        if self.state.get("pipeline_version"):
            lines.append(f"Pipeline version: {self.state['pipeline_version']}")
        if self.state.get("last_update"):
            updated = datetime.fromtimestamp(self.state["last_update"])
            lines.append(f"Last update: {updated:%Y-%m-%d %H:%M:%S}")

        steps = self.state.get("steps", {})
        if not steps:
            lines.append("No steps recorded.")
            return "\n".join(lines)

        lines.append("Steps:")
        for step in sorted(steps.values(), key=lambda s: s.start_time or 0):
            duration = f" ({step.duration:.1f}s)" if step.duration is not None else ""
            lines.append(f"  {step.name:20s} {step.status}{duration}")
            if step.error:
                lines.append(f"    error: {step.error}")
        return "\n".join(lines)

    def _hash_configuration(self, config: Dict[str, Any]) -> str:
        relevant = {key: config.get(key) for key in self.HASHED_PARAMETERS}
        payload = json.dumps(relevant, sort_keys=True, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
