"""Tests for tool discovery and conda environment setup."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from genomepolisher.environment import (
    LONG_READ_TOOLS,
    SHORT_READ_TOOLS,
    check_required_tools,
    locate_pilon_jar,
    log_tool_versions,
    required_tools,
    resolve_pilon_jar,
    setup_conda_environment,
)
from genomepolisher.pipeline_core.error_handling import (
    CommandError,
    ConfigurationError,
    ToolNotFoundError,
)
from genomepolisher.utils import CommandResult


class ScriptedRunner:
    """Runner answering conda commands from a table of outputs."""

    def __init__(self, envs, base="/opt/conda", fail=None):
        self.envs = dict(envs)
        self.base = base
        self.fail = fail
        self.commands = []

    def run(self, cmd, stdout_path=None):
        cmd = [str(c) for c in cmd]
        self.commands.append(cmd)
        if self.fail and self.fail in " ".join(cmd):
            return CommandResult(1, "error")
        if cmd[:3] == ["conda", "info", "--base"]:
            return CommandResult(0, f"{self.base}\n")
        if cmd[:3] == ["conda", "env", "list"]:
            lines = ["# conda environments:", "#", f"base  *  {self.base}"]
            lines.extend(f"{name}  {prefix}" for name, prefix in self.envs.items())
            return CommandResult(0, "\n".join(lines) + "\n")
        if cmd[:2] == ["conda", "create"]:
            name = cmd[cmd.index("-n") + 1]
            self.envs[name] = f"{self.base}/envs/{name}"
        return CommandResult(0, "")


@pytest.fixture
def clean_environ(monkeypatch):
    """Keep PATH and CONDA_PREFIX changes local to the test."""
    monkeypatch.setenv("PATH", os.environ.get("PATH", ""))
    monkeypatch.delenv("CONDA_PREFIX", raising=False)


class TestRequiredTools:
    """Test tool requirements."""

    def test_long_read_only(self):
        """Without short reads only the long-read tools are needed."""
        assert required_tools(False) == LONG_READ_TOOLS

    def test_with_short_reads(self):
        """Short reads add BWA, Samtools and Java."""
        assert required_tools(True) == LONG_READ_TOOLS + SHORT_READ_TOOLS

    @patch("genomepolisher.environment.check_external_tools", return_value=["racon"])
    def test_missing_tool_raises(self, mock_check):
        """The first missing tool is reported."""
        with pytest.raises(ToolNotFoundError, match="racon"):
            check_required_tools(False)

    @patch("genomepolisher.environment.check_external_tools", return_value=[])
    def test_all_present(self, mock_check):
        """Nothing is raised when every tool is found."""
        check_required_tools(True)
        mock_check.assert_called_once_with(LONG_READ_TOOLS + SHORT_READ_TOOLS)


class TestPilonJar:
    """Test Pilon jar discovery."""

    def _make_jar(self, prefix, relative):
        jar = Path(prefix) / "share" / relative
        jar.parent.mkdir(parents=True, exist_ok=True)
        jar.write_text("jar")
        return jar

    def test_locate_in_share(self, tmp_path):
        """The first jar in sorted order is found below share/."""
        second = self._make_jar(tmp_path, "pilon-1.24-0/pilon.jar")
        self._make_jar(tmp_path, "pilon-1.25-0/pilon.jar")
        assert locate_pilon_jar(tmp_path) == second

    def test_locate_nothing(self, tmp_path):
        """Missing prefixes and share directories yield None."""
        assert locate_pilon_jar(None) is None
        assert locate_pilon_jar(tmp_path) is None

    def test_explicit_jar_wins(self, tmp_path, clean_environ):
        """An explicit jar is used without searching."""
        self._make_jar(tmp_path, "pilon/pilon.jar")
        explicit = self._make_jar(tmp_path / "other", "pilon.jar")
        assert resolve_pilon_jar(explicit, conda_prefix=tmp_path) == explicit

    def test_explicit_missing_jar_warns(self, tmp_path, caplog):
        """A missing explicit jar is kept and reported."""
        with caplog.at_level("WARNING"):
            jar = resolve_pilon_jar(tmp_path / "missing.jar")
        assert jar == tmp_path / "missing.jar"
        assert "Pilon-based polishing will be skipped" in caplog.text

    def test_conda_prefix_from_environment(self, tmp_path, monkeypatch):
        """The active conda environment is searched."""
        jar = self._make_jar(tmp_path, "pilon-1.24-0/pilon-1.24.jar")
        monkeypatch.setenv("CONDA_PREFIX", str(tmp_path))
        assert resolve_pilon_jar() == jar

    def test_not_found(self, tmp_path, clean_environ, caplog):
        """No jar means None and a warning."""
        with caplog.at_level("WARNING"):
            assert resolve_pilon_jar(conda_prefix=tmp_path) is None
        assert "Pilon JAR file not found" in caplog.text


class TestLogToolVersions:
    """Test version logging."""

    @patch("genomepolisher.environment.get_tool_version", return_value="1.0")
    def test_versions_logged(self, mock_version, caplog):
        """Each tool's version is logged and returned."""
        with caplog.at_level("INFO"):
            versions = log_tool_versions(["racon", "bwa"])
        assert versions == {"racon": "1.0", "bwa": "1.0"}
        assert "racon version: 1.0" in caplog.text

    @patch("genomepolisher.environment.get_tool_version", return_value="1.24")
    def test_pilon_added_with_jar(self, mock_version, tmp_path):
        """Pilon is queried when its jar exists."""
        jar = tmp_path / "pilon.jar"
        jar.write_text("jar")
        assert "pilon" in log_tool_versions(["java"], pilon_jar=jar)
        assert "pilon" not in log_tool_versions(["java"], pilon_jar=tmp_path / "missing.jar")


@patch("genomepolisher.environment.check_external_tools", return_value=[])
class TestSetupCondaEnvironment:
    """Test conda environment creation and package installation."""

    def test_creates_missing_environment(self, mock_check, clean_environ):
        """A missing environment is created with micromamba before installing."""
        runner = ScriptedRunner(envs={})

        prefix = setup_conda_environment("polish", ["racon", "medaka"], runner=runner)

        assert prefix == Path("/opt/conda/envs/polish")
        assert ["conda", "create", "-y", "-n", "polish", "micromamba"] in runner.commands
        install = runner.commands[-1]
        assert install == [
            "/opt/conda/envs/polish/bin/micromamba", "install", "-y",
            "-r", "/opt/conda", "-p", "/opt/conda/envs/polish",
            "-c", "conda-forge", "-c", "bioconda", "racon", "medaka",
        ]
        assert os.environ["PATH"].startswith("/opt/conda/envs/polish/bin")
        assert os.environ["CONDA_PREFIX"] == "/opt/conda/envs/polish"

    def test_existing_environment_reused(self, mock_check, clean_environ):
        """An existing environment is not created again."""
        runner = ScriptedRunner(envs={"polish": "/data/envs/polish"})

        prefix = setup_conda_environment("polish", ["racon"], runner=runner)

        assert prefix == Path("/data/envs/polish")
        assert not any(cmd[:2] == ["conda", "create"] for cmd in runner.commands)

    def test_install_failure(self, mock_check, clean_environ):
        """A failed installation raises CommandError."""
        runner = ScriptedRunner(envs={"polish": "/data/envs/polish"}, fail="install")
        with pytest.raises(CommandError):
            setup_conda_environment("polish", ["racon"], runner=runner)

    def test_no_packages(self, mock_check, clean_environ):
        """An empty package list is a configuration error."""
        with pytest.raises(ConfigurationError):
            setup_conda_environment("polish", [" ", ""], runner=ScriptedRunner(envs={}))

    def test_conda_missing(self, mock_check, clean_environ):
        """Without conda nothing can be set up."""
        mock_check.return_value = ["conda"]
        with pytest.raises(ToolNotFoundError, match="conda"):
            setup_conda_environment("polish", ["racon"], runner=ScriptedRunner(envs={}))
