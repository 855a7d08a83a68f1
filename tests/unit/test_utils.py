"""Tests for command execution and tool helpers."""

import subprocess
import sys
from unittest.mock import MagicMock, patch

import pytest

from genomepolisher.utils import CommandResult, CommandRunner, check_external_tools, get_tool_version


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestCommandRunner:
    """Test external command execution."""

    @patch("genomepolisher.utils.subprocess.run")
    def test_captured_output(self, mock_run, tmp_path):
        """Combined output is returned and appended to the program output file."""
        mock_run.return_value = _completed(stdout="aligned 10 reads\n")
        program_output = tmp_path / "logs" / "LOG_output.txt"
        runner = CommandRunner(program_output)

        result = runner.run(["minimap2", "-t", 4, "ref.fa"])

        assert result.ok
        assert result.output == "aligned 10 reads\n"
        assert mock_run.call_args[0][0] == ["minimap2", "-t", "4", "ref.fa"]
        assert program_output.read_text() == "$ minimap2 -t 4 ref.fa\naligned 10 reads\n"

    @patch("genomepolisher.utils.subprocess.run")
    def test_stdout_redirect(self, mock_run, tmp_path):
        """Redirected stdout goes to the file; stderr is still captured."""
        mock_run.return_value = _completed(stderr="[racon] loaded")
        runner = CommandRunner()

        result = runner.run(["racon", "reads.fq"], stdout_path=tmp_path / "out.fasta")

        assert result.output == "[racon] loaded"
        assert (tmp_path / "out.fasta").exists()
        assert mock_run.call_args[1]["stderr"] == subprocess.PIPE

    @patch("genomepolisher.utils.subprocess.run")
    def test_nonzero_exit_is_reported(self, mock_run, caplog):
        """Failures are returned, not raised."""
        mock_run.return_value = _completed(returncode=2, stdout="bad input")
        with caplog.at_level("ERROR"):
            result = CommandRunner().run(["samtools", "sort"])
        assert not result.ok
        assert result.returncode == 2
        assert "Command failed with exit status 2" in caplog.text

    @patch("genomepolisher.utils.subprocess.run", side_effect=FileNotFoundError("no such file"))
    def test_missing_executable(self, mock_run):
        """A missing executable reports exit status 127."""
        result = CommandRunner().run(["not-a-tool"])
        assert result.returncode == 127
        assert "no such file" in result.output

    @pytest.mark.parametrize("redirect", [False, True])
    @patch("genomepolisher.utils.subprocess.run")
    def test_undecodable_output_is_replaced(self, mock_run, tmp_path, redirect):
        """Tool output is decoded leniently in both capture modes."""
        mock_run.return_value = _completed()
        stdout_path = tmp_path / "out.fasta" if redirect else None
        CommandRunner().run(["medaka_consensus", "-i", "reads.fq"], stdout_path=stdout_path)
        assert mock_run.call_args[1]["text"] is True
        assert mock_run.call_args[1]["errors"] == "replace"

    def test_non_utf8_progress_output_does_not_fail(self):
        """A tool printing invalid UTF-8 still succeeds."""
        script = "import sys; sys.stdout.buffer.write(b'progress \\xff\\xfe done\\n')"
        result = CommandRunner().run([sys.executable, "-c", script])
        assert result.ok
        assert result.output.startswith("progress ")
        assert result.output.rstrip().endswith(" done")

    def test_command_result(self):
        """Only exit status 0 is ok."""
        assert CommandResult(0).ok
        assert not CommandResult(1, "x").ok


class TestCheckExternalTools:
    """Test PATH lookups."""

    @patch("genomepolisher.utils.shutil.which")
    def test_reports_missing(self, mock_which):
        """Tools missing from PATH are returned in order."""
        mock_which.side_effect = lambda tool: None if tool in ("racon", "bwa") else f"/bin/{tool}"
        assert check_external_tools(["minimap2", "racon", "bwa"]) == ["racon", "bwa"]

    @patch("genomepolisher.utils.shutil.which", return_value="/usr/bin/tool")
    def test_all_present(self, mock_which):
        """Nothing is missing when every tool resolves."""
        assert check_external_tools(["minimap2"]) == []


class TestGetToolVersion:
    """Test version parsing for each supported tool."""

    @pytest.mark.parametrize(
        "tool,stdout,stderr,expected",
        [
            ("minimap2", "2.26-r1175\n", "", "2.26-r1175"),
            ("racon", "v1.5.0\n", "", "v1.5.0"),
            ("medaka", "medaka 1.11.3\n", "", "medaka 1.11.3"),
            ("samtools", "samtools 1.19\nUsing htslib 1.19\n", "", "samtools 1.19"),
            ("bwa", "", "\nProgram: bwa\nVersion: 0.7.17-r1188\n", "0.7.17-r1188"),
            ("java", "", 'openjdk version "17.0.9"\n', 'openjdk version "17.0.9"'),
        ],
    )
    @patch("genomepolisher.utils.subprocess.run")
    def test_parsing(self, mock_run, tool, stdout, stderr, expected):
        """Each tool's version output is parsed."""
        returncode = 1 if tool == "bwa" else 0
        mock_run.return_value = _completed(returncode, stdout=stdout, stderr=stderr)
        assert get_tool_version(tool) == expected

    @patch("genomepolisher.utils.subprocess.run")
    def test_pilon_uses_jar(self, mock_run):
        """The Pilon version is read through java -jar."""
        mock_run.return_value = _completed(stdout="Pilon version 1.24\n")
        assert get_tool_version("pilon", pilon_jar="/opt/pilon.jar") == "Pilon version 1.24"
        assert mock_run.call_args[0][0] == ["java", "-jar", "/opt/pilon.jar", "--version"]
        assert mock_run.call_args[1]["errors"] == "replace"

    def test_pilon_without_jar(self):
        """Pilon has no version without a jar."""
        assert get_tool_version("pilon") == "N/A"

    def test_unknown_tool(self):
        """Unsupported tools report N/A."""
        assert get_tool_version("spades") == "N/A"

    @patch("genomepolisher.utils.subprocess.run", side_effect=OSError("not found"))
    def test_tool_missing(self, mock_run):
        """Missing tools report N/A."""
        assert get_tool_version("racon") == "N/A"

    @patch("genomepolisher.utils.subprocess.run")
    def test_unparseable(self, mock_run):
        """Empty output reports N/A."""
        mock_run.return_value = MagicMock(stdout="", stderr="")
        assert get_tool_version("samtools") == "N/A"
