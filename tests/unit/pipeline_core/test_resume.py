"""Unit tests for the resume scanner."""

from pathlib import Path

import pytest

from genomepolisher.checkpoint import PipelineState
from genomepolisher.pipeline_core import Workspace, scan_resume_state
from tests.mocks import create_run_config, write_fasta


def _workspace(config):
    return Workspace(config.assemblies_dir, config.output_dir, config.prefix)


class TestScanResumeState:
    """Test discovery of the furthest completed stage."""

    def test_fresh_run(self, tmp_path):
        """Without outputs everything starts from the contigs."""
        config = create_run_config(tmp_path, short_reads=True, max_iterations=3)
        point = scan_resume_state(config, _workspace(config), lambda p: False)

        assert point.is_fresh
        assert point.current_assembly == Path(config.contigs)
        assert point.next_racon == 1
        assert point.next_pilon == 1
        assert not point.medaka_done

    def test_partial_racon(self, tmp_path):
        """The highest completed Racon iteration is the resume point."""
        config = create_run_config(tmp_path, max_iterations=3)
        workspace = _workspace(config)
        write_fasta(workspace.racon_output(1))
        write_fasta(workspace.racon_output(2))

        point = scan_resume_state(config, workspace, lambda p: Path(p).is_file())

        assert point.last_racon == 2
        assert point.next_racon == 3
        assert point.current_assembly == workspace.racon_output(2)

    def test_first_hit_from_the_top_wins(self, tmp_path):
        """Gaps below the highest iteration are not inspected."""
        config = create_run_config(tmp_path, max_iterations=3)
        workspace = _workspace(config)
        found = {workspace.racon_output(3)}

        point = scan_resume_state(config, workspace, lambda p: p in found)

        assert point.last_racon == 3
        assert point.current_assembly == workspace.racon_output(3)

    def test_medaka_supersedes_racon(self, tmp_path):
        """A Medaka result replaces the Racon resume point."""
        config = create_run_config(tmp_path, max_iterations=2)
        workspace = _workspace(config)
        found = {workspace.racon_output(2), workspace.medaka_output()}

        point = scan_resume_state(config, workspace, lambda p: p in found)

        assert point.medaka_done
        assert point.current_assembly == workspace.medaka_output()

    def test_pilon_supersedes_medaka(self, tmp_path):
        """Pilon results replace the Medaka resume point."""
        config = create_run_config(tmp_path, short_reads=True, max_iterations=3)
        workspace = _workspace(config)
        found = {workspace.medaka_output(), workspace.pilon_output(1)}

        point = scan_resume_state(config, workspace, lambda p: p in found)

        assert point.last_pilon == 1
        assert point.next_pilon == 2
        assert point.current_assembly == workspace.pilon_output(1)

    def test_pilon_ignored_without_short_reads(self, tmp_path):
        """Pilon outputs do not count when no short reads are given."""
        config = create_run_config(tmp_path, max_iterations=2)
        workspace = _workspace(config)
        found = {workspace.medaka_output(), workspace.pilon_output(2)}

        point = scan_resume_state(config, workspace, lambda p: p in found)

        assert point.last_pilon == 0
        assert point.current_assembly == workspace.medaka_output()

    def test_scans_are_independent(self, tmp_path):
        """Racon and Pilon progress are reported separately."""
        config = create_run_config(tmp_path, short_reads=True, max_iterations=3)
        workspace = _workspace(config)
        found = {workspace.racon_output(1), workspace.pilon_output(2)}

        point = scan_resume_state(config, workspace, lambda p: p in found)

        assert point.last_racon == 1
        assert point.last_pilon == 2
        assert point.current_assembly == workspace.pilon_output(2)

    def test_found_stages_are_logged(self, tmp_path, caplog):
        """Each discovered stage is logged."""
        config = create_run_config(tmp_path, max_iterations=2)
        workspace = _workspace(config)
        found = {workspace.racon_output(2)}
        with caplog.at_level("INFO"):
            scan_resume_state(config, workspace, lambda p: p in found)
        assert "Found completed Racon iteration 2" in caplog.text


class TestProvenanceWarnings:
    """Test warnings about outputs built from a different input."""

    @pytest.fixture
    def setup(self, tmp_path):
        """Create a config with a recorded Racon iteration."""
        config = create_run_config(tmp_path, max_iterations=1)
        workspace = _workspace(config)
        output = write_fasta(workspace.racon_output(1))
        state = PipelineState(str(config.assemblies_dir))
        return config, workspace, output, state

    def test_matching_provenance(self, setup, caplog):
        """Outputs built from the expected input raise no warning."""
        config, workspace, output, state = setup
        state.start_step("racon_iter1", input_file=str(config.contigs))
        state.complete_step("racon_iter1", [str(output)])

        with caplog.at_level("WARNING"):
            point = scan_resume_state(config, workspace, lambda p: Path(p).is_file(), state)

        assert point.last_racon == 1
        assert "was not produced from" not in caplog.text

    def test_mismatched_provenance_warns_only(self, setup, tmp_path, caplog):
        """Outputs from another input are reused with a warning."""
        config, workspace, output, state = setup
        state.start_step("racon_iter1", input_file=str(tmp_path / "other.fasta"))
        state.complete_step("racon_iter1", [str(output)])

        with caplog.at_level("WARNING"):
            point = scan_resume_state(config, workspace, lambda p: Path(p).is_file(), state)

        assert point.current_assembly == output
        assert "Output of 'racon_iter1' was not produced from" in caplog.text
