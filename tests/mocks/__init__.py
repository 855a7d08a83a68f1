"""Test mocks and fixtures for genomepolisher tests."""

from .external_tools import ExplodingCommandRunner, FakeCommandRunner, command_label
from .fixtures import create_run_config, create_test_context, create_test_inputs, write_fasta

__all__ = [
    "FakeCommandRunner",
    "ExplodingCommandRunner",
    "command_label",
    "create_run_config",
    "create_test_context",
    "create_test_inputs",
    "write_fasta",
]
