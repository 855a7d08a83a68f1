"""Shared pytest fixtures for all test modules."""

import logging

import pytest

from tests.mocks import FakeCommandRunner, create_run_config, create_test_context


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Detach file handlers the CLI adds to the package logger."""
    yield
    logger = logging.getLogger("genomepolisher")
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fake_runner():
    """Recording command runner simulating tool outputs."""
    return FakeCommandRunner()


@pytest.fixture
def long_read_config(tmp_path):
    """Run configuration without short reads (no Pilon phase)."""
    return create_run_config(tmp_path)


@pytest.fixture
def hybrid_config(tmp_path):
    """Run configuration with paired short reads and a Pilon jar."""
    return create_run_config(tmp_path, short_reads=True)


@pytest.fixture
def context(tmp_path, fake_runner):
    """Pipeline context with short reads, backed by the fake runner."""
    return create_test_context(tmp_path, runner=fake_runner, short_reads=True)
