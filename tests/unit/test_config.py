"""Tests for configuration loading."""

import json

import pytest

from genomepolisher.config import DEFAULT_CONFIG_FILE, load_config


def test_packaged_defaults():
    """The packaged defaults cover every run parameter."""
    config = load_config()
    assert config["prefix"] == "assembly"
    assert config["max_iterations"] == 3
    assert config["threads"] == 4
    assert config["java_heap"] == "64G"
    assert config["read_type"] == "ont"
    assert config["clean_intermediate"] is False
    assert "pilon" in config["required_packages"]
    assert DEFAULT_CONFIG_FILE.endswith("config.json")


def test_user_file_overrides_defaults(tmp_path):
    """Keys in a user file replace the defaults; others are kept."""
    user = tmp_path / "polish.json"
    user.write_text(json.dumps({"threads": 32, "prefix": "chr1"}))

    config = load_config(str(user))

    assert config["threads"] == 32
    assert config["prefix"] == "chr1"
    assert config["max_iterations"] == 3


def test_missing_file(tmp_path):
    """A missing user file is reported."""
    with pytest.raises(FileNotFoundError, match="not found"):
        load_config(str(tmp_path / "missing.json"))


def test_invalid_json(tmp_path):
    """Malformed JSON is a ValueError."""
    user = tmp_path / "bad.json"
    user.write_text("{threads: 4")
    with pytest.raises(ValueError, match="Error parsing JSON"):
        load_config(str(user))


def test_non_object_json(tmp_path):
    """The file must contain a JSON object."""
    user = tmp_path / "list.json"
    user.write_text("[1, 2]")
    with pytest.raises(ValueError, match="must contain a JSON object"):
        load_config(str(user))
