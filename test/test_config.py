"""Tests for configuration loading and validation."""

import os

import pytest

import config as config_module
from config import Config, write_default_config


class TestConfigFile:
    """Test the KEY=VALUE config file."""

    def test_load_config(self, tmp_path):
        """Test comments, blank lines and inline comments are skipped."""
        path = tmp_path / "config"
        path.write_text(
            "# comment\n\nCOMPRESSION_LEVEL=high  # inline\nMAX_TRAVERSAL_DEPTH = 4\nnot a setting\n",
            encoding="utf-8",
        )

        cfg = config_module._load_config(str(path))

        assert cfg == {"COMPRESSION_LEVEL": "high", "MAX_TRAVERSAL_DEPTH": "4"}

    def test_missing_file(self, tmp_path):
        """Test a missing file yields no settings."""
        assert config_module._load_config(str(tmp_path / "absent")) == {}

    def test_write_default_config(self, tmp_path):
        """Test the template is written once and never overwritten."""
        path = str(tmp_path / "nested" / "config")

        assert write_default_config(path) == path
        cfg = config_module._load_config(path)
        assert cfg["COMPRESSION_PRESERVE_KEYS"] == "id,status,error,output"

        with open(path, "w", encoding="utf-8") as f:
            f.write("COMPRESSION_LEVEL=low\n")
        write_default_config(path)
        assert config_module._load_config(path) == {"COMPRESSION_LEVEL": "low"}

    def test_split_list(self):
        """Test comma-separated lists."""
        assert config_module._split_list(" id, status ,,error") == ["id", "status", "error"]


class TestConfigValidation:
    """Test Config.validate and helpers."""

    def test_defaults_are_valid(self):
        """Test the shipped defaults validate."""
        Config.validate()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"COMPRESSION_LEVEL": "extreme"},
            {"DEFAULT_EDGE_WEIGHT": 0},
            {"IMPACT_DECAY_FACTOR": 1.5},
            {"MAX_TRAVERSAL_DEPTH": 0},
            {"COMPRESSION_BATCH_CHUNK_SIZE": 0},
        ],
    )
    def test_invalid_values(self, set_config, overrides):
        """Test out-of-range values are rejected."""
        set_config(**overrides)

        with pytest.raises(ValueError):
            Config.validate()

    def test_is_production(self, set_config):
        """Test production detection."""
        set_config(ENVIRONMENT="production")
        assert Config.is_production()

        set_config(ENVIRONMENT="development")
        assert not Config.is_production()
