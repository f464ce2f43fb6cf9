"""
Tests for the configuration module and the shipped config.yaml.

Run with: pytest tests/test_config.py -v
"""

import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import (
    get_config,
    get_fallback_config,
    get_matching_config,
    get_project_root,
    get_section,
    get_server_config,
    load_config,
    resolve_storage_path,
)


class TestConfig:
    """Tests for loading configuration."""

    def test_project_root_contains_config(self):
        assert (get_project_root() / "config.yaml").exists()

    def test_default_matching_values(self):
        matching = get_matching_config()
        assert matching["distance_threshold"] == 0.6
        assert matching["descriptor_dim"] == 128
        assert matching["strategy"] == "greedy"

    def test_default_fallback_ratios(self):
        fallback = get_fallback_config()
        assert fallback["missing_descriptor_ratio"] == 0.8
        assert fallback["extraction_failure_ratio"] == 0.7

    def test_singleton(self):
        assert get_config() is get_config()

    def test_missing_section_raises(self):
        with pytest.raises(KeyError, match="not found"):
            get_section("does_not_exist")

    def test_load_custom_file(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("matching:\n  distance_threshold: 0.5\n")

        config = load_config(str(path))

        assert config["matching"]["distance_threshold"] == 0.5

    def test_load_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(str(path)) == {}

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_server_config_port_from_base_url(self):
        assert get_server_config()["port"] == 5000

    def test_resolve_storage_path(self, tmp_path):
        assert resolve_storage_path("storage/x.sqlite") == get_project_root() / "storage" / "x.sqlite"
        assert resolve_storage_path(str(tmp_path)) == tmp_path
