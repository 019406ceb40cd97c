# This file is part of uosp, a tool for maintaining Ubuntu OpenStack packages.
#
# Copyright 2025 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0-only
#
# uosp is free software: you can redistribute it and/or modify it under
# the terms of the GNU General Public License version 3, as published by the
# Free Software Foundation.
#
# uosp is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranties of MERCHANTABILITY,
# SATISFACTORY QUALITY, or FITNESS FOR A PARTICULAR PURPOSE. See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU General Public License along with
# uosp. If not, see <http://www.gnu.org/licenses/>.

"""Tests for uosp.config module."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from uosp import config
from uosp.core.exceptions import ConfigError


class TestDefaultConfig:
    """Tests for DEFAULT_CONFIG structure."""

    def test_default_config_has_required_sections(self) -> None:
        for section in ("paths", "defaults", "mirrors", "snapshot", "behavior"):
            assert section in config.DEFAULT_CONFIG

    def test_default_config_paths_use_tilde(self) -> None:
        paths = config.DEFAULT_CONFIG["paths"]
        assert all(p.startswith("~") for p in paths.values())

    def test_no_hard_coded_snapshot_interval(self) -> None:
        assert config.DEFAULT_CONFIG["snapshot"]["min_interval_hours"] is None

    def test_packaging_directory_not_listed_as_protected(self) -> None:
        # debian/ is always protected by the engine itself.
        assert "debian" not in config.DEFAULT_CONFIG["behavior"]["protected_paths"]


class TestEnsureConfigExists:
    """Tests for ensure_config_exists function."""

    def test_creates_config_file_with_defaults(self, temp_home: Path) -> None:
        config_file = temp_home / ".config" / "uosp" / "config.yaml"
        assert not config_file.exists()

        config.ensure_config_exists()

        content = yaml.safe_load(config_file.read_text())
        assert content["defaults"]["upstream_branch"] == "upstream"

    def test_does_not_overwrite_existing_config(self, mock_config: Path) -> None:
        mock_config.write_text(mock_config.read_text() + "\n# custom comment\n")
        modified = mock_config.read_text()

        config.ensure_config_exists()

        assert mock_config.read_text() == modified


class TestLoadConfig:
    """Tests for load_config function."""

    def test_loads_defaults_when_no_file(self, temp_home: Path) -> None:
        cfg = config.load_config()

        assert cfg["behavior"]["offline"] is False
        assert cfg["mirrors"]["upstream_git"] == "https://opendev.org/openstack"

    def test_merges_sections_shallowly(self, mock_config: Path) -> None:
        cfg = config.load_config()

        # Set in the file.
        assert cfg["behavior"]["offline"] is True
        # Missing from the file's behavior section, filled from defaults.
        assert cfg["behavior"]["protected_paths"] == config.DEFAULT_CONFIG["behavior"]["protected_paths"]
        # Section missing entirely.
        assert cfg["snapshot"]["only_if_upstream_changed"] is True

    def test_expands_paths(self, mock_config: Path, temp_home: Path) -> None:
        cfg = config.load_config()
        assert cfg["paths"]["runs_root"] == str(temp_home / ".cache" / "uosp" / "runs")

    def test_snapshot_policy_from_file(self, temp_home: Path) -> None:
        config.write_config({"snapshot": {"min_interval_hours": 12}})

        cfg = config.load_config()

        assert cfg["snapshot"] == {"min_interval_hours": 12, "only_if_upstream_changed": True}

    def test_invalid_yaml(self, temp_home: Path) -> None:
        path = config.get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("paths: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid config file"):
            config.load_config()

    def test_not_a_mapping(self, temp_home: Path) -> None:
        path = config.get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError, match="must contain a mapping"):
            config.load_config()
