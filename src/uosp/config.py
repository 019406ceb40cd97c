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

"""Configuration utilities for uosp."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from uosp.core.exceptions import ConfigError

DEFAULT_CONFIG: dict[str, Any] = {
    "paths": {
        "cache_root": "~/.cache/uosp",
        "upstream_cache": "~/.cache/uosp/upstream",
        "export_root": "~/.cache/uosp/exports",
        "runs_root": "~/.cache/uosp/runs",
    },
    "defaults": {
        "distribution": "UNRELEASED",
        "urgency": "medium",
        "baseline_revision": 1,
        "upstream_branch": "upstream",
        "stable_branch_prefix": "stable",
        "lock_timeout": 0,
    },
    "mirrors": {
        "packaging_git": "https://git.launchpad.net/~ubuntu-openstack-dev/ubuntu/+source",
        "upstream_git": "https://opendev.org/openstack",
        "launchpad_push": "git+ssh://{account}@git.launchpad.net/~{account}/ubuntu/+source/{package}",
    },
    "snapshot": {
        "min_interval_hours": None,
        "only_if_upstream_changed": True,
    },
    "behavior": {
        "offline": False,
        "commit_on_conflict": False,
        "pristine_tar": True,
        "protected_paths": [".gitattributes", "launchpad.yaml", ".launchpad.yaml"],
    },
}


def get_config_path() -> Path:
    """Return the path to the config file."""
    return Path.home() / ".config" / "uosp" / "config.yaml"


def ensure_config_exists() -> None:
    """Create the config file with defaults if it does not exist."""
    cfg_path = get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    if not cfg_path.exists():
        cfg_path.write_text(yaml.safe_dump(DEFAULT_CONFIG))


def load_config() -> dict[str, Any]:
    """Load configuration from disk and merge with defaults.

    Top-level sections are merged shallowly: a key set in the file replaces
    the default for that key only.

    Raises:
        ConfigError: The file is not valid YAML or not a mapping.
    """
    ensure_config_exists()
    cfg_path = get_config_path()
    try:
        raw = yaml.safe_load(cfg_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(message=f"Invalid config file {cfg_path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(message=f"Config file {cfg_path} must contain a mapping")

    merged: dict[str, Any] = {}
    for key, val in DEFAULT_CONFIG.items():
        if isinstance(val, dict):
            section = raw.get(key)
            merged[key] = {**val, **section} if isinstance(section, dict) else dict(val)
        else:
            merged[key] = raw.get(key, val)

    for pkey, pval in merged["paths"].items():
        merged["paths"][pkey] = str(Path(pval).expanduser())

    return merged


def write_config(data: dict[str, Any]) -> None:
    """Write the provided data as YAML to the config path."""
    cfg_path = get_config_path()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    cfg_path.write_text(yaml.safe_dump(data))
