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

"""Path helpers and directory creation for uosp."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any


def resolve_paths(cfg: Mapping[str, Any]) -> dict[str, Path]:
    """Return resolved Path objects for configured paths."""
    paths: Mapping[str, Any] = cfg.get("paths", {})
    return {key: Path(str(val)).expanduser().resolve() for key, val in paths.items()}


def ensure_directories(cfg: Mapping[str, Any]) -> dict[str, Path]:
    """Create the cache, export and run directories named in ``cfg``."""
    paths = resolve_paths(cfg)
    for p in paths.values():
        p.mkdir(parents=True, exist_ok=True)
    return paths


def upstream_clone_path(paths: Mapping[str, Path], project: str) -> Path:
    """Return where the upstream clone of ``project`` lives."""
    return paths["upstream_cache"] / project


def export_path(paths: Mapping[str, Path], project: str) -> Path:
    """Return the directory upstream trees of ``project`` are exported under."""
    return paths["export_root"] / project
