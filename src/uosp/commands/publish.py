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

"""Implementation of `uosp publish`."""

from __future__ import annotations

import shutil
import sys
from pathlib import Path

import typer

from uosp.commands.build import build_package
from uosp.commands.common import log_phase_event, phase_error, tree_path
from uosp.core.exceptions import EXIT_NOT_PACKAGING_TREE, EXIT_SUCCESS, EXIT_TOOL_FAILED
from uosp.core.run import RunContext
from uosp.debpkg.gbp import dsc_path, publish_backport
from uosp.packaging.state import read_changelog_head
from uosp.spinner import activity_spinner


def publish_package(
    run: RunContext,
    project: str,
    ppa: str,
    series: str,
    workdir: Path,
    rebuild: bool = True,
) -> int:
    """Build ``project`` if needed and upload it to ``ppa`` for ``series``."""
    root = tree_path(workdir, project)
    changelog = root / "debian" / "changelog"
    if not changelog.exists():
        return phase_error(run, "publish", f"{root} is not a packaging tree", EXIT_NOT_PACKAGING_TREE)

    package, version, _, _ = read_changelog_head(changelog)
    dsc_file = dsc_path(workdir, package, str(version))

    if rebuild or not dsc_file.exists():
        code, result = build_package(run, project, workdir)
        if code != EXIT_SUCCESS:
            return code
        if result is not None and result.dsc_file is not None:
            dsc_file = result.dsc_file

    if shutil.which("backportpackage") is None:
        return phase_error(run, "publish", "Missing tools: backportpackage", EXIT_TOOL_FAILED)

    with activity_spinner("publish", f"Uploading {dsc_file.name} to {ppa} for {series}"):
        result = publish_backport(workdir, dsc_file, ppa, series)

    (run.logs_path / "publish.log").write_text(result.output)
    if not result.success:
        return phase_error(run, "publish", "backportpackage failed", EXIT_TOOL_FAILED, dsc=str(dsc_file))

    log_phase_event(
        run,
        "publish",
        f"Uploaded {package} {version}{result.suffix} to {ppa}",
        "publish.done",
        ppa=ppa,
        series=series,
        suffix=result.suffix,
    )
    run.write_summary(status="success", exit_code=EXIT_SUCCESS, ppa=ppa, series=series, suffix=result.suffix)
    return EXIT_SUCCESS


def publish(
    project: str = typer.Argument(..., help="OpenStack package name (e.g. nova)"),
    ppa: str = typer.Argument(..., help="Launchpad PPA (e.g. ppa:someone/caracal)"),
    series: str = typer.Argument(..., help="Ubuntu series to build for (e.g. noble)"),
    rebuild: bool = typer.Option(True, help="Build before uploading even if a .dsc exists"),
    workdir: Path = typer.Option(Path(), "--workdir", "-w", help="Directory holding packaging trees"),
) -> None:
    """Backport the package to a Launchpad PPA."""
    with RunContext("publish", project=project) as run:
        exit_code = publish_package(run, project, ppa, series, workdir.resolve(), rebuild=rebuild)
    sys.exit(exit_code)
