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

"""Implementation of `uosp build`."""

from __future__ import annotations

import shutil
import sys
from pathlib import Path

import typer

from uosp.commands.common import log_phase_event, phase_error, tree_path
from uosp.core.exceptions import EXIT_NOT_PACKAGING_TREE, EXIT_SUCCESS, EXIT_TOOL_FAILED
from uosp.core.run import RunContext
from uosp.debpkg.gbp import BuildResult, build_source
from uosp.spinner import activity_spinner

REQUIRED_TOOLS = ("gbp", "dpkg-buildpackage")


def missing_tools(tools: tuple[str, ...]) -> list[str]:
    """Return the tools from ``tools`` that are not on PATH."""
    return [t for t in tools if shutil.which(t) is None]


def build_package(
    run: RunContext,
    project: str,
    workdir: Path,
    unsigned: bool = False,
    check_build_deps: bool = False,
) -> tuple[int, BuildResult | None]:
    """Build the source package of ``project``.

    Returns:
        Exit code and the build result (None when the build never ran).
    """
    root = tree_path(workdir, project)
    if not (root / "debian" / "changelog").exists():
        code = phase_error(run, "build", f"{root} is not a packaging tree", EXIT_NOT_PACKAGING_TREE)
        return code, None

    missing = missing_tools(REQUIRED_TOOLS)
    if missing:
        code = phase_error(run, "build", f"Missing tools: {', '.join(missing)}", EXIT_TOOL_FAILED, missing=missing)
        return code, None

    with activity_spinner("build", f"Building source package for {project}"):
        result = build_source(root, unsigned=unsigned, check_build_deps=check_build_deps)

    (run.logs_path / "build.log").write_text(result.output)
    if not result.success:
        code = phase_error(run, "build", "gbp buildpackage failed", EXIT_TOOL_FAILED, log=str(run.logs_path / "build.log"))
        return code, result

    log_phase_event(
        run,
        "build",
        f"Built {result.dsc_file.name if result.dsc_file else project}",
        "build.done",
        artifacts=[str(a) for a in result.artifacts],
    )
    return EXIT_SUCCESS, result


def build(
    project: str = typer.Argument(..., help="OpenStack package name (e.g. nova)"),
    unsigned: bool = typer.Option(False, help="Do not sign the source package"),
    check_build_deps: bool = typer.Option(False, help="Let dpkg-buildpackage check build dependencies"),
    workdir: Path = typer.Option(Path(), "--workdir", "-w", help="Directory holding packaging trees"),
) -> None:
    """Build the Ubuntu source package with gbp."""
    with RunContext("build", project=project) as run:
        exit_code, result = build_package(
            run, project, workdir.resolve(), unsigned=unsigned, check_build_deps=check_build_deps
        )
        if exit_code == EXIT_SUCCESS and result is not None:
            run.write_summary(status="success", exit_code=exit_code, dsc=str(result.dsc_file))
    sys.exit(exit_code)
