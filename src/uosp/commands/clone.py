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

"""Implementation of `uosp clone`."""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from uosp.commands.common import log_phase_event, phase_error
from uosp.core.exceptions import EXIT_CLONE_FAILED, EXIT_SUCCESS
from uosp.core.run import RunContext
from uosp.gitfetch import GitFetcher
from uosp.packaging.state import packaging_branch
from uosp.spinner import activity_spinner


def clone_package(
    run: RunContext,
    project: str,
    release: str,
    workdir: Path,
    offline: bool = False,
    fetcher: GitFetcher | None = None,
) -> int:
    """Clone a packaging repository and set up its local branches.

    Returns:
        Exit code.
    """
    cfg = run.cfg
    defaults = cfg["defaults"]
    fetcher = fetcher or GitFetcher(base_url=cfg["mirrors"]["packaging_git"])
    branch = packaging_branch(release, prefix=defaults["stable_branch_prefix"])

    run.log_event({"event": "clone.start", "package": project, "branch": branch, "url": fetcher.build_url(project)})
    with activity_spinner("clone", f"Cloning {project}"):
        result = fetcher.clone_packaging(
            project,
            workdir,
            packaging_branch=branch,
            upstream_branch=defaults["upstream_branch"],
            offline=offline,
        )

    if result.error:
        return phase_error(run, "clone", result.error, EXIT_CLONE_FAILED, package=project, locked=result.was_locked)

    action = "Cloned" if result.cloned else "Updated" if result.updated else "Found"
    log_phase_event(
        run,
        "clone",
        f"{action} {project} at {result.path} on {branch}",
        "clone.done",
        path=str(result.path),
        branches=result.checked_out,
    )
    run.write_summary(status="success", exit_code=EXIT_SUCCESS, path=str(result.path), branch=branch)
    return EXIT_SUCCESS


def clone(
    project: str = typer.Argument(..., help="OpenStack package name (e.g. nova)"),
    release: str = typer.Option("master", help="OpenStack release whose branch to check out (e.g. caracal)"),
    workdir: Path = typer.Option(Path(), "--workdir", "-w", help="Directory holding packaging trees"),
    offline: bool = typer.Option(False, help="Do not touch the network"),
) -> None:
    """Git clone an OpenStack package from the Ubuntu repositories.

    Local pristine-tar and upstream branches are created next to the
    packaging branch so gbp can build straight away.
    """
    with RunContext("clone", project=project) as run:
        exit_code = clone_package(run, project, release, workdir.resolve(), offline=offline)
    sys.exit(exit_code)
