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

"""Implementation of `uosp pushlp`."""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from uosp.commands.common import error_exit, log_phase_event, phase_error, tree_path
from uosp.core.exceptions import EXIT_NOT_PACKAGING_TREE, EXIT_SUCCESS, UospError
from uosp.core.run import RunContext
from uosp.spinner import activity_spinner
from uosp.vcs import GitBackend, VcsBackend


def launchpad_url(template: str, project: str, account: str) -> str:
    """Return the personal Launchpad git URL of ``project`` for ``account``."""
    return template.format(account=account, package=project)


def push_package(
    run: RunContext,
    project: str,
    account: str,
    workdir: Path,
    vcs: VcsBackend | None = None,
) -> int:
    """Force push every branch of ``project`` to ``account``'s Launchpad space."""
    root = tree_path(workdir, project)
    if not (root / ".git").exists():
        return phase_error(run, "pushlp", f"{root} is not a git repository", EXIT_NOT_PACKAGING_TREE)

    vcs = vcs or GitBackend()
    url = launchpad_url(run.cfg["mirrors"]["launchpad_push"], project, account)
    try:
        with activity_spinner("pushlp", f"Pushing {project} to {url}"):
            vcs.push(root, url, force=True)
    except UospError as e:
        return error_exit(run, "pushlp", e)

    log_phase_event(run, "pushlp", f"Pushed {project} to lp:~{account}", "pushlp.done", url=url)
    run.write_summary(status="success", exit_code=EXIT_SUCCESS, url=url)
    return EXIT_SUCCESS


def pushlp(
    project: str = typer.Argument(..., help="OpenStack package name (e.g. nova)"),
    account: str = typer.Argument(..., help="Launchpad account (e.g. someone)"),
    workdir: Path = typer.Option(Path(), "--workdir", "-w", help="Directory holding packaging trees"),
) -> None:
    """Force push all branches to a Launchpad account."""
    with RunContext("pushlp", project=project) as run:
        exit_code = push_package(run, project, account, workdir.resolve())
    sys.exit(exit_code)
