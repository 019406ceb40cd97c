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

"""Implementation of `uosp rebase`."""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from uosp.commands.common import (
    build_workflow,
    ensure_packaging_tree,
    error_exit,
    log_phase_event,
    phase_warning,
    report_conflicts,
    tree_path,
)
from uosp.core.exceptions import EXIT_SUCCESS, UospError
from uosp.core.run import RunContext
from uosp.spinner import activity_spinner
from uosp.vcs import VcsBackend


def rebase_package(
    run: RunContext,
    project: str,
    release: str,
    tag: str,
    workdir: Path,
    bug: int | None = None,
    vcs: VcsBackend | None = None,
) -> int:
    """Rebase ``project`` onto upstream release ``tag``.

    Returns:
        0 when the result is clean, 2 when patches need manual resolution,
        or the exit code of the error that stopped the run.
    """
    cfg = run.cfg
    code = ensure_packaging_tree(run, "rebase", cfg, project, workdir, release)
    if code != EXIT_SUCCESS:
        return code

    root = tree_path(workdir, project)
    series = None if release == "master" else release
    run.log_event({"event": "rebase.start", "package": project, "release": release, "tag": tag, "bug": bug})
    try:
        workflow = build_workflow(cfg, project, release, vcs=vcs, run=run)
        with activity_spinner("rebase", f"Rebasing {project} ({release}) onto {tag}"):
            outcome = workflow.rebase(root, tag, bug=bug, openstack_series=series)
    except UospError as e:
        return error_exit(run, "rebase", e)

    result = outcome.result
    version = str(result.new_version) if result else ""
    if result is not None and not result.is_clean:
        report_conflicts(run, "rebase", result)
        phase_warning(
            run,
            "rebase",
            f"{len(result.conflicts)} patch(es) need manual resolution; changes left uncommitted",
            version=version,
        )
    else:
        log_phase_event(
            run,
            "rebase",
            f"{project} rebased to {version} ({outcome.commit})",
            "rebase.done",
            version=version,
            commit=outcome.commit,
        )

    run.write_summary(
        status="success" if outcome.exit_code == EXIT_SUCCESS else "needs_manual_resolution",
        exit_code=outcome.exit_code,
        version=version,
        commit=outcome.commit,
        conflicts=[p.name for p in result.conflicts] if result else [],
    )
    return outcome.exit_code


def rebase(
    project: str = typer.Argument(..., help="OpenStack package name (e.g. nova)"),
    release: str = typer.Argument(..., help="OpenStack release name (e.g. caracal, master)"),
    tag: str = typer.Argument(..., help="Upstream version to rebase on (e.g. 29.0.1)"),
    bug: int | None = typer.Option(None, "--bug", "-b", help="Launchpad bug tracking the rebase"),
    workdir: Path = typer.Option(Path(), "--workdir", "-w", help="Directory holding packaging trees"),
) -> None:
    """Rebase a package onto a new upstream release.

    Exit codes:
      0 - Rebased and committed
      2 - Patches need manual resolution (nothing committed)
      other - See uosp.core.exceptions
    """
    with RunContext("rebase", project=project) as run:
        exit_code = rebase_package(run, project, release, tag, workdir.resolve(), bug=bug)
    sys.exit(exit_code)
