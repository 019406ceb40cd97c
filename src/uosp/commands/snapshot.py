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

"""Implementation of `uosp snapshot`."""

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
from uosp.core.run import RunContext, activity
from uosp.rebase.scheduler import SnapshotPolicy
from uosp.spinner import activity_spinner
from uosp.vcs import VcsBackend


def resolve_policy(
    section: dict,
    min_interval_hours: float | None = None,
    always: bool = False,
) -> SnapshotPolicy:
    """Build the snapshot policy from config, with CLI values taking precedence."""
    policy = SnapshotPolicy.from_config(section)
    if min_interval_hours is not None:
        policy = SnapshotPolicy(min_interval_hours or None, policy.only_if_upstream_changed)
    if always:
        policy = SnapshotPolicy(policy.min_interval_hours, only_if_upstream_changed=False)
    return policy


def snapshot_package(
    run: RunContext,
    project: str,
    release: str,
    workdir: Path,
    next_version: str | None = None,
    policy: SnapshotPolicy | None = None,
    vcs: VcsBackend | None = None,
) -> int:
    """Move ``project`` to the latest upstream snapshot when one is due.

    Returns:
        0 when clean or not due, 2 when patches need manual resolution, or
        the exit code of the error that stopped the run.
    """
    cfg = run.cfg
    policy = policy or SnapshotPolicy.from_config(cfg["snapshot"])
    code = ensure_packaging_tree(run, "snapshot", cfg, project, workdir, release)
    if code != EXIT_SUCCESS:
        return code

    root = tree_path(workdir, project)
    series = None if release == "master" else release
    run.log_event({
        "event": "snapshot.start",
        "package": project,
        "release": release,
        "next_version": next_version,
        "min_interval_hours": policy.min_interval_hours,
        "only_if_upstream_changed": policy.only_if_upstream_changed,
    })
    try:
        workflow = build_workflow(cfg, project, release, vcs=vcs, run=run)
        with activity_spinner("snapshot", f"Snapshotting {project} ({release})"):
            outcome = workflow.snapshot(root, policy, next_upstream=next_version, openstack_series=series)
    except UospError as e:
        return error_exit(run, "snapshot", e)

    if outcome.skipped:
        log_phase_event(
            run,
            "snapshot",
            f"No snapshot due for {project} (head {outcome.tree.changelog_head})",
            "snapshot.skipped",
            head=str(outcome.tree.changelog_head),
        )
        run.write_summary(status="skipped", exit_code=EXIT_SUCCESS)
        return EXIT_SUCCESS

    result = outcome.result
    version = str(result.new_version) if result else ""
    if result is not None and not result.is_clean:
        report_conflicts(run, "snapshot", result)
        phase_warning(
            run,
            "snapshot",
            f"{len(result.conflicts)} patch(es) need manual resolution; changes left uncommitted",
            version=version,
        )
    else:
        log_phase_event(
            run,
            "snapshot",
            f"{project} updated to {version} ({outcome.commit})",
            "snapshot.done",
            version=version,
            commit=outcome.commit,
        )
        # Snapshots routinely pull in new requirements.
        activity("snapshot", "/!\\ Please consider checking (build-)deps.")

    run.write_summary(
        status="success" if outcome.exit_code == EXIT_SUCCESS else "needs_manual_resolution",
        exit_code=outcome.exit_code,
        version=version,
        commit=outcome.commit,
        conflicts=[p.name for p in result.conflicts] if result else [],
    )
    return outcome.exit_code


def snapshot(
    project: str = typer.Argument(..., help="OpenStack package name (e.g. nova)"),
    release: str = typer.Argument(..., help="OpenStack release name (e.g. caracal, master)"),
    next_version: str | None = typer.Option(
        None, "--next-version", help="Next upstream version the snapshot leads to (e.g. 30.0.0~b1)"
    ),
    min_interval_hours: float | None = typer.Option(
        None, help="Minimum hours since the last changelog entry (0 disables)"
    ),
    always: bool = typer.Option(False, "--always", help="Snapshot even when upstream has no new commit"),
    workdir: Path = typer.Option(Path(), "--workdir", "-w", help="Directory holding packaging trees"),
) -> None:
    """Update a package to a new upstream snapshot.

    Exit codes:
      0 - Snapshot committed, or no snapshot due
      2 - Patches need manual resolution (nothing committed)
      other - See uosp.core.exceptions
    """
    with RunContext("snapshot", project=project) as run:
        policy = resolve_policy(run.cfg["snapshot"], min_interval_hours, always)
        exit_code = snapshot_package(run, project, release, workdir.resolve(), next_version=next_version, policy=policy)
    sys.exit(exit_code)
