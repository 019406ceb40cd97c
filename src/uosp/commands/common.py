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

"""Helpers shared by the uosp subcommands.

Covers reporting (activity lines paired with structured run events), turning
a :class:`UospError` into an exit code, and assembling the rebase/snapshot
:class:`Workflow` from configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from uosp.core.exceptions import EXIT_CLONE_FAILED, EXIT_SUCCESS, UospError
from uosp.core.run import activity
from uosp.debpkg.changelog import ChangelogWriter
from uosp.debpkg.patches import GitApplyPatcher
from uosp.gitfetch import GitFetcher
from uosp.packaging.state import RepositoryState, packaging_branch
from uosp.paths import ensure_directories, export_path, upstream_clone_path
from uosp.rebase.engine import RebaseEngine
from uosp.rebase.scheduler import SnapshotScheduler
from uosp.rebase.workflow import Workflow
from uosp.upstream.orig import GbpOrigImporter
from uosp.upstream.resolver import UpstreamResolver, upstream_url
from uosp.vcs import GitBackend

if TYPE_CHECKING:
    from uosp.core.run import RunContext
    from uosp.rebase.engine import RebaseResult
    from uosp.vcs import VcsBackend


def log_phase_event(run: RunContext, phase: str, message: str, event_key: str, **event_data: Any) -> None:
    """Print an activity line and record the matching structured event."""
    activity(phase, message)
    run.log_event({"event": event_key, **event_data})


def phase_warning(run: RunContext, phase: str, message: str, **event_data: Any) -> None:
    """Report a warning without affecting the exit status."""
    activity(phase, f"Warning: {message}")
    run.log_event({"event": f"{phase}.warning", "message": message, **event_data})


def phase_error(run: RunContext, phase: str, message: str, exit_code: int, **event_data: Any) -> int:
    """Report a failure and write the failed summary.

    Prints ``[<phase>] ERROR: <message>`` and returns ``exit_code`` so callers
    can ``return phase_error(...)``.
    """
    activity(phase, f"ERROR: {message}")
    run.log_event({"event": f"{phase}.error", "message": message, "exit_code": exit_code, **event_data})
    run.write_summary(status="failed", error=message, exit_code=exit_code)
    return exit_code


def error_exit(run: RunContext, phase: str, err: UospError) -> int:
    """Report ``err`` under its own stage when it has one, else under ``phase``."""
    output = getattr(err, "output", "")
    extra = {"output": output} if output else {}
    return phase_error(
        run,
        err.stage or phase,
        err.message,
        err.exit_code,
        error_type=type(err).__name__,
        **extra,
    )


def report_conflicts(run: RunContext, phase: str, result: RebaseResult) -> None:
    """Print one line per patch that failed to re-apply."""
    for patch in result.conflicts:
        outcome = result.outcomes.get(patch.name)
        reason = outcome.reason.value if outcome and outcome.reason else "conflict"
        action = outcome.suggested_action if outcome else ""
        activity(phase, f"CONFLICT: {patch.name} ({reason}) {action}".rstrip())
        run.log_event({"event": f"{phase}.conflict", "patch": patch.name, "reason": reason})


def tree_path(workdir: Path, project: str) -> Path:
    """Return the packaging tree of ``project`` inside ``workdir``."""
    return workdir / project


def ensure_packaging_tree(
    run: RunContext,
    phase: str,
    cfg: dict[str, Any],
    project: str,
    workdir: Path,
    release: str,
    fetcher: GitFetcher | None = None,
) -> int:
    """Clone ``project`` into ``workdir`` unless a tree is already there.

    Returns:
        EXIT_SUCCESS, or the exit code of the reported failure.
    """
    if tree_path(workdir, project).exists():
        return EXIT_SUCCESS

    defaults = cfg["defaults"]
    fetcher = fetcher or GitFetcher(base_url=cfg["mirrors"]["packaging_git"])
    branch = packaging_branch(release, prefix=defaults["stable_branch_prefix"])
    result = fetcher.clone_packaging(
        project,
        workdir,
        packaging_branch=branch,
        upstream_branch=defaults["upstream_branch"],
        offline=cfg["behavior"]["offline"],
    )
    if result.error:
        return phase_error(run, "clone", result.error, EXIT_CLONE_FAILED, package=project)
    log_phase_event(
        run,
        phase,
        f"Cloned {project} on {branch}",
        "clone.done",
        path=str(result.path),
        branches=result.checked_out,
    )
    return EXIT_SUCCESS


def build_workflow(
    cfg: dict[str, Any],
    project: str,
    release: str,
    vcs: VcsBackend | None = None,
    offline: bool | None = None,
    run: RunContext | None = None,
) -> Workflow:
    """Assemble a :class:`Workflow` for ``project`` from configuration."""
    vcs = vcs or GitBackend()
    defaults = cfg["defaults"]
    behavior = cfg["behavior"]
    paths = ensure_directories(cfg)
    branch = packaging_branch(release, prefix=defaults["stable_branch_prefix"])

    resolver = UpstreamResolver(
        vcs,
        repo_path=upstream_clone_path(paths, project),
        export_root=export_path(paths, project),
        url=upstream_url(project, cfg["mirrors"]["upstream_git"]),
        branch=branch,
        offline=behavior["offline"] if offline is None else offline,
    )

    observer = None
    if run is not None:
        def observer(stage: Any, description: str) -> None:
            run.log_event({"event": f"engine.{stage.value}", "description": description})

    importer = GbpOrigImporter(
        resolver,
        vcs,
        upstream_branch=defaults["upstream_branch"],
        pristine_tar=bool(behavior.get("pristine_tar", True)),
    )
    engine = RebaseEngine(
        GitApplyPatcher(),
        protected_paths=behavior.get("protected_paths") or (),
        scratch_root=paths.get("cache_root"),
        observer=observer,
        importer=importer,
    )
    return Workflow(
        state=RepositoryState(
            vcs,
            upstream_branch=defaults["upstream_branch"],
            lock_timeout=float(defaults.get("lock_timeout") or 0),
        ),
        resolver=resolver,
        scheduler=SnapshotScheduler(resolver),
        engine=engine,
        writer=ChangelogWriter(distribution=defaults["distribution"], urgency=defaults["urgency"]),
        baseline_revision=int(defaults["baseline_revision"]),
        commit_on_conflict=bool(behavior["commit_on_conflict"]),
        packaging_branch=branch,
    )
