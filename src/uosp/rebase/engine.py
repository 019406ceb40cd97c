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

"""Rebase engine: put new upstream content under a packaging tree.

One run goes through four stages::

    START -> CONTENT_REPLACED -> PATCHES_REAPPLIED -> FINALIZED

Content replacement is a directory-level substitution: every top-level entry
of the tree except the packaging directory (and other protected paths) is
swapped for the upstream tree. No file contents are merged. With an importer
set, the upstream content is first imported into the packaging repository
(orig tarball, upstream branch, pristine-tar) and copied from there.

Patches are then tried in series order against a scratch copy of the new
tree, so the committed tree keeps its patches unapplied. A patch that fails
is recorded as a conflict and stays in the series; later patches are still
tried. The engine never resolves conflicts itself.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import reduce
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from uosp.core.exceptions import ContentReplaceError, ToolError, VersionNotGreaterError

if TYPE_CHECKING:
    from uosp.debpkg.patches import ApplyOutcome, PatchApplier, PatchRef
    from uosp.debpkg.version import Version
    from uosp.packaging.state import PackagingTree
    from uosp.upstream.resolver import UpstreamRef

logger = logging.getLogger(__name__)

# Never replaced by upstream content.
ALWAYS_PROTECTED = (".git", "debian")


class RebaseStage(Enum):
    START = "start"
    CONTENT_REPLACED = "content-replaced"
    PATCHES_REAPPLIED = "patches-reapplied"
    FINALIZED = "finalized"


class RebaseStatus(Enum):
    CLEAN = "clean"
    NEEDS_MANUAL_RESOLUTION = "needs-manual-resolution"


@dataclass(frozen=True)
class RebaseResult:
    """Outcome of one engine run.

    Attributes:
        new_version: Version the tree is being moved to.
        conflicts: Patches that failed to apply, in series order.
        status: CLEAN when ``conflicts`` is empty.
        tree: The tree after the run; its series is annotated with
            ``applies_cleanly`` but keeps every patch in its original place.
        upstream: Upstream content the tree now carries.
        outcomes: Per-patch apply output, keyed by patch name.
        touched: Top-level names of the tree removed or written by content
            replacement.
    """

    new_version: Version
    conflicts: tuple[PatchRef, ...]
    status: RebaseStatus
    tree: PackagingTree
    upstream: UpstreamRef
    outcomes: Mapping[str, ApplyOutcome] = field(default_factory=dict, hash=False)
    touched: tuple[str, ...] = ()

    @property
    def is_clean(self) -> bool:
        return self.status == RebaseStatus.CLEAN


@dataclass(frozen=True)
class _SeriesFold:
    series: tuple[PatchRef, ...] = ()
    conflicts: tuple[PatchRef, ...] = ()
    outcomes: Mapping[str, ApplyOutcome] = field(default_factory=dict, hash=False)


StageObserver = Callable[[RebaseStage, str], None]


class UpstreamImporter(Protocol):
    def import_upstream(self, tree: PackagingTree, upstream: UpstreamRef, new_version: Version) -> UpstreamRef: ...


class RebaseEngine:
    """Replaces upstream content and re-applies the patch series.

    Args:
        applier: Applies one patch to a directory.
        protected_paths: Extra top-level names owned by packaging (for
            example ``launchpad.yaml``) that upstream content must not touch.
        scratch_root: Where temporary copies are made (system default if None).
        observer: Called with each stage reached and a short description.
        importer: Imports upstream into the repository before its content is
            copied; the content is copied straight from ``upstream`` if None.
    """

    def __init__(
        self,
        applier: PatchApplier,
        protected_paths: Sequence[str] = (),
        scratch_root: Path | None = None,
        observer: StageObserver | None = None,
        importer: UpstreamImporter | None = None,
    ) -> None:
        self.applier = applier
        self.importer = importer
        self.protected = frozenset(ALWAYS_PROTECTED) | frozenset(protected_paths)
        self.scratch_root = scratch_root
        self.observer = observer

    def _enter(self, stage: RebaseStage, description: str) -> None:
        logger.info("[%s] %s", stage.value, description)
        if self.observer is not None:
            self.observer(stage, description)

    def run(self, tree: PackagingTree, upstream: UpstreamRef, new_version: Version) -> RebaseResult:
        """Move ``tree`` onto ``upstream`` and report patch conflicts.

        Raises:
            VersionNotGreaterError: ``new_version`` does not sort after the
                tree's changelog head; nothing is touched.
            ContentReplaceError: Upstream content could not be read or the
                tree could not be rewritten. Fatal; nothing is committed.
            ToolError: The patch applier itself could not run.
        """
        self._enter(RebaseStage.START, f"{tree.changelog_head} -> {new_version} from {upstream.identifier}")
        self._validate(tree, upstream, new_version)

        if self.importer is not None:
            upstream = self.importer.import_upstream(tree, upstream, new_version)
        touched = self._replace_content(tree, upstream)
        self._enter(RebaseStage.CONTENT_REPLACED, f"upstream content from {upstream.tarball or upstream.content_root}")

        folded = self._reapply_patches(tree)
        self._enter(
            RebaseStage.PATCHES_REAPPLIED,
            f"{len(folded.series) - len(folded.conflicts)}/{len(folded.series)} patches apply",
        )

        status = RebaseStatus.CLEAN if not folded.conflicts else RebaseStatus.NEEDS_MANUAL_RESOLUTION
        result = RebaseResult(
            new_version=new_version,
            conflicts=folded.conflicts,
            status=status,
            tree=replace(tree, patch_series=folded.series),
            upstream=upstream,
            outcomes=folded.outcomes,
            touched=touched,
        )
        self._enter(RebaseStage.FINALIZED, status.value)
        return result

    def _validate(self, tree: PackagingTree, upstream: UpstreamRef, new_version: Version) -> None:
        if not tree.root_path.is_dir():
            raise ContentReplaceError(
                message=f"Packaging tree {tree.root_path} does not exist",
                stage=RebaseStage.START.value,
            )
        if not upstream.content_root.is_dir():
            raise ContentReplaceError(
                message=f"Upstream content {upstream.content_root} does not exist",
                stage=RebaseStage.START.value,
            )
        if not new_version > tree.changelog_head:
            raise VersionNotGreaterError(
                message=f"New version {new_version} is not greater than current {tree.changelog_head}",
                stage=RebaseStage.START.value,
                current=str(tree.changelog_head),
                proposed=str(new_version),
            )

    def _scratch_dir(self, prefix: str) -> Path:
        return Path(tempfile.mkdtemp(prefix=prefix, dir=self.scratch_root))

    @staticmethod
    def _copy_entry(src: Path, dest: Path) -> None:
        if src.is_dir() and not src.is_symlink():
            shutil.copytree(src, dest, symlinks=True)
        else:
            shutil.copy2(src, dest, follow_symlinks=False)

    @staticmethod
    def _remove_entry(path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()

    def _replace_content(self, tree: PackagingTree, upstream: UpstreamRef) -> tuple[str, ...]:
        touched: set[str] = set()
        staging = self._scratch_dir("uosp-stage-")
        try:
            # Read all of upstream before touching the tree.
            try:
                for entry in sorted(upstream.content_root.iterdir()):
                    if entry.name in self.protected:
                        continue
                    self._copy_entry(entry, staging / entry.name)
            except OSError as e:
                raise ContentReplaceError(
                    message=f"Reading upstream content failed: {e}",
                    stage=RebaseStage.CONTENT_REPLACED.value,
                ) from e

            try:
                for entry in sorted(tree.root_path.iterdir()):
                    if entry.name in self.protected:
                        continue
                    self._remove_entry(entry)
                    touched.add(entry.name)
                for entry in sorted(staging.iterdir()):
                    shutil.move(str(entry), str(tree.root_path / entry.name))
                    touched.add(entry.name)
            except OSError as e:
                raise ContentReplaceError(
                    message=f"Replacing content of {tree.root_path} failed: {e}",
                    stage=RebaseStage.CONTENT_REPLACED.value,
                ) from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)
        return tuple(sorted(touched))

    def _reapply_patches(self, tree: PackagingTree) -> _SeriesFold:
        scratch = self._scratch_dir("uosp-patches-")
        workdir = scratch / "tree"
        try:
            shutil.copytree(tree.root_path, workdir, symlinks=True, ignore=shutil.ignore_patterns(".git"))

            def step(acc: _SeriesFold, patch: PatchRef) -> _SeriesFold:
                try:
                    outcome = self.applier.apply(workdir, patch)
                except OSError as e:
                    raise ToolError(
                        message=f"Could not run patch applier on {patch.name}: {e}",
                        stage=RebaseStage.PATCHES_REAPPLIED.value,
                    ) from e
                marked = replace(patch, applies_cleanly=outcome.success)
                if not outcome.success:
                    logger.warning("patch %s does not apply: %s", patch.name, outcome.output.strip())
                return _SeriesFold(
                    series=(*acc.series, marked),
                    conflicts=acc.conflicts if outcome.success else (*acc.conflicts, marked),
                    outcomes={**acc.outcomes, patch.name: outcome},
                )

            return reduce(step, tree.patch_series, _SeriesFold())
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
