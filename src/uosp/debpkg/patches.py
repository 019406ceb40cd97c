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

"""Patch series handling for packaging trees.

Reads debian/patches/series and applies individual patches to a directory
through a small applier interface, so that the rebase engine can be driven
by a test double instead of real tools.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from uosp.debpkg.gbp import run_command

SERIES_FILE = "series"


@dataclass(frozen=True)
class PatchRef:
    """One entry of the patch series.

    ``applies_cleanly`` is None until the patch has been tried.
    """

    name: str
    path: Path
    applies_cleanly: bool | None = None


class PatchFailureReason(Enum):
    """Classification of patch application failures."""

    CONFLICT = "conflict"
    MISSING_FILE = "missing_file"
    UPSTREAMED = "upstreamed"
    MISSING_PATCH = "missing_patch"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ApplyOutcome:
    """Result of applying one patch."""

    success: bool
    output: str = ""
    reason: PatchFailureReason | None = None

    @property
    def suggested_action(self) -> str:
        if self.success:
            return ""
        if self.reason == PatchFailureReason.UPSTREAMED:
            return "Patch appears to be in upstream; consider dropping"
        if self.reason == PatchFailureReason.MISSING_FILE:
            return "File removed upstream; drop or update patch"
        if self.reason == PatchFailureReason.MISSING_PATCH:
            return "Patch listed in series but not found in debian/patches"
        return "Manual conflict resolution required"


class PatchApplier(Protocol):
    """Applies a single patch to a directory tree."""

    def apply(self, workdir: Path, patch: PatchRef) -> ApplyOutcome: ...


def read_series(patches_dir: Path) -> tuple[PatchRef, ...]:
    """Return the patch series in apply order.

    Blank lines and comments are skipped; quilt options after the patch name
    (e.g. "-p1") are ignored. A missing series file means an empty series.
    """
    series_file = patches_dir / SERIES_FILE
    if not series_file.exists():
        return ()

    patches: list[PatchRef] = []
    for line in series_file.read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0].strip()
        if not line:
            continue
        name = line.split()[0]
        patches.append(PatchRef(name=name, path=patches_dir / name))
    return tuple(patches)


def _classify_failure(output: str) -> PatchFailureReason:
    lowered = output.lower()
    if "no such file" in lowered or "does not exist" in lowered:
        return PatchFailureReason.MISSING_FILE
    if "patch does not apply" in lowered or "patch failed" in lowered:
        return PatchFailureReason.CONFLICT
    return PatchFailureReason.UNKNOWN


class GitApplyPatcher:
    """Apply patches with ``git apply``.

    ``git apply`` is all-or-nothing per patch, so a failed patch leaves the
    directory untouched and later patches can still be tried on top.
    """

    def __init__(self, strip: int = 1) -> None:
        self.strip = strip

    def apply(self, workdir: Path, patch: PatchRef) -> ApplyOutcome:
        if not patch.path.is_file():
            return ApplyOutcome(
                success=False,
                output=f"{patch.path} not found",
                reason=PatchFailureReason.MISSING_PATCH,
            )

        cmd = ["git", "apply", f"-p{self.strip}", "--whitespace=nowarn", str(patch.path)]
        returncode, stdout, stderr = run_command(cmd, cwd=workdir)
        output = stdout + stderr
        if returncode == 0:
            return ApplyOutcome(success=True, output=output)

        # If the patch reverse-applies, upstream already carries it.
        check_cmd = ["git", "apply", f"-p{self.strip}", "--check", "--reverse", str(patch.path)]
        reverse_rc, _, _ = run_command(check_cmd, cwd=workdir)
        if reverse_rc == 0:
            return ApplyOutcome(success=False, output=output, reason=PatchFailureReason.UPSTREAMED)

        return ApplyOutcome(success=False, output=output, reason=_classify_failure(output))
