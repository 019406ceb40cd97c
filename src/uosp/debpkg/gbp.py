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

"""Build and publish collaborators.

Thin wrappers around git-buildpackage (orig tarball imports and source
package builds) and backportpackage (uploads to a Launchpad PPA). The core
never inspects what these tools produce beyond locating the artifacts.
"""

from __future__ import annotations

import datetime
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

BUILD_AREA = "build-area"


@dataclass
class BuildResult:
    """Result of a package build operation."""

    success: bool
    output: str
    artifacts: list[Path] = field(default_factory=list)
    changes_file: Path | None = None
    dsc_file: Path | None = None


@dataclass
class PublishResult:
    """Result of an upload to a PPA."""

    success: bool
    output: str
    dsc_file: Path
    suffix: str = ""


@dataclass
class ImportOrigResult:
    """Result of a gbp import-orig operation."""

    success: bool
    output: str
    upstream_version: str = ""


def run_command(
    cmd: Sequence[str],
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    capture: bool = True,
) -> tuple[int, str, str]:
    """Run a command and return exit code, stdout, stderr.

    Args:
        cmd: Command and arguments to run.
        cwd: Working directory for the command.
        env: Environment variables (merged with current env).
        capture: If True, capture output; otherwise inherit stdio.

    Returns:
        Tuple of (exit_code, stdout, stderr).
    """
    run_env = os.environ.copy()
    if env:
        run_env.update(env)

    if capture:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            env=run_env,
            capture_output=True,
            text=True,
        )
        return result.returncode, result.stdout, result.stderr
    result = subprocess.run(cmd, cwd=cwd, env=run_env)
    return result.returncode, "", ""


def build_area(root: Path) -> Path:
    """Return the directory build artifacts go to for packages under ``root``."""
    return root / BUILD_AREA


def _collect_artifacts(output_dir: Path) -> tuple[list[Path], Path | None, Path | None]:
    artifacts: list[Path] = []
    dsc_file: Path | None = None
    changes_file: Path | None = None
    if not output_dir.exists():
        return artifacts, dsc_file, changes_file

    for f in sorted(output_dir.iterdir()):
        if not f.is_file():
            continue
        name = f.name
        # .tar.gz has suffix .gz
        if f.suffix in (".dsc", ".changes", ".buildinfo") or name.endswith((".tar.gz", ".tar.xz")):
            artifacts.append(f)
            if f.suffix == ".dsc":
                dsc_file = f
            elif f.suffix == ".changes" and "_source" in name:
                changes_file = f
    return artifacts, dsc_file, changes_file


def build_source(
    repo_path: Path,
    output_dir: Path | None = None,
    unsigned: bool = False,
    check_build_deps: bool = False,
) -> BuildResult:
    """Build a source package with ``gbp buildpackage -S -sa``.

    Args:
        repo_path: Path to the packaging repository.
        output_dir: Where artifacts go (default: build-area next to the repo).
        unsigned: Skip signing (-us -uc). Signing is otherwise left to gbp.
        check_build_deps: Let dpkg-buildpackage check build dependencies.

    Returns:
        BuildResult with success status and artifact paths.
    """
    if output_dir is None:
        output_dir = build_area(repo_path.parent)
    output_dir.mkdir(parents=True, exist_ok=True)

    cmd = ["gbp", "buildpackage", "-S", "-sa"]
    if not check_build_deps:
        cmd.append("-d")
    if unsigned:
        cmd.extend(["-us", "-uc"])
    cmd.append(f"--git-export-dir={output_dir}")

    returncode, stdout, stderr = run_command(cmd, cwd=repo_path)
    success = returncode == 0

    artifacts: list[Path] = []
    dsc_file = changes_file = None
    if success:
        artifacts, dsc_file, changes_file = _collect_artifacts(output_dir)

    return BuildResult(
        success=success,
        output=stdout + stderr,
        artifacts=artifacts,
        dsc_file=dsc_file,
        changes_file=changes_file,
    )


def import_orig(
    repo_path: Path,
    tarball_path: Path,
    upstream_version: str,
    upstream_branch: str | None = None,
    pristine_tar: bool = True,
    merge: bool = False,
) -> ImportOrigResult:
    """Import an orig tarball with gbp import-orig.

    The tarball is committed onto the upstream branch, tagged, and stored on
    the pristine-tar branch when ``pristine_tar`` is set. Without ``merge``
    the packaging branch and the working tree are left alone.

    Args:
        repo_path: Path to the packaging repository.
        tarball_path: The ``<pkg>_<ver>.orig.tar.gz`` to import.
        upstream_version: Version recorded for the import and its tag.
        upstream_branch: Name of the upstream branch (gbp default if None).
        pristine_tar: Store the tarball on the pristine-tar branch.
        merge: Merge the upstream branch into the current branch.

    Returns:
        ImportOrigResult with success status.
    """
    cmd = ["gbp", "import-orig", "--no-interactive"]

    if upstream_branch:
        cmd.append(f"--upstream-branch={upstream_branch}")

    if pristine_tar:
        cmd.append("--pristine-tar")
    else:
        cmd.append("--no-pristine-tar")

    if not merge:
        cmd.append("--no-merge")

    cmd.append(f"--upstream-version={upstream_version}")
    cmd.append(str(tarball_path))

    returncode, stdout, stderr = run_command(cmd, cwd=repo_path)
    return ImportOrigResult(
        success=returncode == 0,
        output=stdout + stderr,
        upstream_version=upstream_version,
    )


def dsc_path(root: Path, package: str, version: str) -> Path:
    """Return the expected .dsc location for ``package`` at ``version``.

    The epoch never appears in file names.
    """
    if ":" in version:
        version = version.split(":", 1)[1]
    return build_area(root) / f"{package}_{version}.dsc"


def ppa_suffix(now: datetime.datetime | None = None) -> str:
    """Return the version suffix appended to PPA uploads (``~ppaYYYYMMDDHHMM``)."""
    now = now or datetime.datetime.now(datetime.UTC)
    return f"~ppa{now:%Y%m%d%H%M}"


def publish_backport(
    root: Path,
    dsc_file: Path,
    ppa: str,
    series: str,
    now: datetime.datetime | None = None,
) -> PublishResult:
    """Upload a built source package to a PPA using backportpackage.

    Args:
        root: Directory holding the packaging repository and build-area.
        dsc_file: The .dsc to upload.
        ppa: Launchpad PPA (e.g. "ppa:someone/caracal").
        series: Ubuntu series to build for (e.g. "noble").
        now: Timestamp used for the version suffix.
    """
    suffix = ppa_suffix(now)
    cmd = [
        "backportpackage",
        "-S",
        suffix,
        "-u",
        ppa,
        "-d",
        series,
        "-y",
        str(dsc_file),
    ]
    returncode, stdout, stderr = run_command(cmd, cwd=root)
    return PublishResult(
        success=returncode == 0,
        output=stdout + stderr,
        dsc_file=dsc_file,
        suffix=suffix,
    )
