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

"""uosp exception types with associated exit codes.

Errors fall into four groups:

- input errors (bad version string, unknown tag, not a packaging tree) are
  fatal and surface before anything in the tree changes;
- environment problems (unreachable upstream, dirty tree, missing branch,
  tree already leased) are fatal for the run but fixable by the operator;
- invariant violations (a changelog entry that would not increase the
  version) point to a logic or input error upstream of the changelog writer;
- collaborator failures (an external tool returned non-zero).

Patch conflicts are not exceptions: they are reported in the rebase result
and map to EXIT_NEEDS_MANUAL_RESOLUTION.
"""

from __future__ import annotations

from dataclasses import dataclass, field

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_NEEDS_MANUAL_RESOLUTION = 2
EXIT_MALFORMED_VERSION = 3
EXIT_UNKNOWN_TAG = 4
EXIT_NOT_PACKAGING_TREE = 5
EXIT_UPSTREAM_UNREACHABLE = 6
EXIT_DIRTY_TREE = 7
EXIT_MISSING_BRANCH = 8
EXIT_VERSION_NOT_GREATER = 9
EXIT_NOT_SNAPSHOT_CANDIDATE = 10
EXIT_CONTENT_REPLACE_FAILED = 11
EXIT_TREE_LOCKED = 12
EXIT_TOOL_FAILED = 13
EXIT_CLONE_FAILED = 14


@dataclass
class UospError(Exception):
    """Base class for uosp errors with an exit code."""

    message: str = "An error occurred"
    exit_code: int = field(default=EXIT_ERROR)
    stage: str = ""

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.message} (exit {self.exit_code})"


@dataclass
class ConfigError(UospError):
    exit_code: int = field(default=EXIT_ERROR)


@dataclass
class InputError(UospError):
    """Invalid input; nothing has been changed."""


@dataclass
class EnvironmentProblem(UospError):
    """The environment prevents the operation; fixable by the operator."""


@dataclass
class InvariantViolation(UospError):
    """An internal invariant would be broken by continuing."""


@dataclass
class MalformedVersionError(InputError):
    exit_code: int = field(default=EXIT_MALFORMED_VERSION)
    raw: str = ""


@dataclass
class UnknownUpstreamTagError(InputError):
    exit_code: int = field(default=EXIT_UNKNOWN_TAG)
    tag: str = ""


@dataclass
class NotAPackagingTreeError(InputError):
    exit_code: int = field(default=EXIT_NOT_PACKAGING_TREE)


@dataclass
class UpstreamUnreachableError(EnvironmentProblem):
    """Fetching from the upstream remote failed. Safe to retry."""

    exit_code: int = field(default=EXIT_UPSTREAM_UNREACHABLE)
    url: str = ""


@dataclass
class DirtyWorkingTreeError(EnvironmentProblem):
    exit_code: int = field(default=EXIT_DIRTY_TREE)
    paths: list[str] = field(default_factory=list)


@dataclass
class MissingUpstreamBranchError(EnvironmentProblem):
    exit_code: int = field(default=EXIT_MISSING_BRANCH)
    branch: str = ""


@dataclass
class VersionNotGreaterError(InvariantViolation):
    exit_code: int = field(default=EXIT_VERSION_NOT_GREATER)
    current: str = ""
    proposed: str = ""


@dataclass
class NotASnapshotCandidateError(UospError):
    """The head is a final release and upstream has not moved since."""

    exit_code: int = field(default=EXIT_NOT_SNAPSHOT_CANDIDATE)


@dataclass
class ContentReplaceError(UospError):
    """Replacing upstream content failed; the run is aborted."""

    exit_code: int = field(default=EXIT_CONTENT_REPLACE_FAILED)


@dataclass
class TreeLockedError(EnvironmentProblem):
    exit_code: int = field(default=EXIT_TREE_LOCKED)


@dataclass
class ToolError(UospError):
    """An external collaborator (gbp, backportpackage, git push) failed."""

    exit_code: int = field(default=EXIT_TOOL_FAILED)
    output: str = ""
