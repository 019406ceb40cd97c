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

"""Activity lines shown around long git, build and upload steps.

On a terminal the step runs under a Rich status spinner and ends with one
line saying whether it finished and how long it took. Elsewhere the step is
announced once with a plain line. Output always goes to ``sys.__stdout__`` so
it never lands in the captured run logs.
"""

from __future__ import annotations

import contextlib
import sys
import time
from collections.abc import Iterator

from rich.console import Console

SPINNER_NAME = "dots"
REFRESH_PER_SECOND = 12


def is_tty() -> bool:
    """Return True if the real stdout is a TTY."""
    if sys.__stdout__ is None:
        return False  # pragma: no cover
    return sys.__stdout__.isatty()


def _console() -> Console:
    return Console(file=sys.__stdout__, force_terminal=True)


def _emit(line: str) -> None:
    print(line, file=sys.__stdout__, flush=True)


@contextlib.contextmanager
def activity_spinner(phase: str, description: str, disable: bool = False) -> Iterator[None]:
    """Show ``[phase] description`` while the block runs.

    Args:
        phase: Short phase label (e.g. "fetch", "build").
        description: What is currently happening.
        disable: Never animate, even on a TTY.
    """
    text = f"[{phase}] {description}"
    if disable or not is_tty():
        _emit(text)
        yield
        return

    started = time.monotonic()
    outcome = "failed"
    try:
        with _console().status(text, spinner=SPINNER_NAME, refresh_per_second=REFRESH_PER_SECOND):
            yield
        outcome = "done"
    finally:
        _emit(f"{text} ({outcome} in {time.monotonic() - started:.1f}s)")
