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

"""Run context for uosp CLI invocations.

Each command runs inside a :class:`RunContext`, which creates a run directory
under ``paths.runs_root`` and captures stdout/stderr, a JSONL event stream,
the ``logging`` output of the library modules and a final ``summary.json``.
Operator-facing progress goes through :func:`activity`, which writes to the
real terminal so it is never swallowed by the captured streams.
"""

from __future__ import annotations

import contextlib
import datetime
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any

from uosp.config import load_config

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class RunContext:
    """Context manager that creates a run directory and captures runtime logs.

    Usage:
        with RunContext("rebase", project="nova") as run:
            run.log_event({"event": "rebase.start"})
    """

    def __init__(self, command: str, project: str | None = None, cfg: dict[str, Any] | None = None) -> None:
        self.command = command
        self.cfg = cfg if cfg is not None else load_config()
        runs_root = self.cfg.get("paths", {}).get("runs_root", "~/.cache/uosp/runs")
        self.runs_root = Path(runs_root).expanduser().resolve()
        now_utc = datetime.datetime.now(datetime.UTC)
        label = f"{command}-{project}" if project else command
        self.run_id = now_utc.strftime("%Y%m%dT%H%M%SZ") + f"-{label}-" + uuid.uuid4().hex[:8]
        self.run_path = self.runs_root / self.run_id
        self.logs_path = self.run_path / "logs"
        self.stdout_file: Any | None = None
        self.stderr_file: Any | None = None
        self.events_file: Any | None = None
        self._log_handler: logging.Handler | None = None
        self._orig_stdout = sys.stdout
        self._orig_stderr = sys.stderr
        self.summary: dict[str, Any] = {"command": command, "start_utc": now_utc.isoformat()}
        if project:
            self.summary["project"] = project

    def __enter__(self) -> RunContext:
        self.logs_path.mkdir(parents=True, exist_ok=True)

        self.stdout_file = (self.logs_path / "stdout.log").open("w", encoding="utf-8")
        self.stderr_file = (self.logs_path / "stderr.log").open("w", encoding="utf-8")
        self.events_file = (self.logs_path / "events.jsonl").open("a", encoding="utf-8")

        # Library diagnostics go to their own file, not the terminal.
        handler = logging.FileHandler(self.logs_path / "uosp.log", encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(logging.DEBUG)
        pkg_logger = logging.getLogger("uosp")
        pkg_logger.addHandler(handler)
        pkg_logger.setLevel(logging.DEBUG)
        self._log_handler = handler

        sys.stdout = self.stdout_file
        sys.stderr = self.stderr_file

        self.log_event({"event": "run.start", "run_id": self.run_id})
        return self

    def log_event(self, event: dict[str, Any]) -> None:
        """Write a JSONL event with a timestamp."""
        if self.events_file is None:  # pragma: no cover
            return
        payload = {"timestamp": datetime.datetime.now(datetime.UTC).isoformat(), **event}
        self.events_file.write(json.dumps(payload, default=str) + "\n")
        self.events_file.flush()

    def write_summary(self, **kwargs: Any) -> None:
        self.summary.update(kwargs)
        blob = json.dumps(self.summary, indent=2, default=str)
        self.run_path.mkdir(parents=True, exist_ok=True)
        (self.run_path / "summary.json").write_text(blob)

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: object,
    ) -> bool | None:
        # SystemExit(0) raised inside the block is still a successful run.
        failed = exc is not None and not (isinstance(exc, SystemExit) and exc.code in (0, None))
        status = self.summary.get("status", "success")
        if failed:
            status = "failed"
            self.summary.setdefault("error", str(exc))

        self.summary["end_utc"] = datetime.datetime.now(datetime.UTC).isoformat()
        self.summary["status"] = status
        self.write_summary()

        with contextlib.suppress(ValueError):
            self.log_event({"event": "run.end", "status": status})

        try:
            for f in (self.stdout_file, self.stderr_file, self.events_file):
                if f is not None:
                    f.close()
            if self._log_handler is not None:
                logging.getLogger("uosp").removeHandler(self._log_handler)
                self._log_handler.close()
        finally:
            sys.stdout = self._orig_stdout
            sys.stderr = self._orig_stderr

        if status not in ("success", "skipped"):
            print(f"[report] Logs: {self.run_path}", file=sys.__stdout__)

        return None


def activity(phase: str, description: str) -> None:
    """Print a ``[phase] description`` line on the real terminal."""
    if sys.__stdout__ is None:  # pragma: no cover
        return
    print(f"[{phase}] {description}", file=sys.__stdout__, flush=True)
