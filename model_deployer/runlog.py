# /*
# Copyright 2026 The Model Deployer Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Run logging: a live rich stream plus a persisted, timestamped run log."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from rich.logging import RichHandler
from rich.panel import Panel

from model_deployer import console, logger
from model_deployer.constants import LOG_DATE_FORMAT, LOG_FILE_PATTERN, LOG_FORMAT

FILE_ONLY = {"file_only": True}


class _ConsoleFilter(logging.Filter):
    """Drop records that were already rendered on the console another way."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not getattr(record, "file_only", False)


class RunLogFormatter(logging.Formatter):
    """Repeat the timestamp and level prefix on every line of a record.

    Multi-line messages (tool output, pod logs) stay greppable line by line.
    """

    def format(self, record: logging.LogRecord) -> str:
        first, *rest = super().format(record).splitlines() or [""]
        if not rest:
            return first
        prefix = self._fmt % {**record.__dict__, "message": ""}
        return "\n".join([first, *(prefix + line for line in rest)])


def run_log_path(log_dir: Path, now: datetime | None = None) -> Path:
    """Build the timestamped run log path inside *log_dir*."""
    return log_dir / (now or datetime.now()).strftime(LOG_FILE_PATTERN)


@contextmanager
def run_logging(log_dir: Path, verbose: bool = False) -> Iterator[Path]:
    """Attach console and file handlers to the package logger for one run.

    Args:
        log_dir: Directory for the persisted run log.
        verbose: Whether the console shows DEBUG records.

    Yields:
        Path of the run log file.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = run_log_path(log_dir)

    stream_handler = RichHandler(
        console=console,
        level=logging.DEBUG if verbose else logging.INFO,
        show_path=False,
        log_time_format="[%X]",
    )
    stream_handler.addFilter(_ConsoleFilter())

    file_handler = logging.FileHandler(log_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(RunLogFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

    previous_level = logger.level
    logger.setLevel(logging.DEBUG)
    logger.addHandler(stream_handler)
    logger.addHandler(file_handler)
    try:
        yield log_path
    finally:
        logger.removeHandler(stream_handler)
        logger.removeHandler(file_handler)
        file_handler.close()
        logger.setLevel(previous_level)


def stage_banner(title: str) -> None:
    """Print a stage banner on the console and mirror it into the run log."""
    console.print(Panel.fit(title, style="bold blue"))
    logger.info("==> %s", title, extra=FILE_ONLY)
