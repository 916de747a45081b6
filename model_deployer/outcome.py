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

"""Per-stage results and the append-only deployment outcome."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from model_deployer.errors import DeploymentError, Issue


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED_DRY_RUN = "skipped-dry-run"


TERMINAL_STATUSES = (StageStatus.SUCCEEDED, StageStatus.FAILED, StageStatus.SKIPPED_DRY_RUN)


@dataclass(frozen=True)
class StageResult:
    """What a stage function returns when it does not fail.

    Attributes:
        status: SUCCEEDED, or SKIPPED_DRY_RUN for simulated mutating stages.
        message: One-line summary of what happened.
        warnings: Non-fatal findings observed by the stage.
        detail: Verbatim tool output worth surfacing (e.g. rendered release).
        data: Structured facts gathered by the stage.
    """

    status: StageStatus
    message: str
    warnings: tuple[Issue, ...] = ()
    detail: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StageRecord:
    """Immutable snapshot of one stage in the outcome log."""

    stage: str
    status: StageStatus
    message: str
    timestamp: datetime
    warnings: tuple[Issue, ...] = ()
    error_code: str | None = None
    issues: tuple[Issue, ...] = ()
    detail: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "warnings": [{"code": w.code, "message": w.message} for w in self.warnings],
            "error_code": self.error_code,
            "issues": [{"code": i.code, "message": i.message} for i in self.issues],
            "detail": self.detail,
            "data": self.data,
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentOutcome:
    """Append-only log of stage records for a single pipeline run.

    Each executed stage owns exactly one record. A stage is opened with
    :meth:`start` and closed with :meth:`complete` or :meth:`fail`; a closed
    record is never changed again, and nothing can be started after a failure.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        self._records: list[StageRecord] = []
        self.log_path = log_path

    @property
    def records(self) -> tuple[StageRecord, ...]:
        return tuple(self._records)

    @property
    def stages(self) -> list[str]:
        return [r.stage for r in self._records]

    def record_for(self, stage: str) -> StageRecord | None:
        for record in self._records:
            if record.stage == stage:
                return record
        return None

    def start(self, stage: str) -> StageRecord:
        if self._records:
            last = self._records[-1]
            if last.status not in TERMINAL_STATUSES:
                raise RuntimeError(f"Stage '{last.stage}' is still {last.status.value}")
            if last.status == StageStatus.FAILED:
                raise RuntimeError(f"Cannot start '{stage}' after '{last.stage}' failed")
        if self.record_for(stage) is not None:
            raise RuntimeError(f"Stage '{stage}' already recorded")
        record = StageRecord(stage=stage, status=StageStatus.RUNNING, message="", timestamp=_now())
        self._records.append(record)
        return record

    def complete(self, stage: str, result: StageResult) -> StageRecord:
        if result.status not in (StageStatus.SUCCEEDED, StageStatus.SKIPPED_DRY_RUN):
            raise ValueError(f"Stage results must succeed or skip, got {result.status.value}")
        return self._close(
            stage,
            status=result.status,
            message=result.message,
            warnings=tuple(result.warnings),
            detail=result.detail,
            data=dict(result.data),
        )

    def fail(self, stage: str, error: DeploymentError) -> StageRecord:
        return self._close(
            stage,
            status=StageStatus.FAILED,
            message=error.message,
            error_code=error.code,
            issues=tuple(error.issues),
            detail=error.context,
        )

    def _close(self, stage: str, **changes: Any) -> StageRecord:
        if not self._records or self._records[-1].stage != stage:
            raise RuntimeError(f"Stage '{stage}' is not the running stage")
        current = self._records[-1]
        if current.status != StageStatus.RUNNING:
            raise RuntimeError(f"Stage '{stage}' already completed as {current.status.value}")
        closed = replace(current, timestamp=_now(), **changes)
        self._records[-1] = closed
        return closed

    @property
    def warnings(self) -> list[tuple[str, Issue]]:
        return [(r.stage, w) for r in self._records for w in r.warnings]

    @property
    def failure(self) -> StageRecord | None:
        for record in self._records:
            if record.status == StageStatus.FAILED:
                return record
        return None

    @property
    def succeeded(self) -> bool:
        return bool(self._records) and self.failure is None and all(
            r.status in (StageStatus.SUCCEEDED, StageStatus.SKIPPED_DRY_RUN) for r in self._records
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def summary(self) -> str:
        """Final status line: overall success or the first fatal failure."""
        failure = self.failure
        if failure is not None:
            return f"Deployment failed at stage '{failure.stage}': {failure.error_code}: {failure.message}"
        if not self.succeeded:
            return "Deployment did not complete"
        if self.warnings:
            return f"Deployment completed successfully with {len(self.warnings)} warning(s)"
        return "Deployment completed successfully!"

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "exit_code": self.exit_code,
            "summary": self.summary(),
            "log_path": str(self.log_path) if self.log_path else None,
            "stages": [r.to_dict() for r in self._records],
        }

    def write_report(self, path: Path) -> Path:
        """Write the outcome as JSON for a presentation layer."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2) + "\n")
        return path
