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

"""Deployment error taxonomy and warning codes.

Fatal conditions are exceptions derived from :class:`DeploymentError`; the
orchestrator is the only place that catches them. Warnings never raise, they
are attached to the stage result that observed them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class WarningCode(str, Enum):
    """Non-fatal operational conditions."""

    ACCELERATORS_SATURATED = "AcceleratorsSaturated"
    NO_HEALTHY_ENDPOINTS = "NoHealthyEndpoints"
    ROUTE_NOT_FOUND = "RouteNotFound"
    SERVICE_NOT_FOUND = "ServiceNotFound"
    VALUES_FILE_MISSING = "ValuesFileMissing"


@dataclass(frozen=True)
class Issue:
    """A single coded finding (validation violation, missing tool, warning)."""

    code: str
    message: str

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class DeploymentError(RuntimeError):
    """Base class for every fatal deployment failure.

    Attributes:
        code: Stable taxonomy code of the failure.
        context: Optional diagnostic output (tool stderr, pod logs).
    """

    code = "DeploymentError"

    def __init__(self, message: str, context: str | None = None) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    @property
    def issues(self) -> tuple[Issue, ...]:
        """Individual coded findings behind this failure, if any."""
        return ()


class ValidationError(DeploymentError):
    """Bad input; raised before any cluster call is made."""

    code = "ValidationError"

    def __init__(self, violations: list[Issue]) -> None:
        self.violations = list(violations)
        summary = "; ".join(str(v) for v in self.violations)
        super().__init__(f"Invalid deployment request: {summary}")

    @property
    def codes(self) -> list[str]:
        return [v.code for v in self.violations]

    @property
    def issues(self) -> tuple[Issue, ...]:
        return tuple(self.violations)


class PrerequisiteError(DeploymentError):
    """The local environment is not ready (missing tools or no session)."""

    code = "PrerequisiteError"

    def __init__(self, failures: list[Issue]) -> None:
        self.failures = list(failures)
        summary = "; ".join(str(f) for f in self.failures)
        super().__init__(f"Prerequisites not met: {summary}")

    @property
    def codes(self) -> list[str]:
        return [f.code for f in self.failures]

    @property
    def issues(self) -> tuple[Issue, ...]:
        return tuple(self.failures)


class NoAcceleratorCapacity(DeploymentError):
    code = "NoAcceleratorCapacity"


class NoStorageBackend(DeploymentError):
    code = "NoStorageBackend"


class ClusterQueryFailed(DeploymentError):
    code = "ClusterQueryFailed"


class NamespaceProvisionFailed(DeploymentError):
    code = "NamespaceProvisionFailed"


class ReleaseSubmissionFailed(DeploymentError):
    code = "ReleaseSubmissionFailed"


class RolloutTimeout(DeploymentError):
    """The workload did not become ready in time.

    The recent pod log excerpt is carried as ``context``.
    """

    code = "RolloutTimeout"

    @property
    def log_excerpt(self) -> str:
        return self.context or ""


class HealthCheckFailed(DeploymentError):
    code = "HealthCheckFailed"


class ClusterCommandError(RuntimeError):
    """A cluster CLI invocation failed inside the adapter."""

    def __init__(self, args: list[str], stderr: str) -> None:
        self.command = list(args)
        self.stderr = stderr
        super().__init__(f"'{' '.join(self.command)}' failed: {stderr.strip()[:500]}")


# Codes used inside Issue lists
INVALID_MODEL_TYPE = "InvalidModelType"
INVALID_ENVIRONMENT = "InvalidEnvironment"
INVALID_TIMEOUT = "InvalidTimeout"
INVALID_NAMESPACE = "InvalidNamespace"
MISSING_TOOL = "MissingTool"
NOT_AUTHENTICATED = "NotAuthenticated"
