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

"""Release specification building and the helm release manager adapter."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import sh

from model_deployer import logger
from model_deployer.config import DeployerSettings, DeploymentRequest, ModelProfile
from model_deployer.constants import (
    DEFAULT_HELM_BIN,
    SUBCHART_KEYS,
    VALUES_FILE_DEFAULT,
    VALUES_FILE_PATTERN,
)
from model_deployer.errors import Issue, WarningCode
from model_deployer.utils import escape_helm_key, format_helm_overrides

# Grace period on top of helm's own --timeout before the process is killed.
HELM_PROCESS_GRACE_SECONDS = 60


@dataclass(frozen=True)
class ReleaseSpec:
    """Declarative release request handed to the release manager.

    Attributes:
        name: Release name; one release per model type and environment.
        chart_path: Chart directory.
        namespace: Namespace the release is installed into.
        values_file: Values file passed with ``--values``.
        overrides: Ordered ``--set`` overrides.
        timeout_seconds: Helm ``--timeout``.
        wait: Whether helm waits for resources to become ready.
        dry_run: Render and validate only, never mutate the cluster.
        debug: Pass ``--debug`` to helm.
    """

    name: str
    chart_path: Path
    namespace: str
    values_file: Path
    overrides: tuple[tuple[str, str], ...]
    timeout_seconds: int
    wait: bool = True
    dry_run: bool = False
    debug: bool = False

    @property
    def override_map(self) -> dict[str, str]:
        return dict(self.overrides)

    def to_helm_args(self) -> list[str]:
        """Build the ``helm upgrade --install`` argument list."""
        args = [
            "upgrade", "--install", self.name,
            str(self.chart_path),
            "--namespace", self.namespace,
            "--values", str(self.values_file),
            "--timeout", f"{self.timeout_seconds}s",
        ]
        if self.wait:
            args.append("--wait")
        args += format_helm_overrides(list(self.overrides))
        if self.dry_run:
            args.append("--dry-run")
        if self.debug:
            args.append("--debug")
        return args


@dataclass(frozen=True)
class ReleaseResult:
    ok: bool
    output: str


def model_overrides(profile: ModelProfile, accelerator_resource: str) -> list[tuple[str, str]]:
    """Translate a model profile into ordered helm overrides.

    The profile's sub-chart is enabled with its size and variant; every other
    known sub-chart is disabled. Resource overrides come last.

    Args:
        profile: Resolved model profile.
        accelerator_resource: Extended resource name of one accelerator.

    Returns:
        List of (key, value) pairs.
    """
    overrides: list[tuple[str, str]] = []
    for key in SUBCHART_KEYS:
        enabled = key == profile.chart_key
        overrides.append((f"{key}.enabled", "true" if enabled else "false"))
        if not enabled:
            continue
        if profile.model_size:
            overrides.append((f"{key}.model.size", profile.model_size))
        if profile.variant:
            overrides.append((f"{key}.model.variant", profile.variant))

    requests_key = f"{profile.chart_key}.resources.requests"
    if profile.memory:
        overrides.append((f"{requests_key}.memory", profile.memory))
    if profile.accelerators:
        overrides.append((f"{requests_key}.{escape_helm_key(accelerator_resource)}", str(profile.accelerators)))
    return overrides


def resolve_values_file(chart_path: Path, environment: str) -> tuple[Path, list[Issue]]:
    """Pick the environment values file, falling back to the chart default."""
    env_values = chart_path / VALUES_FILE_PATTERN.format(environment=environment)
    if env_values.is_file():
        return env_values, []
    warning = Issue(
        WarningCode.VALUES_FILE_MISSING.value,
        f"Environment-specific values file not found: {env_values}; using {VALUES_FILE_DEFAULT}",
    )
    return chart_path / VALUES_FILE_DEFAULT, [warning]


def build_release_spec(
    request: DeploymentRequest,
    profile: ModelProfile,
    settings: DeployerSettings,
) -> tuple[ReleaseSpec, list[Issue]]:
    """Build the release specification for a request.

    Args:
        request: Validated deployment request.
        profile: Profile of the requested model type.
        settings: Deployment-site settings (chart location, resource name).

    Returns:
        Tuple of (ReleaseSpec, warnings).
    """
    chart_path = settings.chart_path()
    values_file, warnings = resolve_values_file(chart_path, request.environment.value)
    spec = ReleaseSpec(
        name=profile.release_name(request.environment),
        chart_path=chart_path,
        namespace=request.namespace,
        values_file=values_file,
        overrides=tuple(model_overrides(profile, settings.accelerator_resource)),
        timeout_seconds=request.timeout_seconds,
        wait=True,
        dry_run=request.dry_run,
        debug=request.verbose,
    )
    return spec, warnings


def _decode(stream: bytes | str | None) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode(errors="replace")
    return stream


class HelmReleaseManager:
    """Submits releases with ``helm upgrade --install``.

    Upgrading in place keeps one release per name however often the same
    model and environment are submitted.
    """

    def __init__(self, helm_bin: str = DEFAULT_HELM_BIN) -> None:
        self.helm_bin = helm_bin

    def submit(self, spec: ReleaseSpec) -> ReleaseResult:
        args = spec.to_helm_args()
        logger.debug("$ %s %s", self.helm_bin, " ".join(args))
        try:
            helm = sh.Command(self.helm_bin)
            result = helm(*args, _timeout=spec.timeout_seconds + HELM_PROCESS_GRACE_SECONDS)
        except sh.ErrorReturnCode as err:
            return ReleaseResult(ok=False, output=_decode(err.stdout) + _decode(err.stderr))
        except sh.CommandNotFound:
            return ReleaseResult(ok=False, output=f"{self.helm_bin}: command not found")
        except sh.TimeoutException:
            return ReleaseResult(ok=False, output=f"{self.helm_bin} did not finish within the release timeout")
        return ReleaseResult(ok=True, output=str(result))
