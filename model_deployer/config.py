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

"""Settings, request/profile value objects, and request resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from model_deployer import console
from model_deployer.constants import (
    DEFAULT_ACCELERATOR_LABEL,
    DEFAULT_ACCELERATOR_RESOURCE,
    DEFAULT_CLUSTER_CLI,
    DEFAULT_ENVIRONMENT,
    DEFAULT_HEALTH_PATH,
    DEFAULT_HELM_BIN,
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_TAIL_LINES,
    DEFAULT_NAMESPACE,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_REQUIRED_TOOLS,
    DEFAULT_TIMEOUT_SECONDS,
    PROFILE_TABLE,
    REL_CHART_DIR,
    REL_RBAC_DIR,
    RELEASE_NAME_PATTERN,
    SERVICE_SUFFIX,
)
from model_deployer.errors import (
    INVALID_ENVIRONMENT,
    INVALID_MODEL_TYPE,
    INVALID_NAMESPACE,
    INVALID_TIMEOUT,
    Issue,
    ValidationError,
)

NAMESPACE_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
NAMESPACE_MAX_LENGTH = 63


class ModelType(str, Enum):
    LLAMA_7B = "llama-7b"
    LLAMA_13B = "llama-13b"
    LLAMA_70B = "llama-70b"
    STABLE_DIFFUSION = "stable-diffusion"
    CODE_LLAMA = "code-llama"


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


# ============================================================================
# Configuration classes
# ============================================================================

class DeployerSettings(BaseSettings):
    """Deployment-site settings, auto-loaded from MODEL_DEPLOY_* env vars.

    Attributes:
        cluster_cli: Cluster CLI used for queries and mutations (``oc``).
        helm_bin: Helm executable name or path.
        required_tools: Executables that must be on PATH before deploying.
        project_dir: Root that relative chart and RBAC paths resolve against.
        chart_dir: Helm chart directory for the ai-models release.
        rbac_dir: Directory of access-control manifests applied per namespace.
        accelerator_label: Node label selector for accelerator-capable nodes.
        accelerator_resource: Extended resource name of one accelerator unit.
        poll_interval_seconds: Delay between rollout readiness polls.
        log_tail_lines: Pod log lines fetched when a rollout times out.
        log_dir: Directory the persisted run log is written to.
        health_path: Path probed on the public route.
        default_namespace: Namespace used when none is given.
        default_environment: Environment used when none is given.
        default_timeout: Timeout in seconds used when none is given.
    """

    model_config = SettingsConfigDict(env_prefix="MODEL_DEPLOY_", extra="ignore")

    cluster_cli: str = DEFAULT_CLUSTER_CLI
    helm_bin: str = DEFAULT_HELM_BIN
    required_tools: list[str] = Field(default_factory=lambda: list(DEFAULT_REQUIRED_TOOLS))
    project_dir: Path = Field(default_factory=Path.cwd)
    chart_dir: Path = Path(REL_CHART_DIR)
    rbac_dir: Path = Path(REL_RBAC_DIR)
    accelerator_label: str = Field(default=DEFAULT_ACCELERATOR_LABEL, pattern=r"^[\w./-]+=[\w.-]+$")
    accelerator_resource: str = DEFAULT_ACCELERATOR_RESOURCE
    poll_interval_seconds: int = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, ge=1, le=300)
    log_tail_lines: int = Field(default=DEFAULT_LOG_TAIL_LINES, ge=1, le=10000)
    log_dir: Path = Path(DEFAULT_LOG_DIR)
    health_path: str = Field(default=DEFAULT_HEALTH_PATH, pattern=r"^/")
    default_namespace: str = DEFAULT_NAMESPACE
    default_environment: str = DEFAULT_ENVIRONMENT
    default_timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS, ge=1)

    def chart_path(self) -> Path:
        return self._resolve(self.chart_dir)

    def rbac_path(self) -> Path:
        return self._resolve(self.rbac_dir)

    def _resolve(self, path: Path) -> Path:
        return path if path.is_absolute() else self.project_dir / path


# ============================================================================
# Value objects
# ============================================================================

@dataclass(frozen=True)
class ModelProfile:
    """Static deployment parameters of one model type.

    Attributes:
        model_type: Model type the profile belongs to.
        description: Human readable model name.
        chart_key: Sub-chart enabled for this model (``llama``, ``stableDiffusion``).
        workload: Deployment name created by the chart.
        route: Public route name used for external health checks.
        model_size: Value for ``<chart_key>.model.size``, or None.
        variant: Value for ``<chart_key>.model.variant``, or None.
        memory: Memory request override, or None for the chart default.
        accelerators: Accelerator count override, or None for the chart default.
    """

    model_type: ModelType
    description: str
    chart_key: str
    workload: str
    route: str
    model_size: str | None = None
    variant: str | None = None
    memory: str | None = None
    accelerators: int | None = None

    def release_name(self, environment: Environment) -> str:
        return RELEASE_NAME_PATTERN.format(model_type=self.model_type.value, environment=environment.value)

    @property
    def service(self) -> str:
        return f"{self.workload}{SERVICE_SUFFIX}"


@dataclass(frozen=True)
class DeploymentRequest:
    """Validated invocation parameters; built once by :func:`resolve_request`.

    Attributes:
        model_type: Model to deploy.
        namespace: Target namespace.
        environment: Target environment.
        dry_run: Simulate every mutating step.
        verbose: Emit debug output and pass ``--debug`` to helm.
        timeout_seconds: Rollout wait and health request budget.
    """

    model_type: ModelType
    namespace: str
    environment: Environment
    dry_run: bool = False
    verbose: bool = False
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS


# ============================================================================
# Profile loading
# ============================================================================

def _flatten_profile(name: str, table: dict, seen: tuple[str, ...] = ()) -> dict:
    """Merge a profile entry with its ``base`` chain."""
    if name in seen:
        raise ValueError(f"Circular profile base chain: {' -> '.join((*seen, name))}")
    entry = dict(table[name])
    base = entry.pop("base", None)
    if base is None:
        return entry
    merged = _flatten_profile(base, table, (*seen, name))
    merged.update(entry)
    return merged


def load_profiles(table: dict | None = None) -> dict[ModelType, ModelProfile]:
    """Build ModelProfile objects for every model type.

    Args:
        table: Raw profile table, or None for the packaged profiles.yaml.

    Returns:
        Mapping of model type to its resolved profile.

    Raises:
        LookupError: If a model type has no profile entry.
    """
    table = PROFILE_TABLE if table is None else table
    profiles: dict[ModelType, ModelProfile] = {}
    for model_type in ModelType:
        if model_type.value not in table:
            raise LookupError(f"No deployment profile defined for model type '{model_type.value}'")
        entry = _flatten_profile(model_type.value, table)
        resources = entry.get("resources") or {}
        profiles[model_type] = ModelProfile(
            model_type=model_type,
            description=entry.get("description", model_type.value),
            chart_key=entry["chart_key"],
            workload=entry["workload"],
            route=entry["route"],
            model_size=entry.get("model_size"),
            variant=entry.get("variant"),
            memory=resources.get("memory"),
            accelerators=resources.get("accelerators"),
        )
    return profiles


MODEL_PROFILES = load_profiles()


def profile_for(model_type: ModelType) -> ModelProfile:
    """Look up the profile of a validated model type.

    Raises:
        LookupError: If the profile table is missing the model type.
    """
    try:
        return MODEL_PROFILES[model_type]
    except KeyError:
        raise LookupError(f"No deployment profile loaded for '{model_type.value}'") from None


# ============================================================================
# Request resolution
# ============================================================================

def resolve_request(
    model_type: str,
    namespace: str,
    environment: str,
    dry_run: bool = False,
    verbose: bool = False,
    timeout: int | str = DEFAULT_TIMEOUT_SECONDS,
) -> tuple[DeploymentRequest, ModelProfile]:
    """Validate raw invocation parameters and resolve the model profile.

    Every violated constraint is reported, not just the first.

    Args:
        model_type: Raw model type string.
        namespace: Raw namespace string.
        environment: Raw environment string.
        dry_run: Whether to simulate mutating steps.
        verbose: Whether to enable debug output.
        timeout: Timeout in seconds; must be a positive integer.

    Returns:
        Tuple of (DeploymentRequest, ModelProfile).

    Raises:
        ValidationError: If any parameter is invalid.
    """
    violations: list[Issue] = []

    valid_models = ", ".join(m.value for m in ModelType)
    try:
        resolved_model = ModelType(model_type)
    except ValueError:
        resolved_model = None
        violations.append(Issue(INVALID_MODEL_TYPE, f"'{model_type}' (valid models: {valid_models})"))

    try:
        resolved_env = Environment(environment)
    except ValueError:
        resolved_env = None
        valid_envs = ", ".join(e.value for e in Environment)
        violations.append(Issue(INVALID_ENVIRONMENT, f"'{environment}' (valid environments: {valid_envs})"))

    if not namespace or len(namespace) > NAMESPACE_MAX_LENGTH or not NAMESPACE_PATTERN.match(namespace):
        violations.append(Issue(INVALID_NAMESPACE, f"'{namespace}' is not a valid RFC 1123 label"))

    resolved_timeout = None
    if isinstance(timeout, bool) or (isinstance(timeout, float) and not timeout.is_integer()):
        violations.append(Issue(INVALID_TIMEOUT, f"'{timeout}' is not an integer"))
    else:
        try:
            resolved_timeout = int(timeout)
        except (TypeError, ValueError):
            violations.append(Issue(INVALID_TIMEOUT, f"'{timeout}' is not an integer"))
        else:
            if resolved_timeout <= 0:
                violations.append(Issue(INVALID_TIMEOUT, f"timeout must be greater than 0, got {resolved_timeout}"))

    if violations:
        raise ValidationError(violations)

    request = DeploymentRequest(
        model_type=resolved_model,
        namespace=namespace,
        environment=resolved_env,
        dry_run=bool(dry_run),
        verbose=bool(verbose),
        timeout_seconds=resolved_timeout,
    )
    return request, profile_for(resolved_model)


# ============================================================================
# Display
# ============================================================================

def display_config(request: DeploymentRequest, profile: ModelProfile, settings: DeployerSettings) -> None:
    """Print the resolved request and the settings relevant to it."""
    console.print(Panel.fit("Configuration", style="bold blue"))
    console.print("[yellow]Request:[/yellow]")
    console.print(f"  model_type      : {request.model_type.value} ({profile.description})")
    console.print(f"  environment     : {request.environment.value}")
    console.print(f"  namespace       : {request.namespace}")
    console.print(f"  dry_run         : {request.dry_run}")
    console.print(f"  verbose         : {request.verbose}")
    console.print(f"  timeout         : {request.timeout_seconds}s")
    console.print("[yellow]Release:[/yellow]")
    console.print(f"  release         : {profile.release_name(request.environment)}")
    console.print(f"  chart           : {settings.chart_path()}")
    console.print(f"  workload        : {profile.workload}")
    console.print(f"  route           : {profile.route}")
    if profile.memory or profile.accelerators:
        console.print(f"  resources       : memory={profile.memory} accelerators={profile.accelerators}")
