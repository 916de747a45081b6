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

"""Pipeline stages: prerequisites, resource audit, namespace, deploy, monitor, health.

Each stage takes the shared :class:`PipelineContext` and either returns a
:class:`StageResult` (possibly carrying warnings) or raises a
:class:`DeploymentError` subclass for a fatal condition.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_any,
)

from model_deployer import console, logger
from model_deployer.cluster import NodeAccelerators
from model_deployer.config import DeployerSettings, DeploymentRequest, ModelProfile
from model_deployer.constants import LOGIN_HINT, POD_SELECTOR_KEY, ROUTE_SCHEME
from model_deployer.errors import (
    MISSING_TOOL,
    NOT_AUTHENTICATED,
    ClusterCommandError,
    ClusterQueryFailed,
    HealthCheckFailed,
    Issue,
    NamespaceProvisionFailed,
    NoAcceleratorCapacity,
    NoStorageBackend,
    PrerequisiteError,
    ReleaseSubmissionFailed,
    RolloutTimeout,
    WarningCode,
)
from model_deployer.outcome import StageResult, StageStatus
from model_deployer.release import ReleaseResult, ReleaseSpec, build_release_spec
from model_deployer.runlog import FILE_ONLY
from model_deployer.utils import command_exists, kubeconfig_present


# ============================================================================
# Collaborator contracts
# ============================================================================

class ClusterClient(Protocol):
    def current_user(self) -> str | None: ...
    def accelerator_nodes(self, label: str, resource: str) -> list[NodeAccelerators]: ...
    def storage_classes(self) -> list[str]: ...
    def namespace_exists(self, namespace: str) -> bool: ...
    def create_namespace(self, namespace: str) -> None: ...
    def apply_manifests(self, path: Path, namespace: str) -> str: ...
    def deployment_ready(self, name: str, namespace: str) -> bool: ...
    def pod_logs(self, selector: str, namespace: str, tail: int) -> str: ...
    def service_exists(self, name: str, namespace: str) -> bool: ...
    def ready_endpoint_count(self, service: str, namespace: str) -> int: ...
    def route_host(self, route: str, namespace: str) -> str | None: ...


class ReleaseManager(Protocol):
    def submit(self, spec: ReleaseSpec) -> ReleaseResult: ...


class HealthProbe(Protocol):
    def check(self, url: str, timeout: float) -> bool: ...


@dataclass(frozen=True)
class PipelineContext:
    """Everything a stage needs; shared read-only across the run.

    Attributes:
        request: Validated deployment request.
        profile: Profile of the requested model type.
        settings: Deployment-site settings.
        cluster: Cluster query collaborator.
        releases: Release manager collaborator.
        probe: HTTP probe collaborator.
        command_exists: Predicate telling whether an executable is on PATH.
        credential_present: Predicate telling whether a session credential exists.
        sleep: Sleep function used between rollout polls.
        clock: Monotonic clock the rollout deadline is measured with.
    """

    request: DeploymentRequest
    profile: ModelProfile
    settings: DeployerSettings
    cluster: ClusterClient
    releases: ReleaseManager
    probe: HealthProbe
    command_exists: Callable[[str], bool] = command_exists
    credential_present: Callable[[], bool] = kubeconfig_present
    sleep: Callable[[float], None] = field(default=time.sleep)
    clock: Callable[[], float] = field(default=time.monotonic)


def _warn(code: WarningCode, message: str) -> Issue:
    logger.warning(message)
    return Issue(code.value, message)


# ============================================================================
# Prerequisites
# ============================================================================

def check_prerequisites(ctx: PipelineContext) -> StageResult:
    """Verify required tools, the session credential, and an active login.

    Every capability is checked before failing so the full remediation
    list is reported at once.

    Raises:
        PrerequisiteError: If any tool is missing or no session is active.
    """
    failures: list[Issue] = []
    for tool in ctx.settings.required_tools:
        if ctx.command_exists(tool):
            logger.debug("Found %s", tool)
            continue
        message = f"{tool} is not installed or not in PATH"
        logger.error(message)
        failures.append(Issue(MISSING_TOOL, message))

    if not ctx.credential_present():
        message = "No kubeconfig session credential found"
        logger.error(message)
        failures.append(Issue(MISSING_TOOL, message))

    user = ctx.cluster.current_user()
    if user is None:
        message = f"Not logged in to OpenShift cluster. {LOGIN_HINT}"
        logger.error(message)
        failures.append(Issue(NOT_AUTHENTICATED, message))

    if failures:
        raise PrerequisiteError(failures)
    return StageResult(
        StageStatus.SUCCEEDED,
        f"Prerequisites check passed (logged in as {user})",
        data={"user": user},
    )


# ============================================================================
# Resource audit
# ============================================================================

class ResourceVerdict(str, Enum):
    OK = "ok"
    WARN = "warn"
    FATAL = "fatal"


@dataclass(frozen=True)
class ResourceSnapshot:
    """Cluster capacity observed once per run.

    Attributes:
        gpu_node_count: Number of accelerator-capable nodes.
        available_accelerators: Allocatable units not requested by active pods.
        storage_class_count: Number of storage classes.
        allocatable_accelerators: Total allocatable units on capable nodes.
    """

    gpu_node_count: int
    available_accelerators: int
    storage_class_count: int
    allocatable_accelerators: int = 0

    @classmethod
    def from_nodes(cls, nodes: list[NodeAccelerators], storage_class_count: int) -> ResourceSnapshot:
        return cls(
            gpu_node_count=len(nodes),
            available_accelerators=sum(n.available for n in nodes),
            storage_class_count=storage_class_count,
            allocatable_accelerators=sum(n.allocatable for n in nodes),
        )

    def verdict(self) -> ResourceVerdict:
        if self.gpu_node_count == 0 or self.storage_class_count == 0:
            return ResourceVerdict.FATAL
        if self.available_accelerators == 0:
            return ResourceVerdict.WARN
        return ResourceVerdict.OK

    def as_dict(self) -> dict[str, int]:
        return {
            "gpu_node_count": self.gpu_node_count,
            "available_accelerators": self.available_accelerators,
            "allocatable_accelerators": self.allocatable_accelerators,
            "storage_class_count": self.storage_class_count,
        }


def take_resource_snapshot(ctx: PipelineContext) -> ResourceSnapshot:
    """Query accelerator nodes and storage classes.

    Raises:
        ClusterQueryFailed: If the cluster cannot be queried.
    """
    settings = ctx.settings
    try:
        nodes = ctx.cluster.accelerator_nodes(settings.accelerator_label, settings.accelerator_resource)
        storage_classes = ctx.cluster.storage_classes()
    except ClusterCommandError as err:
        raise ClusterQueryFailed("Failed to query cluster resources", context=err.stderr) from err
    return ResourceSnapshot.from_nodes(nodes, len(storage_classes))


def audit_resources(ctx: PipelineContext) -> StageResult:
    """Classify cluster capacity as sufficient, saturated, or absent.

    Raises:
        NoAcceleratorCapacity: If no accelerator-capable node exists.
        NoStorageBackend: If no storage class exists.
        ClusterQueryFailed: If the cluster cannot be queried.
    """
    snapshot = take_resource_snapshot(ctx)
    data = snapshot.as_dict()

    if snapshot.gpu_node_count == 0:
        raise NoAcceleratorCapacity(
            f"No GPU nodes available in cluster (label {ctx.settings.accelerator_label})"
        )
    logger.info("Found %d GPU nodes", snapshot.gpu_node_count)

    if snapshot.storage_class_count == 0:
        raise NoStorageBackend("No storage classes available")
    logger.info("Found %d storage classes", snapshot.storage_class_count)

    warnings: list[Issue] = []
    if snapshot.verdict() == ResourceVerdict.WARN:
        warnings.append(_warn(
            WarningCode.ACCELERATORS_SATURATED,
            f"No GPUs currently available ({snapshot.allocatable_accelerators} allocatable, all requested)",
        ))
    else:
        logger.info("Available GPUs: %d", snapshot.available_accelerators)

    return StageResult(
        StageStatus.SUCCEEDED,
        "Resource check completed",
        warnings=tuple(warnings),
        data=data,
    )


# ============================================================================
# Namespace
# ============================================================================

def provision_namespace(ctx: PipelineContext) -> StageResult:
    """Ensure the namespace exists and (re)apply the access-control policy.

    Raises:
        NamespaceProvisionFailed: If the namespace or policy cannot be applied.
    """
    namespace = ctx.request.namespace
    dry_run = ctx.request.dry_run
    rbac_path = ctx.settings.rbac_path()

    try:
        existed = ctx.cluster.namespace_exists(namespace)
    except ClusterCommandError as err:
        raise NamespaceProvisionFailed(f"Failed to look up namespace {namespace}", context=err.stderr) from err

    if existed:
        logger.info("Namespace %s already exists", namespace)
    elif dry_run:
        logger.info("[DRY RUN] Would create namespace: %s", namespace)
    else:
        try:
            ctx.cluster.create_namespace(namespace)
        except ClusterCommandError as err:
            raise NamespaceProvisionFailed(f"Failed to create namespace {namespace}", context=err.stderr) from err
        logger.info("Created namespace: %s", namespace)

    if not rbac_path.exists():
        raise NamespaceProvisionFailed(f"RBAC policy path not found: {rbac_path}")

    logger.info("Configuring RBAC...")
    if dry_run:
        logger.info("[DRY RUN] Would apply RBAC configurations from %s", rbac_path)
    else:
        try:
            ctx.cluster.apply_manifests(rbac_path, namespace)
        except ClusterCommandError as err:
            raise NamespaceProvisionFailed(
                f"Failed to apply RBAC policy to namespace {namespace}", context=err.stderr,
            ) from err
        logger.info("RBAC configured")

    data = {"namespace": namespace, "existed": existed, "created": not existed and not dry_run}
    if dry_run:
        return StageResult(StageStatus.SKIPPED_DRY_RUN, f"[DRY RUN] Namespace {namespace} setup simulated", data=data)
    return StageResult(StageStatus.SUCCEEDED, f"Namespace {namespace} ready", data=data)


# ============================================================================
# Release
# ============================================================================

def deploy_release(ctx: PipelineContext) -> StageResult:
    """Submit the release; under dry-run helm only renders and validates it.

    Raises:
        ReleaseSubmissionFailed: If the release manager rejects the release.
    """
    request = ctx.request
    logger.info("Deploying model: %s", request.model_type.value)

    spec, warnings = build_release_spec(request, ctx.profile, ctx.settings)
    for warning in warnings:
        logger.warning(warning.message)
    if request.dry_run:
        logger.info("[DRY RUN] Helm deployment command:")
        logger.info("%s %s", ctx.settings.helm_bin, " ".join(spec.to_helm_args()))

    result = ctx.releases.submit(spec)
    if not result.ok:
        logger.error("Model deployment failed")
        raise ReleaseSubmissionFailed(f"Helm release {spec.name} failed", context=result.output)

    data = {
        "release": spec.name,
        "values_file": str(spec.values_file),
        "overrides": spec.override_map,
    }
    if request.dry_run:
        console.print(result.output, markup=False, highlight=False)
        logger.debug("[DRY RUN] Rendered release output:\n%s", result.output, extra=FILE_ONLY)
        return StageResult(
            StageStatus.SKIPPED_DRY_RUN,
            f"[DRY RUN] Release {spec.name} validated",
            warnings=tuple(warnings),
            detail=result.output,
            data=data,
        )
    logger.info("Model deployment completed")
    return StageResult(
        StageStatus.SUCCEEDED,
        f"Release {spec.name} deployed",
        warnings=tuple(warnings),
        detail=result.output or None,
        data=data,
    )


# ============================================================================
# Rollout
# ============================================================================

def wait_for_rollout(ctx: PipelineContext) -> bool:
    """Poll the workload until it is ready or the timeout elapses.

    The sleep before the next poll is clipped to the time left, so the wait
    never runs past the deadline; a final poll happens at the deadline.

    Returns:
        True if the workload became ready, False on timeout.
    """
    timeout = ctx.request.timeout_seconds
    interval = ctx.settings.poll_interval_seconds
    workload = ctx.profile.workload
    namespace = ctx.request.namespace
    max_polls = math.ceil(timeout / interval) + 1
    deadline = ctx.clock() + timeout

    def _remaining() -> float:
        return max(deadline - ctx.clock(), 0.0)

    def _deadline_reached(retry_state: RetryCallState) -> bool:
        return _remaining() <= 0

    def _wait_until_next_poll(retry_state: RetryCallState) -> float:
        return min(float(interval), _remaining())

    def _poll() -> bool:
        ready = ctx.cluster.deployment_ready(workload, namespace)
        logger.debug("Deployment %s ready: %s", workload, ready)
        return ready

    retrying = Retrying(
        stop=stop_any(_deadline_reached, stop_after_attempt(max_polls)),
        wait=_wait_until_next_poll,
        retry=retry_if_result(lambda ready: not ready) | retry_if_exception_type(ClusterCommandError),
        sleep=ctx.sleep,
    )
    try:
        return retrying(_poll)
    except RetryError:
        return False


def collect_log_excerpt(ctx: PipelineContext) -> str:
    """Fetch the most recent pod log lines of the workload, never empty."""
    selector = f"{POD_SELECTOR_KEY}={ctx.profile.workload}"
    try:
        excerpt = ctx.cluster.pod_logs(selector, ctx.request.namespace, ctx.settings.log_tail_lines)
    except ClusterCommandError as err:
        excerpt = f"(failed to fetch pod logs for {selector}: {err.stderr.strip()})"
    if not excerpt.strip():
        excerpt = f"(no log output from pods matching {selector})"
    return excerpt


def monitor_rollout(ctx: PipelineContext) -> StageResult:
    """Wait for the rollout, then check the service has ready endpoints.

    Raises:
        RolloutTimeout: If the workload is not ready within the timeout.
    """
    if ctx.request.dry_run:
        logger.info("[DRY RUN] Skipping deployment monitoring")
        return StageResult(StageStatus.SKIPPED_DRY_RUN, "[DRY RUN] Deployment monitoring skipped")

    workload = ctx.profile.workload
    namespace = ctx.request.namespace
    logger.info("Waiting for deployment %s to be ready...", workload)
    if not wait_for_rollout(ctx):
        logger.error("Deployment %s failed to become ready within %ds", workload, ctx.request.timeout_seconds)
        raise RolloutTimeout(
            f"Deployment {workload} not ready after {ctx.request.timeout_seconds}s",
            context=collect_log_excerpt(ctx),
        )
    logger.info("Deployment %s is ready", workload)

    logger.info("Verifying service endpoints...")
    service = ctx.profile.service
    warnings: list[Issue] = []
    endpoints = 0
    try:
        if not ctx.cluster.service_exists(service, namespace):
            warnings.append(_warn(WarningCode.SERVICE_NOT_FOUND, f"Service {service} not found"))
        else:
            endpoints = ctx.cluster.ready_endpoint_count(service, namespace)
            if endpoints > 0:
                logger.info("Service endpoints are healthy (%d endpoints)", endpoints)
            else:
                warnings.append(_warn(
                    WarningCode.NO_HEALTHY_ENDPOINTS, f"No healthy endpoints found for service {service}",
                ))
    except ClusterCommandError as err:
        warnings.append(_warn(
            WarningCode.NO_HEALTHY_ENDPOINTS, f"Could not read endpoints of service {service}: {err.stderr.strip()}",
        ))

    return StageResult(
        StageStatus.SUCCEEDED,
        f"Deployment {workload} is ready",
        warnings=tuple(warnings),
        data={"workload": workload, "service": service, "endpoints": endpoints},
    )


# ============================================================================
# Health
# ============================================================================

def verify_health(ctx: PipelineContext) -> StageResult:
    """Probe the public route of the workload.

    Raises:
        HealthCheckFailed: If the route exists but the health request fails.
    """
    if ctx.request.dry_run:
        logger.info("[DRY RUN] Skipping health checks")
        return StageResult(StageStatus.SKIPPED_DRY_RUN, "[DRY RUN] Health checks skipped")

    route = ctx.profile.route
    try:
        host = ctx.cluster.route_host(route, ctx.request.namespace)
    except ClusterCommandError as err:
        logger.debug("Route lookup failed: %s", err)
        host = None
    if host is None:
        warning = _warn(WarningCode.ROUTE_NOT_FOUND, f"Route {route} not found, skipping external health check")
        return StageResult(
            StageStatus.SUCCEEDED,
            "External health check skipped",
            warnings=(warning,),
            data={"route": route},
        )

    url = f"{ROUTE_SCHEME}://{host}{ctx.settings.health_path}"
    logger.info("Testing health endpoint: %s", url)
    if not ctx.probe.check(url, timeout=ctx.request.timeout_seconds):
        logger.error("Health check failed")
        raise HealthCheckFailed(f"Health check failed for {url}")
    logger.info("Health check passed")
    return StageResult(StageStatus.SUCCEEDED, "Health check passed", data={"route": route, "url": url})
