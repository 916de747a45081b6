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

"""Pipeline runner composing the stages into one fail-fast deployment."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from rich.markup import escape
from rich.table import Table

from model_deployer import console, logger
from model_deployer.cluster import OpenShiftCluster
from model_deployer.config import DeployerSettings, display_config, resolve_request
from model_deployer.constants import (
    STAGE_DEPLOY,
    STAGE_HEALTH,
    STAGE_MONITOR,
    STAGE_NAMESPACE,
    STAGE_PREREQUISITES,
    STAGE_RESOLVE,
    STAGE_RESOURCES,
)
from model_deployer.errors import DeploymentError, ValidationError
from model_deployer.outcome import DeploymentOutcome, StageResult, StageStatus
from model_deployer.probe import HttpProbe
from model_deployer.release import HelmReleaseManager
from model_deployer.runlog import stage_banner
from model_deployer.stages import (
    ClusterClient,
    HealthProbe,
    PipelineContext,
    ReleaseManager,
    audit_resources,
    check_prerequisites,
    deploy_release,
    monitor_rollout,
    provision_namespace,
    verify_health,
)
from model_deployer.utils import command_exists, kubeconfig_present

StageFn = Callable[[PipelineContext], StageResult]

# Execution order after the request has been resolved.
PIPELINE_STAGES: tuple[tuple[str, str, StageFn], ...] = (
    (STAGE_PREREQUISITES, "Checking prerequisites", check_prerequisites),
    (STAGE_RESOURCES, "Checking cluster resources", audit_resources),
    (STAGE_NAMESPACE, "Setting up namespace", provision_namespace),
    (STAGE_DEPLOY, "Deploying model release", deploy_release),
    (STAGE_MONITOR, "Monitoring deployment progress", monitor_rollout),
    (STAGE_HEALTH, "Running health checks", verify_health),
)

STATUS_STYLES = {
    StageStatus.SUCCEEDED: "green",
    StageStatus.SKIPPED_DRY_RUN: "cyan",
    StageStatus.FAILED: "red",
    StageStatus.RUNNING: "yellow",
    StageStatus.PENDING: "dim",
}


@dataclass(frozen=True)
class Collaborators:
    """External systems the pipeline talks to."""

    cluster: ClusterClient
    releases: ReleaseManager
    probe: HealthProbe
    command_exists: Callable[[str], bool] = command_exists
    credential_present: Callable[[], bool] = kubeconfig_present
    sleep: Callable[[float], None] = field(default=time.sleep)
    clock: Callable[[], float] = field(default=time.monotonic)

    @classmethod
    def from_settings(cls, settings: DeployerSettings) -> Collaborators:
        return cls(
            cluster=OpenShiftCluster(settings.cluster_cli),
            releases=HelmReleaseManager(settings.helm_bin),
            probe=HttpProbe(),
        )


def _run_stage(outcome: DeploymentOutcome, name: str, title: str, fn: StageFn, ctx: PipelineContext) -> bool:
    """Run one stage and record its result; the only place that decides to halt.

    Returns:
        True if the pipeline may continue.
    """
    stage_banner(title)
    outcome.start(name)
    try:
        result = fn(ctx)
    except DeploymentError as err:
        outcome.fail(name, err)
        logger.error("%s: %s", err.code, err.message)
        if err.context:
            logger.error("Details:\n%s", err.context)
        return False
    outcome.complete(name, result)
    logger.info(result.message)
    return True


def run_deployment(
    *,
    model_type: str,
    namespace: str,
    environment: str,
    dry_run: bool = False,
    verbose: bool = False,
    timeout: int | str,
    settings: DeployerSettings | None = None,
    collaborators: Collaborators | None = None,
    outcome: DeploymentOutcome | None = None,
) -> DeploymentOutcome:
    """Resolve the request and run every stage in order, halting on the first fatal failure.

    Args:
        model_type: Raw model type.
        namespace: Raw target namespace.
        environment: Raw target environment.
        dry_run: Simulate every mutating stage.
        verbose: Emit debug output.
        timeout: Rollout and health timeout in seconds.
        settings: Deployment-site settings, or None to load from the environment.
        collaborators: External collaborators, or None for the CLI-backed adapters.
        outcome: Outcome to append to, or None for a fresh one.

    Returns:
        The deployment outcome with one record per executed stage.
    """
    settings = settings or DeployerSettings()
    outcome = outcome if outcome is not None else DeploymentOutcome()

    stage_banner("Resolving deployment request")
    outcome.start(STAGE_RESOLVE)
    try:
        request, profile = resolve_request(
            model_type=model_type,
            namespace=namespace,
            environment=environment,
            dry_run=dry_run,
            verbose=verbose,
            timeout=timeout,
        )
    except ValidationError as err:
        outcome.fail(STAGE_RESOLVE, err)
        for violation in err.violations:
            logger.error(str(violation))
        return outcome

    logger.info("Model: %s, Environment: %s, Namespace: %s",
                request.model_type.value, request.environment.value, request.namespace)
    logger.info("Dry run: %s, Verbose: %s", request.dry_run, request.verbose)
    outcome.complete(STAGE_RESOLVE, StageResult(
        StageStatus.SUCCEEDED,
        f"Resolved {request.model_type.value} for {request.environment.value}",
        data={"release": profile.release_name(request.environment)},
    ))
    display_config(request, profile, settings)

    collaborators = collaborators or Collaborators.from_settings(settings)
    ctx = PipelineContext(
        request=request,
        profile=profile,
        settings=settings,
        cluster=collaborators.cluster,
        releases=collaborators.releases,
        probe=collaborators.probe,
        command_exists=collaborators.command_exists,
        credential_present=collaborators.credential_present,
        sleep=collaborators.sleep,
        clock=collaborators.clock,
    )
    for name, title, fn in PIPELINE_STAGES:
        if not _run_stage(outcome, name, title, fn, ctx):
            break
    return outcome


def display_outcome(outcome: DeploymentOutcome) -> None:
    """Print a per-stage summary table followed by every warning."""
    table = Table(title="Deployment summary", show_lines=False)
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Message")
    for record in outcome.records:
        style = STATUS_STYLES.get(record.status, "white")
        table.add_row(record.stage, f"[{style}]{record.status.value}[/{style}]", escape(record.message))
    console.print(table)

    for stage, warning in outcome.warnings:
        console.print(f"[yellow]\u26a0\ufe0f  {stage}: {escape(str(warning))}[/yellow]")
