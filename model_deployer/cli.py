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

"""
cli.py - Deploy AI models to an OpenShift cluster.

Validates the cluster, provisions the namespace, submits the Helm release,
waits for the rollout, and checks the public health endpoint.

Environment Variables:
    Deployment-site settings can be overridden via MODEL_DEPLOY_* variables:
    - MODEL_DEPLOY_CLUSTER_CLI (default: oc)
    - MODEL_DEPLOY_CHART_DIR (default: deployments/helm/ai-models)
    - MODEL_DEPLOY_RBAC_DIR (default: deployments/openshift/rbac)
    - MODEL_DEPLOY_ACCELERATOR_LABEL (default: accelerator=h100)
    - MODEL_DEPLOY_LOG_DIR (default: /tmp)
    - And more (see DeployerSettings for the full list)

Examples:
    # Deploy LLaMA 7B to staging
    model-deployer -m llama-7b -e staging

    # Deploy Stable Diffusion to production with verbose output
    model-deployer -m stable-diffusion -e production -v

    # Perform dry run
    model-deployer -m llama-13b -d
"""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from model_deployer import console, logger
from model_deployer.config import MODEL_PROFILES, DeployerSettings
from model_deployer.constants import DEFAULT_MODEL_TYPE, ENVIRONMENTS, MODEL_TYPES
from model_deployer.orchestrator import Collaborators, display_outcome, run_deployment
from model_deployer.outcome import DeploymentOutcome
from model_deployer.runlog import run_logging
from model_deployer.utils import resolve_bool_flag

SUPPORTED_MODELS = "\n\n".join(
    f"{profile.model_type.value}: {profile.description}" for profile in MODEL_PROFILES.values()
)

app = typer.Typer(
    help="Deploy AI models to OpenShift cluster with comprehensive validation and monitoring.",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.command(epilog=f"SUPPORTED MODELS:\n\n{SUPPORTED_MODELS}")
def deploy(
    model_type: str = typer.Option(
        DEFAULT_MODEL_TYPE, "--model-type", "-m", help=f"Model type to deploy ({', '.join(MODEL_TYPES)})"),
    namespace: str | None = typer.Option(
        None, "--namespace", "-n", help="Kubernetes namespace (default: ai-models)"),
    environment: str | None = typer.Option(
        None, "--environment", "-e", help=f"Environment ({', '.join(ENVIRONMENTS)})"),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-d", help="Perform dry run without actual deployment"),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose output"),
    timeout: int | None = typer.Option(
        None, "--timeout", "-t", help="Deployment timeout in seconds (default: 600)"),
    chart_dir: Path | None = typer.Option(
        None, "--chart-dir", help="Helm chart directory (overrides MODEL_DEPLOY_CHART_DIR)"),
    log_dir: Path | None = typer.Option(
        None, "--log-dir", help="Directory for the run log (overrides MODEL_DEPLOY_LOG_DIR)"),
    report: Path | None = typer.Option(
        None, "--report", help="Write the deployment outcome as JSON to this path"),
) -> None:
    """Deploy an AI model release and verify it end to end."""
    dry_run = resolve_bool_flag("dry_run", dry_run)
    verbose = resolve_bool_flag("verbose", verbose)

    settings = DeployerSettings()
    overrides: dict = {}
    if chart_dir is not None:
        overrides["chart_dir"] = chart_dir
    if log_dir is not None:
        overrides["log_dir"] = log_dir
    if overrides:
        settings = settings.model_copy(update=overrides)

    with run_logging(settings.log_dir, verbose=verbose) as log_path:
        logger.info("Starting AI model deployment")
        outcome = run_deployment(
            model_type=model_type,
            namespace=namespace if namespace is not None else settings.default_namespace,
            environment=environment if environment is not None else settings.default_environment,
            dry_run=dry_run,
            verbose=verbose,
            timeout=timeout if timeout is not None else settings.default_timeout,
            settings=settings,
            collaborators=Collaborators.from_settings(settings),
            outcome=DeploymentOutcome(log_path=log_path),
        )
        display_outcome(outcome)
        if report is not None:
            outcome.write_report(report)
            logger.info("Deployment report written to: %s", report)
        logger.info("Deployment log saved to: %s", log_path)
        if outcome.succeeded:
            logger.info(outcome.summary())
        else:
            logger.error(outcome.summary())

    raise typer.Exit(code=outcome.exit_code)


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
