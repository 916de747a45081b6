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

"""Constants and profile table loading."""

from __future__ import annotations

from pathlib import Path

import yaml

PACKAGE_DIR = Path(__file__).resolve().parent


def load_profile_table() -> dict:
    """Load the raw model profile table from profiles.yaml.

    Returns:
        Parsed YAML content keyed by model type.
    """
    profiles_file = PACKAGE_DIR / "profiles.yaml"
    with open(profiles_file) as f:
        return yaml.safe_load(f)


PROFILE_TABLE = load_profile_table()


# -- Closed enumerations --
MODEL_TYPES = ("llama-7b", "llama-13b", "llama-70b", "stable-diffusion", "code-llama")
ENVIRONMENTS = ("dev", "staging", "production")

# -- Invocation defaults --
DEFAULT_MODEL_TYPE = "llama-7b"
DEFAULT_NAMESPACE = "ai-models"
DEFAULT_ENVIRONMENT = "staging"
DEFAULT_TIMEOUT_SECONDS = 600

# -- Tooling --
DEFAULT_CLUSTER_CLI = "oc"
DEFAULT_HELM_BIN = "helm"
DEFAULT_REQUIRED_TOOLS = ("oc", "kubectl", "helm", "jq")
KUBECONFIG_ENV = "KUBECONFIG"
DEFAULT_KUBECONFIG = Path.home() / ".kube" / "config"
LOGIN_HINT = "Please run: oc login <server-url>"

# -- Relative paths (resolved against the project directory) --
REL_CHART_DIR = "deployments/helm/ai-models"
REL_RBAC_DIR = "deployments/openshift/rbac"
VALUES_FILE_DEFAULT = "values.yaml"
VALUES_FILE_PATTERN = "values-{environment}.yaml"

# -- Cluster labels and resources --
DEFAULT_ACCELERATOR_LABEL = "accelerator=h100"
DEFAULT_ACCELERATOR_RESOURCE = "nvidia.com/gpu"
POD_SELECTOR_KEY = "app"
SERVICE_SUFFIX = "-service"

# -- Helm --
RELEASE_NAME_PATTERN = "{model_type}-{environment}"
SUBCHART_KEYS = ("llama", "stableDiffusion")

# -- Monitoring & health --
DEFAULT_POLL_INTERVAL_SECONDS = 5
DEFAULT_LOG_TAIL_LINES = 50
DEFAULT_HEALTH_PATH = "/health"
ROUTE_SCHEME = "https"

# -- Run log --
DEFAULT_LOG_DIR = "/tmp"
LOG_FILE_PATTERN = "model-deployment-%Y%m%d-%H%M%S.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# -- Stage names, in execution order --
STAGE_RESOLVE = "resolve"
STAGE_PREREQUISITES = "prerequisites"
STAGE_RESOURCES = "resource-audit"
STAGE_NAMESPACE = "namespace"
STAGE_DEPLOY = "deploy"
STAGE_MONITOR = "monitor"
STAGE_HEALTH = "health"
