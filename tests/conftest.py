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

"""Shared fixtures and in-memory collaborators for the deployment pipeline."""

from __future__ import annotations

from pathlib import Path

import pytest

from model_deployer.cluster import NodeAccelerators
from model_deployer.config import DeployerSettings, resolve_request
from model_deployer.errors import ClusterCommandError
from model_deployer.orchestrator import Collaborators
from model_deployer.release import ReleaseResult, ReleaseSpec
from model_deployer.stages import PipelineContext

MUTATING_CALLS = {"create_namespace", "apply_manifests"}


class FakeCluster:
    """Scriptable cluster that records every call it receives."""

    def __init__(self) -> None:
        self.user: str | None = "developer"
        self.nodes = [
            NodeAccelerators("gpu-node-0", allocatable=1),
            NodeAccelerators("gpu-node-1", allocatable=1),
            NodeAccelerators("gpu-node-2", allocatable=0),
        ]
        self.storage = ["gp3-csi"]
        self.namespaces: set[str] = set()
        self.ready_after: int | None = 1
        self.logs = "INFO loading weights\nERROR CUDA out of memory\n"
        self.services = {"llama-7b-inference-service", "stable-diffusion-xl-service"}
        self.endpoints = {"llama-7b-inference-service": 2, "stable-diffusion-xl-service": 1}
        self.routes = {
            "llama-7b-route": "llama.apps.example.com",
            "stable-diffusion-route": "sd.apps.example.com",
        }
        self.query_error: str | None = None
        self.create_error: str | None = None
        self.apply_error: str | None = None
        self.poll_error: str | None = None
        self.calls: list[tuple[str, tuple]] = []
        self.polls = 0

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    @property
    def mutations(self) -> list[tuple[str, tuple]]:
        return [call for call in self.calls if call[0] in MUTATING_CALLS]

    def current_user(self):
        self._record("current_user")
        return self.user

    def accelerator_nodes(self, label, resource):
        self._record("accelerator_nodes", label, resource)
        if self.query_error:
            raise ClusterCommandError(["oc", "get", "nodes"], self.query_error)
        return list(self.nodes)

    def storage_classes(self):
        self._record("storage_classes")
        return list(self.storage)

    def namespace_exists(self, namespace):
        self._record("namespace_exists", namespace)
        return namespace in self.namespaces

    def create_namespace(self, namespace):
        self._record("create_namespace", namespace)
        if self.create_error:
            raise ClusterCommandError(["oc", "create", "namespace", namespace], self.create_error)
        self.namespaces.add(namespace)

    def apply_manifests(self, path, namespace):
        self._record("apply_manifests", path, namespace)
        if self.apply_error:
            raise ClusterCommandError(["oc", "apply", "-f", str(path)], self.apply_error)
        return "rolebinding.rbac.authorization.k8s.io/model-server configured"

    def deployment_ready(self, name, namespace):
        self._record("deployment_ready", name, namespace)
        self.polls += 1
        if self.poll_error:
            raise ClusterCommandError(["oc", "get", "deployment", name], self.poll_error)
        return self.ready_after is not None and self.polls >= self.ready_after

    def pod_logs(self, selector, namespace, tail):
        self._record("pod_logs", selector, namespace, tail)
        return self.logs

    def service_exists(self, name, namespace):
        self._record("service_exists", name, namespace)
        return name in self.services

    def ready_endpoint_count(self, service, namespace):
        self._record("ready_endpoint_count", service, namespace)
        return self.endpoints.get(service, 0)

    def route_host(self, route, namespace):
        self._record("route_host", route, namespace)
        return self.routes.get(route)


class FakeReleaseManager:
    """Keeps one release per name, like ``helm upgrade --install``."""

    def __init__(self) -> None:
        self.ok = True
        self.error_output = "Error: UPGRADE FAILED: timed out waiting for the condition"
        self.submissions: list[ReleaseSpec] = []
        self.releases: dict[str, ReleaseSpec] = {}
        self.revisions: dict[str, int] = {}

    def submit(self, spec: ReleaseSpec) -> ReleaseResult:
        self.submissions.append(spec)
        if not self.ok:
            return ReleaseResult(ok=False, output=self.error_output)
        if spec.dry_run:
            return ReleaseResult(ok=True, output=f"NAME: {spec.name}\nSTATUS: pending-install\nMANIFEST:\n---")
        self.releases[spec.name] = spec
        self.revisions[spec.name] = self.revisions.get(spec.name, 0) + 1
        return ReleaseResult(ok=True, output=f"Release \"{spec.name}\" has been upgraded.")


class FakeProbe:
    def __init__(self) -> None:
        self.healthy = True
        self.requests: list[tuple[str, float]] = []

    def check(self, url, timeout):
        self.requests.append((url, timeout))
        return self.healthy


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    chart = tmp_path / "deployments" / "helm" / "ai-models"
    chart.mkdir(parents=True)
    (chart / "Chart.yaml").write_text("apiVersion: v2\nname: ai-models\nversion: 0.1.0\n")
    (chart / "values.yaml").write_text("llama:\n  enabled: false\n")
    (chart / "values-staging.yaml").write_text("llama:\n  replicas: 1\n")
    (chart / "values-production.yaml").write_text("llama:\n  replicas: 3\n")
    rbac = tmp_path / "deployments" / "openshift" / "rbac"
    rbac.mkdir(parents=True)
    (rbac / "rolebinding.yaml").write_text("kind: RoleBinding\n")
    return tmp_path


@pytest.fixture
def settings(project_dir: Path) -> DeployerSettings:
    return DeployerSettings(project_dir=project_dir, log_dir=project_dir / "logs", poll_interval_seconds=5)


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def releases() -> FakeReleaseManager:
    return FakeReleaseManager()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def collaborators(cluster, releases, probe, sleeps) -> Collaborators:
    return Collaborators(
        cluster=cluster,
        releases=releases,
        probe=probe,
        command_exists=lambda cmd: True,
        credential_present=lambda: True,
        sleep=sleeps.append,
    )


@pytest.fixture
def make_ctx(settings, collaborators):
    """Build a PipelineContext for the given raw request parameters."""

    def _make(
        model_type: str = "llama-7b",
        environment: str = "staging",
        namespace: str = "ai-models",
        dry_run: bool = False,
        timeout: int = 600,
        **overrides,
    ) -> PipelineContext:
        request, profile = resolve_request(
            model_type=model_type,
            namespace=namespace,
            environment=environment,
            dry_run=dry_run,
            timeout=timeout,
        )
        fields = dict(
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
        fields.update(overrides)
        return PipelineContext(**fields)

    return _make
