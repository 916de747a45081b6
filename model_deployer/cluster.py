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

"""Cluster query adapter backed by the ``oc``/``kubectl`` CLI.

All text handling of CLI output lives here; callers receive structured data.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from model_deployer import logger
from model_deployer.constants import DEFAULT_CLUSTER_CLI
from model_deployer.errors import ClusterCommandError
from model_deployer.utils import run_cli

NOT_FOUND_MARKERS = ("NotFound", "not found")
ACTIVE_POD_SELECTOR = "status.phase!=Succeeded,status.phase!=Failed"


@dataclass(frozen=True)
class NodeAccelerators:
    """Accelerator accounting for one accelerator-capable node.

    Attributes:
        name: Node name.
        allocatable: Accelerator units the node offers to workloads.
        requested: Accelerator units requested by active pods on the node.
    """

    name: str
    allocatable: int
    requested: int = 0

    @property
    def available(self) -> int:
        return max(self.allocatable - self.requested, 0)


def _to_units(quantity: Any) -> int:
    """Convert an extended-resource quantity (always integral) to an int."""
    try:
        return int(str(quantity))
    except (TypeError, ValueError):
        return 0


def _container_requests(pod: dict, resource: str) -> int:
    total = 0
    for container in pod.get("spec", {}).get("containers", []):
        resources = container.get("resources", {})
        amount = resources.get("requests", {}).get(resource)
        if amount is None:
            # Extended resources default requests to limits.
            amount = resources.get("limits", {}).get(resource)
        total += _to_units(amount)
    return total


def _is_not_found(stderr: str) -> bool:
    return any(marker in stderr for marker in NOT_FOUND_MARKERS)


class OpenShiftCluster:
    """Structured access to the cluster through its CLI.

    Args:
        cli: Cluster CLI executable (``oc`` or ``kubectl``).
        timeout: Per-command timeout in seconds.
    """

    def __init__(self, cli: str = DEFAULT_CLUSTER_CLI, timeout: int = 30) -> None:
        self.cli = cli
        self.timeout = timeout

    # -- plumbing --

    def _run(self, args: list[str], timeout: int | None = None) -> str:
        logger.debug("$ %s %s", self.cli, " ".join(args))
        ok, stdout, stderr = run_cli(self.cli, args, timeout=timeout or self.timeout)
        if not ok:
            raise ClusterCommandError([self.cli, *args], stderr)
        return stdout

    def _get_json(self, args: list[str]) -> dict:
        stdout = self._run([*args, "-o", "json"])
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as err:
            raise ClusterCommandError([self.cli, *args], f"unparseable output: {err}") from err

    def _get_optional_json(self, args: list[str]) -> dict | None:
        ok, stdout, stderr = run_cli(self.cli, [*args, "-o", "json"], timeout=self.timeout)
        if not ok:
            if _is_not_found(stderr):
                return None
            raise ClusterCommandError([self.cli, *args], stderr)
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as err:
            raise ClusterCommandError([self.cli, *args], f"unparseable output: {err}") from err

    # -- session --

    def current_user(self) -> str | None:
        """Return the authenticated user, or None if there is no session."""
        ok, stdout, _ = run_cli(self.cli, ["whoami"], timeout=self.timeout)
        user = stdout.strip()
        return user if ok and user else None

    # -- capacity --

    def accelerator_nodes(self, label: str, resource: str) -> list[NodeAccelerators]:
        """List nodes matching *label* with their accelerator accounting."""
        nodes = self._get_json(["get", "nodes", "-l", label]).get("items", [])
        if not nodes:
            return []
        names = {n["metadata"]["name"] for n in nodes}

        requested: dict[str, int] = dict.fromkeys(names, 0)
        pods = self._get_json([
            "get", "pods", "--all-namespaces", f"--field-selector={ACTIVE_POD_SELECTOR}",
        ]).get("items", [])
        for pod in pods:
            node_name = pod.get("spec", {}).get("nodeName")
            if node_name in requested:
                requested[node_name] += _container_requests(pod, resource)

        return [
            NodeAccelerators(
                name=n["metadata"]["name"],
                allocatable=_to_units(n.get("status", {}).get("allocatable", {}).get(resource)),
                requested=requested[n["metadata"]["name"]],
            )
            for n in nodes
        ]

    def storage_classes(self) -> list[str]:
        items = self._get_json(["get", "storageclass"]).get("items", [])
        return [sc["metadata"]["name"] for sc in items]

    # -- namespace & policy --

    def namespace_exists(self, namespace: str) -> bool:
        return self._get_optional_json(["get", "namespace", namespace]) is not None

    def create_namespace(self, namespace: str) -> None:
        self._run(["create", "namespace", namespace])

    def apply_manifests(self, path: Path, namespace: str) -> str:
        return self._run(["apply", "-f", str(path), "-n", namespace])

    # -- workload --

    def deployment_ready(self, name: str, namespace: str) -> bool:
        """Mirror ``rollout status``: the latest generation is fully available."""
        deployment = self._get_json(["get", "deployment", name, "-n", namespace])
        metadata = deployment.get("metadata", {})
        spec = deployment.get("spec", {})
        status = deployment.get("status", {})
        desired = spec.get("replicas", 1)
        if status.get("observedGeneration", 0) < metadata.get("generation", 0):
            return False
        return (
            status.get("updatedReplicas", 0) >= desired
            and status.get("availableReplicas", 0) >= desired
            and status.get("replicas", 0) <= status.get("updatedReplicas", 0)
        )

    def pod_logs(self, selector: str, namespace: str, tail: int) -> str:
        return self._run(["logs", "-l", selector, "-n", namespace, f"--tail={tail}", "--prefix"])

    def service_exists(self, name: str, namespace: str) -> bool:
        return self._get_optional_json(["get", "service", name, "-n", namespace]) is not None

    def ready_endpoint_count(self, service: str, namespace: str) -> int:
        endpoints = self._get_optional_json(["get", "endpoints", service, "-n", namespace])
        if endpoints is None:
            return 0
        return sum(len(subset.get("addresses") or []) for subset in endpoints.get("subsets") or [])

    def route_host(self, route: str, namespace: str) -> str | None:
        obj = self._get_optional_json(["get", "route", route, "-n", namespace])
        if obj is None:
            return None
        return obj.get("spec", {}).get("host") or None
