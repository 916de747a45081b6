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

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from model_deployer.config import MODEL_PROFILES, ModelType, resolve_request
from model_deployer.release import (
    HelmReleaseManager,
    ReleaseSpec,
    build_release_spec,
    model_overrides,
    resolve_values_file,
)


def _write_helm(tmp_path: Path, body: str) -> Path:
    script = tmp_path / "helm"
    script.write_text(f"#!/bin/sh\n{body}\n")
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return script


def _spec(tmp_path: Path, **changes) -> ReleaseSpec:
    fields = dict(
        name="llama-7b-staging",
        chart_path=tmp_path / "chart",
        namespace="ai-models",
        values_file=tmp_path / "chart" / "values-staging.yaml",
        overrides=(("llama.enabled", "true"), ("stableDiffusion.enabled", "false")),
        timeout_seconds=600,
    )
    fields.update(changes)
    return ReleaseSpec(**fields)


def test_overrides_for_base_model():
    overrides = model_overrides(MODEL_PROFILES[ModelType.LLAMA_7B], "nvidia.com/gpu")
    assert overrides == [
        ("llama.enabled", "true"),
        ("llama.model.size", "7b"),
        ("stableDiffusion.enabled", "false"),
    ]


def test_overrides_for_large_model_request_more_resources():
    overrides = dict(model_overrides(MODEL_PROFILES[ModelType.LLAMA_70B], "nvidia.com/gpu"))
    assert overrides["llama.model.size"] == "70b"
    assert overrides["llama.resources.requests.memory"] == "128Gi"
    assert overrides["llama.resources.requests.nvidia\\.com/gpu"] == "4"


def test_overrides_for_code_variant():
    overrides = dict(model_overrides(MODEL_PROFILES[ModelType.CODE_LLAMA], "nvidia.com/gpu"))
    assert overrides["llama.enabled"] == "true"
    assert overrides["llama.model.size"] == "7b"
    assert overrides["llama.model.variant"] == "code"


def test_overrides_for_diffusion_disable_llama():
    overrides = dict(model_overrides(MODEL_PROFILES[ModelType.STABLE_DIFFUSION], "nvidia.com/gpu"))
    assert overrides == {"llama.enabled": "false", "stableDiffusion.enabled": "true"}


def test_values_file_prefers_environment_file(project_dir):
    chart = project_dir / "deployments" / "helm" / "ai-models"
    values, warnings = resolve_values_file(chart, "production")
    assert values == chart / "values-production.yaml"
    assert warnings == []


def test_values_file_falls_back_with_warning(project_dir):
    chart = project_dir / "deployments" / "helm" / "ai-models"
    values, warnings = resolve_values_file(chart, "dev")
    assert values == chart / "values.yaml"
    assert [w.code for w in warnings] == ["ValuesFileMissing"]


def test_build_release_spec(settings):
    request, profile = resolve_request("llama-13b", "ai-models", "production", dry_run=True, verbose=True, timeout=300)
    spec, warnings = build_release_spec(request, profile, settings)

    assert warnings == []
    assert spec.name == "llama-13b-production"
    assert spec.chart_path == settings.chart_path()
    assert spec.values_file.name == "values-production.yaml"
    assert spec.timeout_seconds == 300
    assert spec.dry_run and spec.debug
    assert spec.override_map["llama.model.size"] == "13b"


def test_helm_args(tmp_path):
    args = _spec(tmp_path, dry_run=True, debug=True).to_helm_args()
    assert args[:3] == ["upgrade", "--install", "llama-7b-staging"]
    assert args[args.index("--namespace") + 1] == "ai-models"
    assert args[args.index("--timeout") + 1] == "600s"
    assert "--wait" in args
    assert args[-2:] == ["--dry-run", "--debug"]
    set_values = [args[i + 1] for i, a in enumerate(args) if a == "--set"]
    assert set_values == ["llama.enabled=true", "stableDiffusion.enabled=false"]


def test_helm_args_without_simulation(tmp_path):
    args = _spec(tmp_path).to_helm_args()
    assert "--dry-run" not in args
    assert "--debug" not in args


def test_helm_manager_submits_release(tmp_path):
    helm = _write_helm(tmp_path, 'echo "helm $@"')
    result = HelmReleaseManager(str(helm)).submit(_spec(tmp_path))
    assert result.ok
    assert "upgrade --install llama-7b-staging" in result.output


def test_helm_manager_reports_failure_output(tmp_path):
    helm = _write_helm(tmp_path, 'echo "Error: INSTALLATION FAILED: chart not found" >&2\nexit 1')
    result = HelmReleaseManager(str(helm)).submit(_spec(tmp_path))
    assert not result.ok
    assert "INSTALLATION FAILED" in result.output


def test_helm_manager_missing_binary(tmp_path):
    result = HelmReleaseManager(str(tmp_path / "no-such-helm")).submit(_spec(tmp_path))
    assert not result.ok
    assert "command not found" in result.output


@pytest.mark.parametrize("model_type", [m.value for m in ModelType])
def test_release_name_is_stable_per_model_and_environment(model_type, settings):
    request, profile = resolve_request(model_type, "ai-models", "staging")
    first, _ = build_release_spec(request, profile, settings)
    second, _ = build_release_spec(request, profile, settings)
    assert first == second
    assert first.name == f"{model_type}-staging"
