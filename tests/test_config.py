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

"""Tests for request resolution, profiles, and settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from model_deployer.config import (
    MODEL_PROFILES,
    DeployerSettings,
    Environment,
    ModelType,
    load_profiles,
    resolve_request,
)
from model_deployer.errors import (
    INVALID_ENVIRONMENT,
    INVALID_MODEL_TYPE,
    INVALID_NAMESPACE,
    INVALID_TIMEOUT,
    ValidationError,
)


def _resolve(**overrides):
    params = dict(model_type="llama-7b", namespace="ai-models", environment="staging", timeout=600)
    params.update(overrides)
    return resolve_request(**params)


def test_resolve_valid_request():
    request, profile = _resolve(dry_run=True, verbose=True, timeout="120")

    assert request.model_type is ModelType.LLAMA_7B
    assert request.environment is Environment.STAGING
    assert request.namespace == "ai-models"
    assert request.dry_run and request.verbose
    assert request.timeout_seconds == 120
    assert profile.model_type is ModelType.LLAMA_7B


def test_request_is_immutable():
    request, _ = _resolve()
    with pytest.raises(AttributeError):
        request.namespace = "other"


@pytest.mark.parametrize("model_type", ["llama-30b", "LLAMA-7B", "", "gpt-4"])
def test_unknown_model_type_rejected(model_type):
    with pytest.raises(ValidationError) as exc:
        _resolve(model_type=model_type)
    assert exc.value.codes == [INVALID_MODEL_TYPE]
    assert "valid models" in str(exc.value)


@pytest.mark.parametrize("timeout", [0, -5, "abc", None, True, 1.5, float("inf")])
def test_bad_timeout_rejected(timeout):
    with pytest.raises(ValidationError) as exc:
        _resolve(timeout=timeout)
    assert exc.value.codes == [INVALID_TIMEOUT]


@pytest.mark.parametrize("namespace", ["", "AI-Models", "-models", "a" * 64, "ai_models"])
def test_bad_namespace_rejected(namespace):
    with pytest.raises(ValidationError) as exc:
        _resolve(namespace=namespace)
    assert exc.value.codes == [INVALID_NAMESPACE]


def test_every_violation_is_reported():
    with pytest.raises(ValidationError) as exc:
        _resolve(model_type="falcon", environment="qa", timeout=0, namespace="Bad_NS")
    assert set(exc.value.codes) == {INVALID_MODEL_TYPE, INVALID_ENVIRONMENT, INVALID_TIMEOUT, INVALID_NAMESPACE}
    assert len(exc.value.violations) == 4


def test_every_model_type_has_profile():
    assert set(MODEL_PROFILES) == set(ModelType)


def test_large_model_profile_carries_elevated_resources():
    profile = MODEL_PROFILES[ModelType.LLAMA_70B]
    assert profile.memory == "128Gi"
    assert profile.accelerators == 4
    assert profile.model_size == "70b"


def test_code_variant_reuses_base_profile():
    base = MODEL_PROFILES[ModelType.LLAMA_7B]
    code = MODEL_PROFILES[ModelType.CODE_LLAMA]
    assert code.variant == "code"
    assert base.variant is None
    assert (code.chart_key, code.model_size, code.workload, code.route) == (
        base.chart_key, base.model_size, base.workload, base.route,
    )
    assert (code.memory, code.accelerators) == (base.memory, base.accelerators)


def test_llama_family_shares_route_and_diffusion_has_its_own():
    llama_routes = {MODEL_PROFILES[m].route for m in
                    (ModelType.LLAMA_7B, ModelType.LLAMA_13B, ModelType.LLAMA_70B, ModelType.CODE_LLAMA)}
    assert llama_routes == {"llama-7b-route"}
    assert MODEL_PROFILES[ModelType.STABLE_DIFFUSION].route == "stable-diffusion-route"
    assert MODEL_PROFILES[ModelType.STABLE_DIFFUSION].workload == "stable-diffusion-xl"


def test_release_name_combines_model_and_environment():
    profile = MODEL_PROFILES[ModelType.STABLE_DIFFUSION]
    assert profile.release_name(Environment.PRODUCTION) == "stable-diffusion-production"
    assert profile.service == "stable-diffusion-xl-service"


def test_missing_profile_is_a_lookup_error():
    table = {m.value: {"chart_key": "llama", "workload": "w", "route": "r"} for m in ModelType}
    del table["llama-13b"]
    with pytest.raises(LookupError, match="llama-13b"):
        load_profiles(table)


def test_circular_profile_base_rejected():
    table = {m.value: {"chart_key": "llama", "workload": "w", "route": "r"} for m in ModelType}
    table["llama-7b"] = {"base": "code-llama"}
    table["code-llama"] = {"base": "llama-7b"}
    with pytest.raises(ValueError, match="Circular"):
        load_profiles(table)


def test_settings_resolve_relative_paths(tmp_path):
    settings = DeployerSettings(project_dir=tmp_path)
    assert settings.chart_path() == tmp_path / "deployments" / "helm" / "ai-models"
    assert settings.rbac_path() == tmp_path / "deployments" / "openshift" / "rbac"

    absolute = DeployerSettings(project_dir=tmp_path, chart_dir=Path("/srv/charts"))
    assert absolute.chart_path() == Path("/srv/charts")


def test_settings_load_from_environment(monkeypatch):
    monkeypatch.setenv("MODEL_DEPLOY_CLUSTER_CLI", "kubectl")
    monkeypatch.setenv("MODEL_DEPLOY_POLL_INTERVAL_SECONDS", "2")
    settings = DeployerSettings()
    assert settings.cluster_cli == "kubectl"
    assert settings.poll_interval_seconds == 2


def test_integral_float_timeout_accepted():
    request, _ = _resolve(timeout=120.0)
    assert request.timeout_seconds == 120
