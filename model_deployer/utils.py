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

"""Utility functions for command lookup, CLI calls, and helm overrides."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import Any

import sh

from model_deployer.constants import DEFAULT_KUBECONFIG, KUBECONFIG_ENV


def command_exists(cmd: str) -> bool:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Returns:
        True if the command resolves on PATH.
    """
    try:
        sh.which(cmd)
    except (sh.ErrorReturnCode, sh.CommandNotFound):
        return False
    return True


def kubeconfig_present() -> bool:
    """Check whether a kubeconfig file is available for the cluster session."""
    paths = os.environ.get(KUBECONFIG_ENV)
    if paths:
        return any(Path(p).is_file() for p in paths.split(os.pathsep) if p)
    return DEFAULT_KUBECONFIG.is_file()


def run_cli(binary: str, args: list[str], timeout: int = 30) -> tuple[bool, str, str]:
    """Run a cluster CLI command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because callers parse stdout as JSON and
    need stderr kept apart for diagnostics.

    Args:
        binary: Executable to run (e.g. ``oc`` or ``kubectl``).
        args: Command arguments (e.g. ``["get", "nodes", "-o", "json"]``).
        timeout: Maximum seconds to wait for the command to complete.

    Returns:
        Tuple of (success, stdout, stderr).
    """
    try:
        result = subprocess.run(
            [binary, *args],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)


def escape_helm_key(segment: str) -> str:
    """Escape dots inside a single helm ``--set`` key segment."""
    return segment.replace(".", "\\.")


def format_helm_overrides(overrides: list[tuple[str, str]]) -> list[str]:
    """Build ``helm --set`` argument pairs from (key, value) overrides.

    Args:
        overrides: Ordered list of (key, value) pairs.

    Returns:
        Flat list alternating ``--set`` and ``key=value``.
    """
    return [item for key, value in overrides for item in ("--set", f"{key}={value}")]


def resolve_bool_flag(name: str, value: Any) -> bool:
    """Resolve a Typer boolean flag value with sys.argv fallback.

    Workaround: Typer has issues with boolean flags in some environments,
    passing None or strings instead of True/False.

    Args:
        name: Python parameter name (underscores), e.g. ``dry_run``.
        value: Raw value from Typer.

    Returns:
        Resolved boolean.
    """
    flag = f"--{name.replace('_', '-')}"
    if flag in sys.argv:
        return True
    if value is None:
        return False
    if isinstance(value, str):
        return value.lower() not in ("false", "0", "", "no", "n", "none")
    return bool(value)
