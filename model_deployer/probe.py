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

"""HTTP health probe adapter."""

from __future__ import annotations

import requests

from model_deployer import logger


class HttpProbe:
    """Single-shot GET probe; healthy means a non-error HTTP status."""

    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session or requests.Session()

    def check(self, url: str, timeout: float) -> bool:
        try:
            resp = self.session.get(url, timeout=timeout)
        except requests.RequestException as e:
            logger.debug("Health probe %s raised: %s", url, e)
            return False
        logger.debug("Health probe %s returned HTTP %d", url, resp.status_code)
        return resp.ok
