#
# Copyright 2025 EDT&Partners
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
#

import json
import time
import threading
from typing import Callable, Dict, List, Optional, Tuple

import jwt
import requests
from jose import jwk
from jose.exceptions import JWKError

from constants import KEY_SET_REFRESH_INTERVAL, KEY_SET_FORCED_REFRESH_COOLDOWN
from lti.utils import SecurityUtils
from utility.exceptions import KeyNotConfigured, UnknownKey
from logging_config import setup_logging

logger = setup_logging(module_name='lti_keys')


class RemoteKeySet:
    """Cached copy of the platform's published JWKS.

    The set is re-fetched when it is older than refresh_interval. An unknown
    kid triggers one forced re-fetch, but forced re-fetches are rate limited
    to one per forced_refresh_cooldown seconds so a flood of bogus kids
    cannot be turned into a flood of requests against the platform.
    """

    def __init__(
        self,
        key_set_url: str,
        http_session: Optional[requests.Session] = None,
        refresh_interval: float = KEY_SET_REFRESH_INTERVAL,
        forced_refresh_cooldown: float = KEY_SET_FORCED_REFRESH_COOLDOWN,
        timeout: float = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.key_set_url = key_set_url
        self._http = http_session or requests.Session()
        self.refresh_interval = refresh_interval
        self.forced_refresh_cooldown = forced_refresh_cooldown
        self.timeout = timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._keys: Optional[List[Dict]] = None
        self._fetched_at: Optional[float] = None
        self._last_forced_refresh: Optional[float] = None

    def _fetch(self) -> List[Dict]:
        logger.info(f"Fetching platform JWKS from: {self.key_set_url}")
        response = self._http.get(self.key_set_url, timeout=self.timeout)
        response.raise_for_status()
        jwks = response.json()
        if not isinstance(jwks, dict) or not isinstance(jwks.get('keys'), list):
            raise ValueError("Invalid JWKS response: no keys found")

        keys = [key for key in jwks['keys'] if SecurityUtils.validate_jwk(key)]
        logger.info(f"Fetched JWKS with {len(jwks['keys'])} keys, {len(keys)} usable for RS256")
        return keys

    def _load(self, force: bool = False) -> Tuple[List[Dict], bool]:
        """Return the cached keys, refreshing when stale or when a forced refresh is allowed"""
        with self._lock:
            now = self._clock()
            if force:
                if (self._last_forced_refresh is not None
                        and now - self._last_forced_refresh < self.forced_refresh_cooldown):
                    logger.info("Forced JWKS refresh skipped, cooldown still active")
                    return self._keys or [], False
                self._last_forced_refresh = now
            elif self._keys is not None and now - self._fetched_at < self.refresh_interval:
                return self._keys, False

            try:
                keys = self._fetch()
            except (requests.RequestException, ValueError) as e:
                logger.error(f"Failed to fetch JWKS: {str(e)}")
                if self._keys is not None:
                    # Keep serving the previous set until the platform is reachable again
                    return self._keys, False
                raise UnknownKey(f"Unable to fetch platform key set: {str(e)}") from e

            self._keys = keys
            self._fetched_at = now
            return keys, True

    @staticmethod
    def _select(keys: List[Dict], kid: Optional[str]) -> Optional[Dict]:
        if kid is None:
            # Without a kid the choice is only unambiguous for a single-key set
            return keys[0] if len(keys) == 1 else None
        for key in keys:
            if key.get('kid') == kid:
                return key
        return None

    def get_key(self, kid: Optional[str]):
        """Resolve the RSA public key for kid, forcing one refresh on a miss"""
        keys, refreshed = self._load()
        selected = self._select(keys, kid)

        if selected is None and not refreshed:
            keys, refreshed = self._load(force=True)
            if refreshed:
                selected = self._select(keys, kid)

        if selected is None:
            logger.warning(f"No platform signing key found for kid: {kid}")
            raise UnknownKey(f"No valid key found for kid: {kid}")

        try:
            return jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(selected))
        except (jwt.InvalidKeyError, ValueError, KeyError) as e:
            logger.error(f"Failed to load platform JWK {kid}: {str(e)}")
            raise UnknownKey(f"Unusable key for kid: {kid}") from e


class KeySetPublisher:
    """Publishes the tool's own public key so platforms can verify our messages"""

    def __init__(self, public_key: Optional[str], kid: Optional[str]):
        self._public_key = public_key
        self._kid = kid
        self._jwks: Optional[Dict] = None

    def publish(self) -> Dict[str, List[Dict]]:
        if self._jwks is not None:
            return self._jwks

        if not self._public_key or not self._kid:
            raise KeyNotConfigured("LTI_PUBLIC_KEY and LTI_KID must be configured to publish a JWKS")

        try:
            key_dict = jwk.construct(self._public_key, algorithm="RS256").to_dict()
        except JWKError as e:
            raise KeyNotConfigured(f"LTI_PUBLIC_KEY is not a valid RSA public key: {str(e)}") from e

        key_dict.update({"kid": self._kid, "alg": "RS256", "use": "sig"})
        self._jwks = {"keys": [key_dict]}
        return self._jwks
