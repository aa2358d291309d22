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

import time
from typing import Callable, List, Optional, Union

import jwt
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from constants import (
    CLAIM_CONTEXT, CLAIM_CUSTOM, CLAIM_DEEP_LINKING_SETTINGS, CLAIM_DEPLOYMENT_ID, CLAIM_LIS,
    CLAIM_MESSAGE_TYPE, CLAIM_RESOURCE_LINK, CLAIM_ROLES, CLAIM_TARGET_LINK_URI, CLAIM_VERSION,
    TOKEN_EXPIRY_LEEWAY,
)
from lti.config import ToolSettings
from lti.keys import RemoteKeySet
from utility.exceptions import (
    AudienceMismatch, ConfigurationError, Expired, InvalidSignature, IssuerMismatch, MissingNonce, UnknownKey,
)
from logging_config import setup_logging

logger = setup_logging(module_name='lti_tokens')


class LaunchClaims(BaseModel):
    """Claims of a platform id_token. Only built from a token that passed verification"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    iss: str
    sub: str
    aud: Union[str, List[str]]
    exp: Optional[int] = None
    iat: Optional[int] = None
    nonce: Optional[str] = None
    name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    email: Optional[str] = None
    picture: Optional[str] = None
    person_contact_email_primary: Optional[str] = None
    message_type: Optional[str] = Field(None, alias=CLAIM_MESSAGE_TYPE)
    version: Optional[str] = Field(None, alias=CLAIM_VERSION)
    deployment_id: Optional[str] = Field(None, alias=CLAIM_DEPLOYMENT_ID)
    target_link_uri: Optional[str] = Field(None, alias=CLAIM_TARGET_LINK_URI)
    resource_link: dict = Field(default_factory=dict, alias=CLAIM_RESOURCE_LINK)
    context: dict = Field(default_factory=dict, alias=CLAIM_CONTEXT)
    roles: List[str] = Field(default_factory=list, alias=CLAIM_ROLES)
    lis: dict = Field(default_factory=dict, alias=CLAIM_LIS)
    custom: dict = Field(default_factory=dict, alias=CLAIM_CUSTOM)
    deep_linking_settings: Optional[dict] = Field(None, alias=CLAIM_DEEP_LINKING_SETTINGS)

    @field_validator("resource_link", "context", "lis", "custom", mode="before")
    @classmethod
    def empty_dict_when_missing(cls, value):
        return value if isinstance(value, dict) else {}

    @field_validator("roles", mode="before")
    @classmethod
    def roles_as_list(cls, value):
        if isinstance(value, str):
            return [value]
        if not isinstance(value, list):
            return []
        return [role for role in value if isinstance(role, str)]

    @property
    def context_id(self) -> Optional[str]:
        return self.context.get("id")

    @property
    def context_title(self) -> Optional[str]:
        return self.context.get("title")

    @property
    def context_type(self) -> List[str]:
        return self.context.get("type") or []

    @property
    def resource_link_id(self) -> Optional[str]:
        return self.resource_link.get("id")

    @property
    def resource_link_title(self) -> Optional[str]:
        return self.resource_link.get("title")


class TokenVerifier:
    """Validates platform id_tokens: RS256 signature, then issuer, audience, expiry and nonce"""

    def __init__(self, issuer: str, client_id: str, key_set: RemoteKeySet, clock: Callable[[], float] = time.time):
        self.issuer = issuer.rstrip("/")
        self.client_id = client_id
        self.key_set = key_set
        self._clock = clock

    def verify(self, id_token: str) -> LaunchClaims:
        try:
            header = jwt.get_unverified_header(id_token)
        except jwt.InvalidTokenError as e:
            logger.error(f"Malformed id_token header: {str(e)}")
            raise InvalidSignature("Malformed token") from e

        if header.get("alg") != "RS256":
            logger.error(f"Unsupported id_token algorithm: {header.get('alg')}")
            raise InvalidSignature(f"Unsupported algorithm: {header.get('alg')}")

        public_key = self.key_set.get_key(header.get("kid"))

        try:
            payload = jwt.decode(
                id_token,
                public_key,
                algorithms=["RS256"],
                options={"verify_aud": False, "verify_iss": False, "verify_exp": False, "verify_iat": False},
                leeway=TOKEN_EXPIRY_LEEWAY,
            )
        except jwt.InvalidTokenError as e:
            logger.error(f"id_token signature verification failed: {str(e)}")
            raise InvalidSignature("Invalid token signature") from e

        return self.validate_claims(payload)

    def validate_claims(self, payload: dict) -> LaunchClaims:
        """Check issuer, audience, expiry and nonce, in that order"""
        iss = payload.get("iss")
        if not isinstance(iss, str) or iss.rstrip("/") != self.issuer:
            logger.error(f"Issuer mismatch: expected {self.issuer}, got {payload.get('iss')}")
            raise IssuerMismatch(f"Issuer mismatch: got {payload.get('iss')}")

        aud = payload.get("aud")
        audiences = aud if isinstance(aud, list) else [aud]
        if self.client_id not in audiences:
            logger.error(f"Audience mismatch: expected {self.client_id}, got {aud}")
            raise AudienceMismatch(f"Audience mismatch: got {aud}")

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)) or exp + TOKEN_EXPIRY_LEEWAY < self._clock():
            logger.error(f"id_token expired or missing exp: {exp}")
            raise Expired("Token has expired")

        if not payload.get("nonce"):
            logger.error("id_token has no nonce claim")
            raise MissingNonce("Token has no nonce")

        try:
            return LaunchClaims.model_validate(payload)
        except ValidationError as e:
            logger.error(f"id_token claims are malformed: {str(e)}")
            raise InvalidSignature("Malformed token claims") from e


class DevelopmentTokenVerifier:
    """Degraded verifier for local platforms whose keys cannot be fetched.

    Runs the strict path first. When that fails for a cryptographic reason
    the claims are still checked, but the signature is not. Refuses to be
    constructed in production.
    """

    def __init__(self, strict: TokenVerifier, environment: str):
        if environment == "production":
            raise ConfigurationError("Unverified development tokens cannot be accepted in production")
        self.strict = strict
        self.environment = environment

    def verify(self, id_token: str) -> LaunchClaims:
        try:
            return self.strict.verify(id_token)
        except (InvalidSignature, UnknownKey) as e:
            logger.warning(f"Accepting id_token without signature verification ({self.environment}): {str(e)}")

        try:
            payload = jwt.decode(id_token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            raise InvalidSignature("Malformed token") from e
        return self.strict.validate_claims(payload)


def build_token_verifier(settings: ToolSettings, key_set: RemoteKeySet):
    strict = TokenVerifier(settings.issuer, settings.client_id, key_set)
    if settings.allow_unverified_dev_tokens:
        return DevelopmentTokenVerifier(strict, settings.environment)
    return strict
