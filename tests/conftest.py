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

"""
Global pytest configuration and fixtures for the LTI tool tests.

This module sets up the test environment variables, RSA key material for a
fake platform and for the tool itself, an in-memory SQLite database and a
factory for signed platform id_tokens.
"""

import os
import json
import time
import pytest
from typing import Generator
from unittest.mock import Mock

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

# Set up environment variables immediately when module is imported
# This prevents import-time errors from modules that read the environment
def setup_immediate_env():
    """Set up environment variables immediately to prevent import-time errors."""
    test_env_vars = {
        "ENVIRONMENT": "test",
        "DATABASE_URL": "sqlite://",
        "LTI_ISSUER": "https://canvas.test.instructure.com",
        "LTI_CLIENT_ID": "10000000000001",
        "LTI_KEY_SET_URL": "https://canvas.test.instructure.com/api/lti/security/jwks",
        "LTI_LAUNCH_URL": "https://tool.example.com/lti/launch",
        "ENCRYPTION_SECRET": "test-encryption-secret-0123456789abcdef",
        "OPENAI_API_URL": "https://api.openai.test/v1",
        "LOG_LEVEL": "DEBUG",
    }

    for key, value in test_env_vars.items():
        if key not in os.environ:
            os.environ[key] = value


# Call immediately when module is imported
setup_immediate_env()

PLATFORM_KID = "platform-key-1"
TOOL_KID = "tool-key-1"
INSTRUCTOR_ROLE = "http://purl.imsglobal.org/vocab/lis/v2/membership#Instructor"
LEARNER_ROLE = "http://purl.imsglobal.org/vocab/lis/v2/membership#Learner"


def _generate_rsa_pems():
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode("utf-8")
    return private_key, private_pem, public_pem


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> Generator[None, None, None]:
    """Keeps the test environment variables in place for the whole session."""
    original_env = dict(os.environ)
    try:
        setup_immediate_env()
        yield
    finally:
        os.environ.clear()
        os.environ.update(original_env)


@pytest.fixture(scope="session")
def platform_keys():
    """Key pair of the fake platform that signs id_tokens"""
    private_key, private_pem, public_pem = _generate_rsa_pems()
    public_jwk = json.loads(jwt.algorithms.RSAAlgorithm.to_jwk(private_key.public_key()))
    public_jwk.update({"kid": PLATFORM_KID, "alg": "RS256", "use": "sig"})
    return {"private_pem": private_pem, "public_pem": public_pem, "jwk": public_jwk}


@pytest.fixture(scope="session")
def other_keys():
    """A key pair the platform never published"""
    private_key, private_pem, public_pem = _generate_rsa_pems()
    return {"private_pem": private_pem, "public_pem": public_pem}


@pytest.fixture(scope="session")
def tool_keys():
    private_key, private_pem, public_pem = _generate_rsa_pems()
    return {"private_pem": private_pem, "public_pem": public_pem, "kid": TOOL_KID}


@pytest.fixture
def settings(tool_keys):
    from lti.config import ToolSettings
    return ToolSettings(
        environment="test",
        database_url="sqlite://",
        issuer=os.environ["LTI_ISSUER"],
        client_id=os.environ["LTI_CLIENT_ID"],
        key_set_url=os.environ["LTI_KEY_SET_URL"],
        launch_url=os.environ["LTI_LAUNCH_URL"],
        encryption_secret=os.environ["ENCRYPTION_SECRET"],
        private_key=tool_keys["private_pem"],
        public_key=tool_keys["public_pem"],
        kid=tool_keys["kid"],
        openai_api_url=os.environ["OPENAI_API_URL"],
    )


@pytest.fixture
def jwks_http(platform_keys):
    """Stand-in for the requests session the remote key set fetches with"""
    http = Mock()
    http.get.return_value.json.return_value = {"keys": [platform_keys["jwk"]]}
    http.get.return_value.raise_for_status.return_value = None
    return http


@pytest.fixture
def id_token_factory(platform_keys, settings):
    """Builds platform id_tokens; keyword overrides replace claims, None removes them"""
    from constants import (
        CLAIM_CONTEXT, CLAIM_DEPLOYMENT_ID, CLAIM_MESSAGE_TYPE, CLAIM_RESOURCE_LINK, CLAIM_ROLES, CLAIM_VERSION,
    )

    def _make(private_pem=None, kid=PLATFORM_KID, headers=None, **overrides):
        now = int(time.time())
        claims = {
            "iss": settings.issuer,
            "aud": settings.client_id,
            "sub": "user-123",
            "iat": now,
            "exp": now + 300,
            "nonce": "nonce-abc",
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            CLAIM_MESSAGE_TYPE: "LtiResourceLinkRequest",
            CLAIM_VERSION: "1.3.0",
            CLAIM_DEPLOYMENT_ID: "deployment-1",
            CLAIM_RESOURCE_LINK: {"id": "resource-1", "title": "Course Assistant"},
            CLAIM_CONTEXT: {"id": "course-1", "title": "Intro to Biology", "label": "BIO101", "type": ["CourseOffering"]},
            CLAIM_ROLES: [INSTRUCTOR_ROLE],
        }
        for key, value in overrides.items():
            if value is None:
                claims.pop(key, None)
            else:
                claims[key] = value

        token_headers = dict(headers or {})
        if kid is not None:
            token_headers["kid"] = kid
        return jwt.encode(claims, private_pem or platform_keys["private_pem"], algorithm="RS256", headers=token_headers)

    return _make


@pytest.fixture
def db_session(settings):
    """Real SQLAlchemy session on a fresh in-memory SQLite database"""
    from database.db import init_db, create_tables, get_session_local, Base
    engine = init_db(settings.database_url)
    create_tables()
    db = get_session_local()()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def app(settings, jwks_http):
    """Application wired to the test settings, with the platform key set stubbed"""
    from database.db import create_tables
    from lti.keys import RemoteKeySet
    from lti.services import LaunchValidator
    from lti.tokens import build_token_verifier
    from main import create_app

    application = create_app(settings)
    create_tables()

    key_set = RemoteKeySet(settings.key_set_url, http_session=jwks_http)
    application.state.key_set = key_set
    application.state.token_verifier = build_token_verifier(settings, key_set)
    application.state.launch_validator = LaunchValidator(application.state.token_verifier)
    return application


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def app_db(app):
    """Session on the database the application under test is bound to"""
    from database.db import get_session_local
    db = get_session_local()()
    try:
        yield db
    finally:
        db.close()
