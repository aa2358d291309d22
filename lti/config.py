# © [2025] EDT&Partners. Licensed under CC BY 4.0.

import os
from typing import Mapping, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from utility.exceptions import ConfigurationError
from logging_config import setup_logging

# Configure logging
logger = setup_logging(module_name='lti_config')

ENVIRONMENTS = ("development", "test", "production")
MIN_ENCRYPTION_SECRET_LENGTH = 32
DEFAULT_OPENAI_API_URL = "https://api.openai.com/v1"

_TRUTHY = ("1", "true", "yes", "on")


def _normalize_pem(value: Optional[str]) -> Optional[str]:
    """PEM blocks often arrive through env files with literal \\n escapes"""
    if not value:
        return None
    return value.replace("\\n", "\n").strip()


class ToolSettings(BaseModel):
    """Process-wide configuration, built once at startup and passed to each component"""
    model_config = ConfigDict(frozen=True)

    environment: str = "production"
    database_url: str
    issuer: str
    client_id: str
    key_set_url: str
    launch_url: str
    auth_login_url: Optional[str] = None
    encryption_secret: str
    private_key: Optional[str] = None
    public_key: Optional[str] = None
    kid: Optional[str] = None
    allow_unverified_dev_tokens: bool = False
    openai_api_url: str = DEFAULT_OPENAI_API_URL
    log_level: str = "INFO"

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, value: str) -> str:
        value = (value or "production").strip().lower()
        if value not in ENVIRONMENTS:
            raise ValueError(f"ENVIRONMENT must be one of {', '.join(ENVIRONMENTS)}, got {value}")
        return value

    @field_validator("encryption_secret")
    @classmethod
    def validate_encryption_secret(cls, value: str) -> str:
        if not value or len(value) < MIN_ENCRYPTION_SECRET_LENGTH:
            raise ValueError(f"ENCRYPTION_SECRET must be at least {MIN_ENCRYPTION_SECRET_LENGTH} characters long")
        return value

    @field_validator("issuer", "auth_login_url", "launch_url", "key_set_url", "openai_api_url")
    @classmethod
    def strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        return value.rstrip("/") if value else value

    @field_validator("private_key", "public_key", mode="before")
    @classmethod
    def normalize_pem(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_pem(value)

    @model_validator(mode="after")
    def reject_dev_tokens_in_production(self):
        if self.allow_unverified_dev_tokens and self.environment == "production":
            raise ValueError("LTI_ALLOW_UNVERIFIED_DEV_TOKENS cannot be enabled in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def authorization_endpoint(self) -> str:
        """Platform OIDC authorization endpoint"""
        return self.auth_login_url or f"{self.issuer}/api/lti/authorize_redirect"


def _required(environ: Mapping[str, str], name: str, missing: list) -> Optional[str]:
    value = environ.get(name)
    if value is None or not value.strip():
        missing.append(name)
        return None
    return value.strip()


def load_settings(environ: Optional[Mapping[str, str]] = None) -> ToolSettings:
    """Build ToolSettings from the environment (and a .env file when reading os.environ)"""
    if environ is None:
        load_dotenv()
        environ = os.environ

    missing = []
    values = {
        "environment": environ.get("ENVIRONMENT", "production"),
        "database_url": _required(environ, "DATABASE_URL", missing),
        "issuer": _required(environ, "LTI_ISSUER", missing),
        "client_id": _required(environ, "LTI_CLIENT_ID", missing),
        "key_set_url": _required(environ, "LTI_KEY_SET_URL", missing),
        "launch_url": _required(environ, "LTI_LAUNCH_URL", missing),
        "encryption_secret": _required(environ, "ENCRYPTION_SECRET", missing),
        "auth_login_url": environ.get("LTI_AUTH_LOGIN_URL") or None,
        "private_key": environ.get("LTI_PRIVATE_KEY") or None,
        "public_key": environ.get("LTI_PUBLIC_KEY") or None,
        "kid": environ.get("LTI_KID") or None,
        "allow_unverified_dev_tokens": environ.get("LTI_ALLOW_UNVERIFIED_DEV_TOKENS", "").strip().lower() in _TRUTHY,
        "openai_api_url": environ.get("OPENAI_API_URL") or DEFAULT_OPENAI_API_URL,
        "log_level": environ.get("LOG_LEVEL", "INFO").upper(),
    }
    if missing:
        logger.error(f"Missing required configuration: {', '.join(missing)}")
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    try:
        settings = ToolSettings(**values)
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    if not (settings.private_key and settings.public_key and settings.kid):
        logger.warning("LTI key material is incomplete; JWKS and deep linking responses will be unavailable")
    logger.info(f"Loaded LTI tool settings for issuer {settings.issuer} ({settings.environment})")
    return settings
