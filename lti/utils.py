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

import base64
import html
import uuid
from dataclasses import dataclass
from typing import Dict, Any, Tuple
from datetime import datetime
from urllib.parse import urlparse, urlencode
from fastapi import Request, Response
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from logging_config import setup_logging

# Configure logging
logger = setup_logging(module_name='lti_utils')


@dataclass(frozen=True)
class CookieSpec:
    """A cookie the HTTP layer must set on its response"""
    name: str
    value: str
    max_age: int
    secure: bool
    samesite: str = "lax"
    httponly: bool = True
    path: str = "/"

    def apply(self, response: Response) -> None:
        response.set_cookie(
            key=self.name,
            value=self.value,
            max_age=self.max_age,
            path=self.path,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(
            key=self.name,
            path=self.path,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,
        )


class SecurityUtils:
    """Utility functions for security operations"""

    @staticmethod
    def validate_jwk(key: Dict[str, Any]) -> bool:
        """Check that a platform JWK is an RSA signing key we can use for RS256"""
        if not isinstance(key, dict):
            return False

        # Check required fields
        if key.get('kty') != 'RSA' or not key.get('n') or not key.get('e'):
            return False

        # alg and use are optional in a JWKS, but must not contradict RS256 signing
        if key.get('alg') not in (None, 'RS256'):
            return False
        if key.get('use') not in (None, 'sig'):
            return False

        # Validate modulus length (should be at least 2048 bits)
        try:
            n_bytes = base64.urlsafe_b64decode(key['n'] + '=' * (-len(key['n']) % 4))
        except (ValueError, TypeError):
            return False
        return len(n_bytes) * 8 >= 2048

    @staticmethod
    def generate_unique_kid() -> str:
        """Generate a unique Key ID (kid) using timestamp and UUID"""
        timestamp = datetime.now().strftime('%Y%m%d%H%M%S')
        unique_id = str(uuid.uuid4())[:8]
        return f"key-{timestamp}-{unique_id}"

    @staticmethod
    def generate_key_pair() -> Tuple[str, str, str]:
        """
        Generate a new RSA key pair for signing tool messages.

        Returns:
            Tuple[str, str, str]: private key PEM, public key PEM and kid
        """
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ).decode('utf-8')
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        ).decode('utf-8')

        return private_pem, public_pem, SecurityUtils.generate_unique_kid()


async def get_form_data(request: Request) -> dict:
    """Cache and return form data from request"""
    if not hasattr(request.state, 'cached_form_data'):
        content_type = request.headers.get('content-type', '')
        if 'form' in content_type:
            form_data = await request.form()
            request.state.cached_form_data = dict(form_data)
        else:
            request.state.cached_form_data = {}
        logger.debug(f"Retrieved form data keys: {list(request.state.cached_form_data.keys())}")
    return request.state.cached_form_data

async def get_request_params(request: Request) -> dict:
    """Merge query string and form body parameters, form values win"""
    params = dict(request.query_params)
    if request.method == "POST":
        params.update(await get_form_data(request))
    return params

def build_redirect_url(base_url: str, params: dict) -> str:
    """Build a proper redirect URL with query parameters"""
    # Parse the base URL to ensure it's valid
    parsed = urlparse(base_url)
    if not parsed.scheme or not parsed.netloc:
        logger.error(f"Invalid base URL: {base_url}")
        raise ValueError(f"Invalid base URL: {base_url}")

    # Build query string, filtering out None values
    query = urlencode({k: v for k, v in params.items() if v is not None})

    # Construct final URL
    separator = '&' if '?' in base_url else '?'
    final_url = f"{base_url}{separator}{query}"

    logger.info(f"Built redirect URL for {base_url} with params: {sorted(k for k, v in params.items() if v is not None)}")
    return final_url

def build_auto_submit_form(action_url: str, fields: dict) -> str:
    """HTML page that POSTs the given fields to action_url as soon as it loads"""
    inputs = "\n".join(
        f'    <input type="hidden" name="{html.escape(name)}" value="{html.escape(str(value))}" />'
        for name, value in fields.items()
    )
    return (
        "<!DOCTYPE html>\n<html>\n<body>\n"
        f'  <form id="lti_auto_submit" action="{html.escape(action_url)}" method="POST">\n'
        f"{inputs}\n"
        "  </form>\n"
        "  <script>document.getElementById('lti_auto_submit').submit();</script>\n"
        "</body>\n</html>"
    )

def build_notice_page(title: str, message: str) -> str:
    """Plain HTML notice shown inside the platform iframe"""
    return (
        "<!DOCTYPE html>\n<html>\n"
        f"<head><title>{html.escape(title)}</title></head>\n"
        "<body style=\"font-family: sans-serif; text-align: center; padding: 40px;\">\n"
        f"  <h1>{html.escape(title)}</h1>\n"
        f"  <p>{html.escape(message)}</p>\n"
        "</body>\n</html>"
    )
