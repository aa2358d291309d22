# © [2025] EDT&Partners. Licensed under CC BY 4.0.

import enum
import hmac
import secrets
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import jwt
from pydantic import BaseModel
from pylti1p3.deep_link_resource import DeepLinkResource

from constants import (
    CLAIM_CONTENT_ITEMS, CLAIM_DEPLOYMENT_ID, CLAIM_DL_DATA, CLAIM_MESSAGE_TYPE, CLAIM_VERSION,
    DEEP_LINK_RESPONSE_TTL, DEEP_LINKING_RESPONSE_MESSAGE_TYPE, HANDSHAKE_COOKIE_MAX_AGE, LTI_VERSION,
    NONCE_COOKIE, STATE_COOKIE, UNKNOWN_USER_NAME,
)
from lti.config import ToolSettings
from lti.roles import RoleClass, RoleClassifier
from lti.tokens import LaunchClaims
from lti.utils import CookieSpec, build_auto_submit_form, build_redirect_url
from utility.exceptions import (
    KeyNotConfigured, MissingParameter, MissingToken, NonceMismatch, StateMismatch, UnauthorizedRole, UnknownIssuer,
)
from logging_config import setup_logging, token_prefix

# Configure logging
logger = setup_logging(module_name='lti_services')


class UserInfo(BaseModel):
    lti_user_id: str
    canvas_user_id: str
    name: str
    email: str = ""
    picture: Optional[str] = None
    roles: List[str] = []


class CourseInfo(BaseModel):
    canvas_course_id: Optional[str] = None
    course_name: Optional[str] = None
    deployment_id: Optional[str] = None
    course_type: List[str] = []


def _first_present(*values) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_user_info(claims: LaunchClaims) -> UserInfo:
    """Pull the user identity out of the launch, tolerating platforms that omit name or email"""
    full_name = None
    if claims.given_name and claims.family_name:
        full_name = f"{claims.given_name} {claims.family_name}"

    name = _first_present(
        claims.name,
        full_name,
        claims.lis.get("person_name_full"),
        claims.custom.get("person_name_full"),
        claims.given_name,
        claims.family_name,
    ) or UNKNOWN_USER_NAME

    email = _first_present(
        claims.email,
        claims.lis.get("person_contact_email_primary"),
        claims.custom.get("person_contact_email_primary"),
        claims.person_contact_email_primary,
    ) or ""

    return UserInfo(
        lti_user_id=claims.sub,
        canvas_user_id=claims.sub,
        name=name,
        email=email,
        picture=claims.picture,
        roles=claims.roles,
    )


def extract_course_info(claims: LaunchClaims) -> CourseInfo:
    course_type = claims.context_type
    return CourseInfo(
        canvas_course_id=claims.context_id,
        course_name=claims.context_title,
        deployment_id=claims.deployment_id,
        course_type=course_type if isinstance(course_type, list) else [course_type],
    )


@dataclass
class RedirectInstruction:
    """Where to send the browser, and which cookies to set on the way"""
    url: str
    cookies: List[CookieSpec] = field(default_factory=list)


class LoginHandshake:
    """Starts the OIDC third-party initiated login towards the platform"""

    def __init__(self, settings: ToolSettings):
        self.settings = settings

    def handshake_cookies(self, state: str, nonce: str) -> List[CookieSpec]:
        secure = not self.settings.is_development
        return [
            CookieSpec(name=STATE_COOKIE, value=state, max_age=HANDSHAKE_COOKIE_MAX_AGE, secure=secure, samesite="lax"),
            CookieSpec(name=NONCE_COOKIE, value=nonce, max_age=HANDSHAKE_COOKIE_MAX_AGE, secure=secure, samesite="lax"),
        ]

    def initiate(
        self,
        issuer: Optional[str],
        login_hint: Optional[str],
        target_link_uri: Optional[str],
        lti_message_hint: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> RedirectInstruction:
        missing = [
            name for name, value in (("iss", issuer), ("login_hint", login_hint), ("target_link_uri", target_link_uri))
            if not value
        ]
        if missing:
            logger.error(f"Login request missing parameters: {missing}")
            raise MissingParameter(missing)

        if issuer.rstrip('/') != self.settings.issuer:
            logger.error(f"Login request from unknown issuer: {issuer}")
            raise UnknownIssuer(issuer)

        state = secrets.token_urlsafe(32)
        nonce = secrets.token_urlsafe(32)

        redirect_params = {
            'response_type': 'id_token',
            'scope': 'openid',
            'client_id': client_id or self.settings.client_id,
            'redirect_uri': self.settings.launch_url,
            'login_hint': login_hint,
            'state': state,
            'nonce': nonce,
            'response_mode': 'form_post',
            'prompt': 'none',
            'lti_message_hint': lti_message_hint,
        }
        url = build_redirect_url(self.settings.authorization_endpoint, redirect_params)
        logger.info(f"Login initiated for issuer {issuer}, state {token_prefix(state)}")

        return RedirectInstruction(url=url, cookies=self.handshake_cookies(state, nonce))


class LaunchKind(str, enum.Enum):
    instructor = 'instructor'
    learner = 'learner'


@dataclass
class LaunchResult:
    kind: LaunchKind
    user: UserInfo
    course: CourseInfo
    claims: LaunchClaims


class LaunchValidator:
    """Cross-checks the handshake cookies and the id_token of a launch"""

    def __init__(self, verifier):
        self.verifier = verifier

    def validate(
        self,
        id_token: Optional[str],
        returned_state: Optional[str],
        cookie_state: Optional[str],
        cookie_nonce: Optional[str],
    ) -> LaunchResult:
        if not id_token:
            logger.error("Launch request without id_token")
            raise MissingToken()

        # State is checked before any token work
        if not cookie_state or not returned_state or not hmac.compare_digest(
                cookie_state.encode("utf-8"), returned_state.encode("utf-8")):
            logger.error(f"State mismatch - cookie: {token_prefix(cookie_state)}, returned: {token_prefix(returned_state)}")
            raise StateMismatch()

        claims = self.verifier.verify(id_token)

        if not cookie_nonce or not hmac.compare_digest(cookie_nonce.encode("utf-8"), claims.nonce.encode("utf-8")):
            logger.error(f"Nonce mismatch - cookie: {token_prefix(cookie_nonce)}, token: {token_prefix(claims.nonce)}")
            raise NonceMismatch()

        user = extract_user_info(claims)
        course = extract_course_info(claims)
        role = RoleClassifier.classify(claims.roles)
        logger.info(f"Launch validated - user: {user.lti_user_id}, course: {course.canvas_course_id}, role: {role.value}")

        if role == RoleClass.instructor:
            return LaunchResult(kind=LaunchKind.instructor, user=user, course=course, claims=claims)
        if role == RoleClass.learner:
            return LaunchResult(kind=LaunchKind.learner, user=user, course=course, claims=claims)

        logger.warning(f"Launch rejected for roles: {claims.roles}")
        raise UnauthorizedRole()


class DeepLinkingResponder:
    """Signs LtiDeepLinkingResponse messages with the tool's private key"""

    def __init__(self, settings: ToolSettings):
        self.settings = settings

    def create_assistant_resource(self, title: str, custom_params: Optional[Dict[str, Any]] = None,
                                  icon_url: Optional[str] = None) -> DeepLinkResource:
        """Content item pointing the platform back at our launch endpoint"""
        resource = DeepLinkResource()
        resource.set_url(self.settings.launch_url) \
                .set_title(title)
        if custom_params:
            resource.set_custom_params(custom_params)
        if icon_url:
            resource.set_icon_url(icon_url)
        return resource

    def sign(self, deployment_id: str, content_items: List[Union[DeepLinkResource, Dict[str, Any]]],
             data: Optional[str] = None) -> str:
        if not (self.settings.private_key and self.settings.kid and self.settings.client_id):
            raise KeyNotConfigured("LTI_PRIVATE_KEY, LTI_KID and LTI_CLIENT_ID are required to sign deep linking responses")

        items = [item.to_dict() if isinstance(item, DeepLinkResource) else item for item in content_items]
        issued_at = int(time.time())
        payload = {
            "iss": self.settings.client_id,
            "aud": self.settings.issuer,
            "iat": issued_at,
            "exp": issued_at + DEEP_LINK_RESPONSE_TTL,
            "nonce": str(uuid.uuid4()),
            CLAIM_MESSAGE_TYPE: DEEP_LINKING_RESPONSE_MESSAGE_TYPE,
            CLAIM_VERSION: LTI_VERSION,
            CLAIM_DEPLOYMENT_ID: deployment_id,
            CLAIM_CONTENT_ITEMS: items,
        }
        if data:
            payload[CLAIM_DL_DATA] = data

        try:
            token = jwt.encode(payload, self.settings.private_key, algorithm="RS256", headers={"kid": self.settings.kid})
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            raise KeyNotConfigured(f"LTI_PRIVATE_KEY could not be used for signing: {str(e)}") from e

        logger.info(f"Signed deep linking response for deployment {deployment_id} with {len(items)} items")
        return token

    @staticmethod
    def response_form(return_url: str, token: str) -> str:
        return build_auto_submit_form(return_url, {"JWT": token})
