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

from typing import Optional, Tuple
from urllib.parse import urlparse
from fastapi import HTTPException
from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse, HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from constants import (
    STATE_COOKIE, NONCE_COOKIE, SESSION_COOKIE, INTERNAL_SERVER_ERROR_MESSAGE, DEFAULT_ASSISTANT_NAME,
    DEEP_LINKING_REQUEST_MESSAGE_TYPE,
)
from logging_config import setup_logging, token_prefix
from database.db import get_db
from database.models import LTISession
from database.schemas import SessionCreate, ProfessorUpsert, CourseUpsert
from database import crud
from lti.services import LaunchKind, LaunchResult
from lti.utils import get_form_data, get_request_params, build_notice_page
from utility.auth import get_session_store, require_instructor_session
from utility.exceptions import LTIError, KeyNotConfigured
from utility.session import SessionStore, session_cookie

# Configure logging
logger = setup_logging(module_name='lti')

JWKS_CACHE_CONTROL = "public, max-age=3600"
NOT_AVAILABLE_TITLE = "AI Assistant Not Available"
NOT_AVAILABLE_MESSAGE = "The AI assistant is not available for this course. Please contact your instructor."
NOT_READY_TITLE = "AI Assistant Not Ready"
NOT_READY_MESSAGE = "Your instructor is still setting up the AI assistant for this course. Please check back later."

router = APIRouter()


def _raise_http(e: LTIError, context: str):
    """Log the detailed failure, answer with the error's public message"""
    logger.error(f"{context}: {type(e).__name__}: {str(e)}")
    raise HTTPException(status_code=e.status_code, detail=e.public_message) from e


def _session_data(request: Request, result: LaunchResult) -> SessionCreate:
    return SessionCreate(
        lti_user_id=result.user.lti_user_id,
        canvas_user_id=result.user.canvas_user_id,
        canvas_course_id=result.course.canvas_course_id,
        user_name=result.user.name,
        user_email=result.user.email,
        user_roles=result.user.roles,
        course_name=result.course.course_name,
        deployment_id=result.course.deployment_id,
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )


def _provision_instructor(db: Session, result: LaunchResult):
    """Instructor launches keep the professor and course rows current"""
    professor = crud.upsert_professor(db, ProfessorUpsert(
        lti_user_id=result.user.lti_user_id,
        canvas_user_id=result.user.canvas_user_id,
        name=result.user.name,
        email=result.user.email or None,
    ))
    if result.course.canvas_course_id:
        crud.upsert_course(db, CourseUpsert(
            canvas_course_id=result.course.canvas_course_id,
            course_name=result.course.course_name,
            course_code=result.claims.context.get("label"),
            professor_id=professor.id,
            deployment_id=result.course.deployment_id,
        ))
    logger.info(f"Provisioned professor {professor.id} for course {result.course.canvas_course_id}")


def _is_http_url(url: Optional[str]) -> bool:
    parsed = urlparse(url or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _deep_link_context(result: LaunchResult) -> Tuple[Optional[str], Optional[str]]:
    """Return target and opaque data of a deep linking request launch, (None, None) otherwise"""
    claims = result.claims
    if result.kind != LaunchKind.instructor or claims.message_type != DEEP_LINKING_REQUEST_MESSAGE_TYPE:
        return None, None
    dl_settings = claims.deep_linking_settings or {}
    return_url = dl_settings.get("deep_link_return_url")
    if not _is_http_url(return_url):
        logger.warning("Deep linking request launch without a usable deep_link_return_url")
        return None, None
    data = dl_settings.get("data")
    return return_url, data if isinstance(data, str) else None


def _learner_gate(db: Session, result: LaunchResult):
    """Return an HTML notice when the learner's course cannot serve chat yet"""
    course = crud.get_course_by_canvas_id(db, result.course.canvas_course_id) if result.course.canvas_course_id else None
    if course is None or not course.is_active:
        logger.info(f"Learner launch for unavailable course {result.course.canvas_course_id}")
        return HTMLResponse(build_notice_page(NOT_AVAILABLE_TITLE, NOT_AVAILABLE_MESSAGE), status_code=200)
    if not course.is_setup_complete or not course.openai_api_key:
        logger.info(f"Learner launch for course {course.canvas_course_id} before setup completed")
        return HTMLResponse(build_notice_page(NOT_READY_TITLE, NOT_READY_MESSAGE), status_code=200)
    return None


async def _login(request: Request):
    params = await get_request_params(request)
    handshake = request.app.state.login_handshake
    try:
        instruction = handshake.initiate(
            issuer=params.get("iss"),
            login_hint=params.get("login_hint"),
            target_link_uri=params.get("target_link_uri"),
            lti_message_hint=params.get("lti_message_hint"),
            client_id=params.get("client_id"),
        )
    except LTIError as e:
        _raise_http(e, "Error in login")

    response = RedirectResponse(url=instruction.url, status_code=302)
    for cookie in instruction.cookies:
        cookie.apply(response)
    return response


@router.get("/login", tags=["LTI"])
async def login_get(request: Request):
    """Handles GET requests to the login endpoint"""
    return await _login(request)


@router.post("/login", tags=["LTI"])
async def login_post(request: Request):
    """Handles POST requests to the login endpoint"""
    return await _login(request)


@router.post("/launch")
async def launch_post(
    request: Request,
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
):
    """Handles the LTI launch request via POST"""
    form_data = await get_form_data(request)
    validator = request.app.state.launch_validator

    try:
        result = validator.validate(
            id_token=form_data.get("id_token"),
            returned_state=form_data.get("state"),
            cookie_state=request.cookies.get(STATE_COOKIE),
            cookie_nonce=request.cookies.get(NONCE_COOKIE),
        )
    except LTIError as e:
        _raise_http(e, "Launch rejected")

    try:
        if result.kind == LaunchKind.instructor:
            _provision_instructor(db, result)
            redirect_to = "/dashboard"
        else:
            notice = _learner_gate(db, result)
            if notice is not None:
                return notice
            redirect_to = "/chat"

        session = store.find_or_create(_session_data(request, result))
        store.record_deep_link(session.session_token, *_deep_link_context(result))
    except LTIError as e:
        _raise_http(e, "Launch failed")
    except SQLAlchemyError as e:
        logger.error(f"Launch failed on storage: {str(e)}")
        raise HTTPException(status_code=500, detail=INTERNAL_SERVER_ERROR_MESSAGE) from e

    response = RedirectResponse(url=redirect_to, status_code=303)
    session_cookie(session.session_token, request.app.state.settings.is_production).apply(response)
    response.delete_cookie(STATE_COOKIE, path="/")
    response.delete_cookie(NONCE_COOKIE, path="/")
    logger.info(f"Launch completed for {result.kind.value} {result.user.lti_user_id}, session {token_prefix(session.session_token)}")
    return response


def _jwks_response(request: Request) -> JSONResponse:
    try:
        jwks = request.app.state.key_set_publisher.publish()
    except KeyNotConfigured as e:
        logger.error(f"Error generating JWKS: {str(e)}")
        jwks = {"keys": []}
    return JSONResponse(content=jwks, headers={"Cache-Control": JWKS_CACHE_CONTROL})


@router.get("/.well-known/jwks.json")
async def get_jwks(request: Request):
    """Returns the JSON Web Key Set (JWKS) for the tool"""
    return _jwks_response(request)


@router.get("/jwks")
async def get_jwks_alias(request: Request):
    """Same key set, at the path some platforms are configured with"""
    return _jwks_response(request)


@router.post("/logout")
async def logout(request: Request, store: SessionStore = Depends(get_session_store)):
    session_token = request.cookies.get(SESSION_COOKIE)
    invalidated = False
    if session_token:
        try:
            invalidated = store.invalidate(session_token)
        except LTIError as e:
            _raise_http(e, "Logout failed")

    response = JSONResponse(content={"success": True, "invalidated": invalidated})
    session_cookie("", request.app.state.settings.is_production).clear(response)
    return response


@router.post("/deep-link/response")
async def deep_link_response(
    request: Request,
    session: LTISession = Depends(require_instructor_session),
    store: SessionStore = Depends(get_session_store),
):
    """Signs a deep linking response placing the course assistant and posts it back to the platform.

    The return URL, deployment and data all come from the verified
    LtiDeepLinkingRequest launch recorded on the session; the form only
    chooses the title. Each request can be answered once.
    """
    form_data = await get_form_data(request)
    return_url = session.deep_link_return_url
    if not return_url or not session.deployment_id:
        logger.warning(f"Deep linking response requested without a pending request for session "
                       f"{token_prefix(session.session_token)}")
        raise HTTPException(status_code=400, detail="No deep linking request is pending for this session")

    responder = request.app.state.deep_linking
    resource = responder.create_assistant_resource(
        title=form_data.get("title") or DEFAULT_ASSISTANT_NAME,
        custom_params={"canvas_course_id": session.canvas_course_id} if session.canvas_course_id else None,
    )
    try:
        token = responder.sign(session.deployment_id, [resource], data=session.deep_link_data)
        store.record_deep_link(session.session_token, None, None)
    except LTIError as e:
        _raise_http(e, "Deep linking response failed")

    return HTMLResponse(responder.response_form(return_url, token))
