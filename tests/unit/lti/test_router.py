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

from datetime import timedelta
from urllib.parse import urlparse, parse_qs

import jwt
import pytest

from constants import (
    CLAIM_CONTENT_ITEMS, CLAIM_DEEP_LINKING_SETTINGS, CLAIM_DEPLOYMENT_ID, CLAIM_DL_DATA, CLAIM_MESSAGE_TYPE,
    CLAIM_ROLES, DEEP_LINKING_REQUEST_MESSAGE_TYPE, NONCE_COOKIE, SESSION_COOKIE, STATE_COOKIE,
)
from database import crud
from database.models import Course, LTISession, Professor
from database.schemas import CourseUpsert, ProfessorUpsert
from lti.keys import KeySetPublisher

LEARNER_ROLES = ["http://purl.imsglobal.org/vocab/lis/v2/membership#Learner"]
ADMIN_ROLES = ["http://purl.imsglobal.org/vocab/lis/v2/institution/person#Administrator"]


def _launch(client, token, state="state-1", cookie_state="state-1", cookie_nonce="nonce-abc"):
    client.cookies.set(STATE_COOKIE, cookie_state)
    client.cookies.set(NONCE_COOKIE, cookie_nonce)
    return client.post("/lti/launch", data={"id_token": token, "state": state}, follow_redirects=False)


def _seed_course(db, cipher, api_key="sk-course-key", instructions="Be concise.", is_active=True):
    professor = crud.upsert_professor(db, ProfessorUpsert(lti_user_id="prof-1", name="Prof Smith"))
    course = crud.upsert_course(db, CourseUpsert(
        canvas_course_id="course-1", course_name="Intro to Biology", professor_id=professor.id,
        deployment_id="deployment-1",
    ))
    if api_key:
        course = crud.update_course_api_key(db, course, cipher.encrypt(api_key))
    if instructions:
        course = crud.update_course_instructions(db, course, instructions)
    course.is_active = is_active
    db.commit()
    return course


def _login_params(settings, **overrides):
    params = {
        "iss": settings.issuer,
        "login_hint": "login-hint-1",
        "target_link_uri": settings.launch_url,
        "lti_message_hint": "message-hint-1",
    }
    params.update(overrides)
    return {key: value for key, value in params.items() if value is not None}


# Login

def test_login_get_redirects_to_platform(client, settings):
    response = client.get("/lti/login", params=_login_params(settings), follow_redirects=False)

    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith(f"{settings.issuer}/api/lti/authorize_redirect?")
    query = parse_qs(urlparse(location).query)
    assert query["lti_message_hint"] == ["message-hint-1"]

    cookies = [cookie.lower() for cookie in response.headers.get_list("set-cookie")]
    state_cookie = next(cookie for cookie in cookies if cookie.startswith(STATE_COOKIE))
    assert f"{STATE_COOKIE}={query['state'][0].lower()}" in state_cookie
    assert "httponly" in state_cookie
    assert "secure" in state_cookie
    assert "samesite=lax" in state_cookie
    assert any(cookie.startswith(NONCE_COOKIE) for cookie in cookies)


def test_login_post_form(client, settings):
    response = client.post("/lti/login", data=_login_params(settings), follow_redirects=False)
    assert response.status_code == 302
    assert "nonce=" in response.headers["location"]


def test_login_missing_parameters(client, settings):
    response = client.get("/lti/login", params=_login_params(settings, login_hint=None), follow_redirects=False)

    assert response.status_code == 400
    assert "login_hint" in response.json()["detail"]


def test_login_unknown_issuer(client, settings):
    params = _login_params(settings, iss="https://evil.example.com")
    response = client.get("/lti/login", params=params, follow_redirects=False)

    assert response.status_code == 400
    assert "Invalid issuer" in response.json()["detail"]


# Launch

def test_instructor_launch_provisions_and_creates_session(client, app_db, id_token_factory):
    response = _launch(client, id_token_factory())

    assert response.status_code == 303
    assert response.headers["location"] == "/dashboard"
    session_token = response.cookies.get(SESSION_COOKIE)
    assert session_token and len(session_token) == 64

    app_db.expire_all()
    professor = app_db.query(Professor).filter(Professor.lti_user_id == "user-123").one()
    assert professor.name == "Ada Lovelace"
    assert professor.last_login is not None
    course = app_db.query(Course).filter(Course.canvas_course_id == "course-1").one()
    assert course.professor_id == professor.id
    assert course.course_code == "BIO101"
    assert course.is_setup_complete is False

    session = app_db.query(LTISession).filter(LTISession.session_token == session_token).one()
    assert session.lti_user_id == "user-123"
    assert session.deployment_id == "deployment-1"
    assert session.is_active


def test_repeat_launch_reuses_session(client, app_db, id_token_factory):
    first = _launch(client, id_token_factory())
    second = _launch(client, id_token_factory())

    assert first.cookies.get(SESSION_COOKIE) == second.cookies.get(SESSION_COOKIE)
    app_db.expire_all()
    assert app_db.query(LTISession).count() == 1
    session = app_db.query(LTISession).one()
    assert session.expires_at - session.last_activity == timedelta(hours=24)


def test_launch_clears_handshake_cookies(client, id_token_factory):
    response = _launch(client, id_token_factory())

    cookies = [cookie.lower() for cookie in response.headers.get_list("set-cookie")]
    for name in (STATE_COOKIE, NONCE_COOKIE):
        cleared = next(cookie for cookie in cookies if cookie.startswith(f"{name}="))
        assert "max-age=0" in cleared


def test_learner_launch_without_course(client, id_token_factory):
    response = _launch(client, id_token_factory(**{CLAIM_ROLES: LEARNER_ROLES}))

    assert response.status_code == 200
    assert "AI Assistant Not Available" in response.text
    assert response.cookies.get(SESSION_COOKIE) is None


def test_learner_launch_before_setup(client, app, app_db, id_token_factory):
    _seed_course(app_db, app.state.cipher, api_key=None)

    response = _launch(client, id_token_factory(**{CLAIM_ROLES: LEARNER_ROLES}))

    assert response.status_code == 200
    assert "AI Assistant Not Ready" in response.text


def test_learner_launch_inactive_course(client, app, app_db, id_token_factory):
    _seed_course(app_db, app.state.cipher, is_active=False)

    response = _launch(client, id_token_factory(**{CLAIM_ROLES: LEARNER_ROLES}))

    assert "AI Assistant Not Available" in response.text


def test_learner_launch_ready_course(client, app, app_db, id_token_factory):
    _seed_course(app_db, app.state.cipher)

    response = _launch(client, id_token_factory(**{CLAIM_ROLES: LEARNER_ROLES}))

    assert response.status_code == 303
    assert response.headers["location"] == "/chat"
    assert response.cookies.get(SESSION_COOKIE)


def test_launch_state_mismatch(client, id_token_factory):
    response = _launch(client, id_token_factory(), state="state-1", cookie_state="state-2")

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid state parameter"


def test_launch_missing_token(client):
    client.cookies.set(STATE_COOKIE, "state-1")
    response = client.post("/lti/launch", data={"state": "state-1"}, follow_redirects=False)

    assert response.status_code == 400


def test_launch_nonce_mismatch(client, id_token_factory):
    response = _launch(client, id_token_factory(), cookie_nonce="another-nonce")

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid nonce"


def test_launch_bad_signature_returns_generic_message(client, id_token_factory, other_keys):
    response = _launch(client, id_token_factory(private_pem=other_keys["private_pem"]))

    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication failed"


def test_launch_wrong_audience(client, id_token_factory):
    response = _launch(client, id_token_factory(aud="another-tool"))

    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication failed"


def test_launch_unauthorized_role(client, app_db, id_token_factory):
    response = _launch(client, id_token_factory(**{CLAIM_ROLES: ADMIN_ROLES}))

    assert response.status_code == 403
    app_db.expire_all()
    assert app_db.query(LTISession).count() == 0


# JWKS

@pytest.mark.parametrize("path", ["/lti/.well-known/jwks.json", "/lti/jwks"])
def test_jwks(client, tool_keys, path):
    response = client.get(path)

    assert response.status_code == 200
    assert response.headers["cache-control"] == "public, max-age=3600"
    keys = response.json()["keys"]
    assert [key["kid"] for key in keys] == [tool_keys["kid"]]
    assert keys[0]["alg"] == "RS256"
    assert keys[0]["use"] == "sig"


def test_jwks_without_key_material(client, app):
    app.state.key_set_publisher = KeySetPublisher(None, None)

    response = client.get("/lti/.well-known/jwks.json")

    assert response.status_code == 200
    assert response.json() == {"keys": []}


# Logout

def test_logout_invalidates_session(client, app_db, id_token_factory):
    session_token = _launch(client, id_token_factory()).cookies.get(SESSION_COOKIE)

    response = client.post("/lti/logout")

    assert response.status_code == 200
    assert response.json() == {"success": True, "invalidated": True}
    app_db.expire_all()
    session = app_db.query(LTISession).filter(LTISession.session_token == session_token).one()
    assert session.is_active is False

    client.cookies.set(SESSION_COOKIE, session_token)
    assert client.get("/api/dashboard/course").status_code == 401


def test_logout_without_session(client):
    response = client.post("/lti/logout")

    assert response.status_code == 200
    assert response.json() == {"success": True, "invalidated": False}


# Deep linking

RETURN_URL = "https://canvas.test.instructure.com/courses/1/deep_linking_response"


def _deep_link_token(id_token_factory, return_url=RETURN_URL, data="platform-data", **overrides):
    dl_settings = {"deep_link_return_url": return_url, "accept_types": ["ltiResourceLink"]}
    if data is not None:
        dl_settings["data"] = data
    overrides.setdefault(CLAIM_MESSAGE_TYPE, DEEP_LINKING_REQUEST_MESSAGE_TYPE)
    overrides.setdefault(CLAIM_DEEP_LINKING_SETTINGS, dl_settings)
    return id_token_factory(**overrides)


def _signed_jwt(response):
    return response.text.split('name="JWT" value="')[1].split('"')[0]


def test_deep_link_response(client, settings, tool_keys, id_token_factory):
    _launch(client, _deep_link_token(id_token_factory))

    response = client.post("/lti/deep-link/response", data={"title": "Biology Assistant"})

    assert response.status_code == 200
    assert f'action="{RETURN_URL}"' in response.text
    payload = jwt.decode(_signed_jwt(response), tool_keys["public_pem"], algorithms=["RS256"], audience=settings.issuer)
    item = payload[CLAIM_CONTENT_ITEMS][0]
    assert item["title"] == "Biology Assistant"
    assert item["custom"] == {"canvas_course_id": "course-1"}
    assert payload[CLAIM_DEPLOYMENT_ID] == "deployment-1"
    assert payload[CLAIM_DL_DATA] == "platform-data"


def test_deep_link_response_ignores_form_supplied_target(client, settings, tool_keys, id_token_factory):
    _launch(client, _deep_link_token(id_token_factory))

    response = client.post("/lti/deep-link/response", data={
        "deep_link_return_url": "https://attacker.example.com/collect",
        "deployment_id": "attacker-deployment",
        "data": "attacker-data",
    })

    assert response.status_code == 200
    assert "attacker.example.com" not in response.text
    assert f'action="{RETURN_URL}"' in response.text
    payload = jwt.decode(_signed_jwt(response), tool_keys["public_pem"], algorithms=["RS256"], audience=settings.issuer)
    assert payload[CLAIM_DEPLOYMENT_ID] == "deployment-1"
    assert payload[CLAIM_DL_DATA] == "platform-data"


def test_deep_link_response_refused_without_deep_linking_launch(client, id_token_factory):
    _launch(client, id_token_factory())

    response = client.post("/lti/deep-link/response", data={
        "deep_link_return_url": "https://attacker.example.com/collect",
    })

    assert response.status_code == 400


def test_deep_link_response_answers_each_request_once(client, app_db, id_token_factory):
    launch = _launch(client, _deep_link_token(id_token_factory))

    assert client.post("/lti/deep-link/response", data={}).status_code == 200
    assert client.post("/lti/deep-link/response", data={}).status_code == 400

    app_db.expire_all()
    session = app_db.query(LTISession).filter(
        LTISession.session_token == launch.cookies.get(SESSION_COOKIE)).one()
    assert session.deep_link_return_url is None


def test_regular_launch_clears_pending_deep_link(client, id_token_factory):
    _launch(client, _deep_link_token(id_token_factory))
    _launch(client, id_token_factory())

    assert client.post("/lti/deep-link/response", data={}).status_code == 400


def test_deep_link_launch_with_unusable_return_url(client, id_token_factory):
    _launch(client, _deep_link_token(id_token_factory, return_url="javascript:alert(1)"))

    assert client.post("/lti/deep-link/response", data={}).status_code == 400


def test_deep_link_response_requires_instructor(client, app, app_db, id_token_factory):
    _seed_course(app_db, app.state.cipher)
    _launch(client, _deep_link_token(id_token_factory, **{CLAIM_ROLES: LEARNER_ROLES}))

    response = client.post("/lti/deep-link/response", data={})

    assert response.status_code == 403


def test_deep_link_response_requires_session(client):
    response = client.post("/lti/deep-link/response", data={"deep_link_return_url": "https://canvas.example.com/r"})
    assert response.status_code == 401
