# © [2025] EDT&Partners. Licensed under CC BY 4.0.

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session
from icecream import ic

from constants import SESSION_COOKIE, NOT_AUTHENTICATED_MESSAGE, INSTRUCTOR_REQUIRED_MESSAGE, INTERNAL_SERVER_ERROR_MESSAGE
from database.db import get_db
from database.models import LTISession
from lti.roles import is_instructor_session
from utility.exceptions import StorageError
from utility.session import SessionStore


def get_session_store(request: Request, db: Session = Depends(get_db)) -> SessionStore:
    clock = getattr(request.app.state, "session_clock", None)
    if clock is not None:
        return SessionStore(db, clock=clock)
    return SessionStore(db)


def get_current_session(request: Request, store: SessionStore = Depends(get_session_store)) -> LTISession:
    session_token = request.cookies.get(SESSION_COOKIE)
    if not session_token:
        ic("No session cookie on request")
        raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED_MESSAGE)

    try:
        session = store.get(session_token)
    except StorageError as e:
        ic(f"Session lookup failed: {str(e)}")
        raise HTTPException(status_code=500, detail=INTERNAL_SERVER_ERROR_MESSAGE) from e

    if session is None:
        ic("Session cookie does not match an active session")
        raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED_MESSAGE)
    return session


def require_instructor_session(session: LTISession = Depends(get_current_session)) -> LTISession:
    if not is_instructor_session(session):
        ic(f"Session for user {session.lti_user_id} is not an instructor session")
        raise HTTPException(status_code=403, detail=INSTRUCTOR_REQUIRED_MESSAGE)
    return session
