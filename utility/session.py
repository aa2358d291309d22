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

import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from constants import SESSION_COOKIE, SESSION_COOKIE_MAX_AGE, SESSION_DURATION_HOURS
from database import crud
from database.models import LTISession, utcnow
from database.schemas import SessionCreate
from lti.utils import CookieSpec
from utility.exceptions import StorageError
from logging_config import setup_logging, token_prefix

logger = setup_logging(module_name='session_store')

SESSION_DURATION = timedelta(hours=SESSION_DURATION_HOURS)


def generate_session_token() -> str:
    return secrets.token_hex(32)


def session_cookie(session_token: str, production: bool) -> CookieSpec:
    """Cookie carrying the session token.

    Production launches happen inside a cross-site platform iframe, which
    needs SameSite=None and therefore Secure.
    """
    if production:
        return CookieSpec(name=SESSION_COOKIE, value=session_token, max_age=SESSION_COOKIE_MAX_AGE,
                          secure=True, samesite="none")
    return CookieSpec(name=SESSION_COOKIE, value=session_token, max_age=SESSION_COOKIE_MAX_AGE,
                      secure=False, samesite="lax")


class SessionStore:
    """Lifecycle of persistent LTI sessions.

    A user has at most one active, unexpired session per course as far as
    find_or_create is concerned. Two concurrent first launches may both
    create a row; both stay valid and find_active returns the newest one.
    Rows are deactivated, never deleted.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow,
                 duration: timedelta = SESSION_DURATION):
        self.db = db
        self._clock = clock
        self.duration = duration

    def _storage_error(self, operation: str, error: SQLAlchemyError) -> StorageError:
        logger.error(f"Session {operation} failed: {str(error)}")
        return StorageError(f"Session {operation} failed")

    def find_active(self, lti_user_id: str, canvas_course_id: Optional[str]) -> Optional[LTISession]:
        try:
            return crud.get_active_session(self.db, lti_user_id, canvas_course_id, self._clock())
        except SQLAlchemyError as e:
            self.db.rollback()
            raise self._storage_error("lookup", e) from e

    def create(self, session_data: SessionCreate) -> LTISession:
        now = self._clock()
        token = generate_session_token()
        try:
            db_session = crud.create_session(self.db, token, session_data, now, now + self.duration)
        except SQLAlchemyError as e:
            raise self._storage_error("create", e) from e
        logger.info(f"Created session {token_prefix(token)} for user {session_data.lti_user_id} "
                    f"in course {session_data.canvas_course_id}")
        return db_session

    def find_or_create(self, session_data: SessionCreate) -> LTISession:
        existing = self.find_active(session_data.lti_user_id, session_data.canvas_course_id)
        if existing is not None:
            self.extend(existing.session_token)
            try:
                self.db.refresh(existing)
            except SQLAlchemyError as e:
                raise self._storage_error("update", e) from e
            logger.info(f"Reusing session {token_prefix(existing.session_token)} for user {session_data.lti_user_id}")
            return existing
        return self.create(session_data)

    def get(self, session_token: Optional[str]) -> Optional[LTISession]:
        """Return the session when active and unexpired, bumping last_activity"""
        if not session_token:
            return None
        now = self._clock()
        try:
            db_session = crud.get_valid_session_by_token(self.db, session_token, now)
            if db_session is None:
                logger.info(f"No valid session for token {token_prefix(session_token)}")
                return None
            return crud.touch_session(self.db, db_session, now)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise self._storage_error("lookup", e) from e

    def extend(self, session_token: str) -> bool:
        now = self._clock()
        try:
            return crud.extend_session(self.db, session_token, now, now + self.duration)
        except SQLAlchemyError as e:
            raise self._storage_error("extend", e) from e

    def record_deep_link(self, session_token: str, return_url: Optional[str], data: Optional[str] = None) -> bool:
        """Keep the platform's deep linking return target for the next signed response"""
        try:
            return crud.set_deep_link_context(self.db, session_token, return_url, data)
        except SQLAlchemyError as e:
            raise self._storage_error("update", e) from e

    def invalidate(self, session_token: str) -> bool:
        try:
            invalidated = crud.invalidate_session(self.db, session_token, self._clock())
        except SQLAlchemyError as e:
            raise self._storage_error("invalidate", e) from e
        logger.info(f"Invalidated session {token_prefix(session_token)}: {invalidated}")
        return invalidated

    def sweep_expired(self) -> int:
        try:
            count = crud.deactivate_expired_sessions(self.db, self._clock())
        except SQLAlchemyError as e:
            raise self._storage_error("sweep", e) from e
        logger.info(f"Deactivated {count} expired sessions")
        return count
