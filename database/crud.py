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

from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from database.schemas import SessionCreate, ProfessorUpsert, CourseUpsert
from database.models import LTISession, Professor, Course, utcnow


# Sessions

def _user_course_filter(query, lti_user_id: str, canvas_course_id: Optional[str]):
    query = query.filter(LTISession.lti_user_id == lti_user_id)
    if canvas_course_id is None:
        return query.filter(LTISession.canvas_course_id.is_(None))
    return query.filter(LTISession.canvas_course_id == canvas_course_id)

def get_active_session(db: Session, lti_user_id: str, canvas_course_id: Optional[str], now: datetime) -> Optional[LTISession]:
    query = _user_course_filter(db.query(LTISession), lti_user_id, canvas_course_id)
    return query.filter(
        LTISession.is_active.is_(True),
        LTISession.expires_at > now
    ).order_by(LTISession.created_at.desc()).first()

def get_valid_session_by_token(db: Session, session_token: str, now: datetime) -> Optional[LTISession]:
    return db.query(LTISession).filter(
        LTISession.session_token == session_token,
        LTISession.is_active.is_(True),
        LTISession.expires_at > now
    ).first()

def create_session(db: Session, session_token: str, session_data: SessionCreate, now: datetime, expires_at: datetime) -> LTISession:
    try:
        db_session = LTISession(
            session_token=session_token,
            created_at=now,
            last_activity=now,
            expires_at=expires_at,
            is_active=True,
            **session_data.model_dump()
        )
        db.add(db_session)
        db.commit()
        db.refresh(db_session)
        return db_session
    except SQLAlchemyError as e:
        db.rollback()
        raise e

def touch_session(db: Session, db_session: LTISession, now: datetime) -> LTISession:
    try:
        db_session.last_activity = now
        db.commit()
        db.refresh(db_session)
        return db_session
    except SQLAlchemyError as e:
        db.rollback()
        raise e

def extend_session(db: Session, session_token: str, now: datetime, expires_at: datetime) -> bool:
    try:
        updated = db.query(LTISession).filter(
            LTISession.session_token == session_token,
            LTISession.is_active.is_(True)
        ).update({"expires_at": expires_at, "last_activity": now}, synchronize_session=False)
        db.commit()
        return updated > 0
    except SQLAlchemyError as e:
        db.rollback()
        raise e

def set_deep_link_context(db: Session, session_token: str, return_url: Optional[str], data: Optional[str]) -> bool:
    try:
        updated = db.query(LTISession).filter(
            LTISession.session_token == session_token,
            LTISession.is_active.is_(True)
        ).update({"deep_link_return_url": return_url, "deep_link_data": data}, synchronize_session=False)
        db.commit()
        return updated > 0
    except SQLAlchemyError as e:
        db.rollback()
        raise e

def invalidate_session(db: Session, session_token: str, now: datetime) -> bool:
    try:
        updated = db.query(LTISession).filter(
            LTISession.session_token == session_token
        ).update({"is_active": False, "last_activity": now}, synchronize_session=False)
        db.commit()
        return updated > 0
    except SQLAlchemyError as e:
        db.rollback()
        raise e

def deactivate_expired_sessions(db: Session, now: datetime) -> int:
    try:
        updated = db.query(LTISession).filter(
            LTISession.is_active.is_(True),
            LTISession.expires_at < now
        ).update({"is_active": False}, synchronize_session=False)
        db.commit()
        return updated
    except SQLAlchemyError as e:
        db.rollback()
        raise e


# Professors

def get_professor_by_lti_user_id(db: Session, lti_user_id: str) -> Optional[Professor]:
    return db.query(Professor).filter(Professor.lti_user_id == lti_user_id).first()

def upsert_professor(db: Session, professor: ProfessorUpsert) -> Professor:
    try:
        now = utcnow()
        db_professor = get_professor_by_lti_user_id(db, professor.lti_user_id)
        if db_professor is None:
            db_professor = Professor(created_at=now, **professor.model_dump())
            db.add(db_professor)
        else:
            for key, value in professor.model_dump(exclude_none=True).items():
                setattr(db_professor, key, value)
        db_professor.last_login = now
        db.commit()
        db.refresh(db_professor)
        return db_professor
    except SQLAlchemyError as e:
        db.rollback()
        raise e


# Courses

def get_course_by_canvas_id(db: Session, canvas_course_id: str) -> Optional[Course]:
    return db.query(Course).filter(Course.canvas_course_id == canvas_course_id).first()

def upsert_course(db: Session, course: CourseUpsert) -> Course:
    """Create the course on first instructor launch, refresh its metadata afterwards.

    Setup fields (API key, instructions, model parameters) are never touched here.
    """
    try:
        db_course = get_course_by_canvas_id(db, course.canvas_course_id)
        if db_course is None:
            db_course = Course(**course.model_dump())
            db.add(db_course)
        else:
            for key, value in course.model_dump(exclude_none=True).items():
                setattr(db_course, key, value)
        db.commit()
        db.refresh(db_course)
        return db_course
    except SQLAlchemyError as e:
        db.rollback()
        raise e

def _refresh_setup_state(db_course: Course):
    db_course.is_setup_complete = bool(db_course.openai_api_key) and bool(db_course.system_instructions)

def update_course_api_key(db: Session, db_course: Course, encrypted_api_key: str) -> Course:
    try:
        db_course.openai_api_key = encrypted_api_key
        _refresh_setup_state(db_course)
        db.commit()
        db.refresh(db_course)
        return db_course
    except SQLAlchemyError as e:
        db.rollback()
        raise e

def update_course_instructions(db: Session, db_course: Course, system_instructions: str) -> Course:
    try:
        db_course.system_instructions = system_instructions
        _refresh_setup_state(db_course)
        db.commit()
        db.refresh(db_course)
        return db_course
    except SQLAlchemyError as e:
        db.rollback()
        raise e
