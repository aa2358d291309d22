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

from typing import Optional
from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from constants import API_KEY_PREFIX, PROFESSOR_NOT_FOUND_MESSAGE, COURSE_NOT_FOUND_MESSAGE, INTERNAL_SERVER_ERROR_MESSAGE
from database import crud
from database.db import get_db
from database.models import LTISession, Course
from database.schemas import CourseConfigResponse
from logging_config import setup_logging
from utility.auth import require_instructor_session
from utility.exceptions import EncryptionError

logger = setup_logging(module_name='dashboard')
router = APIRouter()


def _instructor_course(db: Session, session: LTISession) -> Course:
    """The course the instructor session was launched from, owned by that instructor"""
    professor = crud.get_professor_by_lti_user_id(db, session.lti_user_id)
    if not professor:
        raise HTTPException(status_code=404, detail=PROFESSOR_NOT_FOUND_MESSAGE)

    course = crud.get_course_by_canvas_id(db, session.canvas_course_id) if session.canvas_course_id else None
    if not course or course.professor_id != professor.id:
        raise HTTPException(status_code=404, detail=COURSE_NOT_FOUND_MESSAGE)
    return course


@router.post("/setup")
def setup_course(
    request: Request,
    action: str = Form(...),
    api_key: Optional[str] = Form(None),
    system_instructions: Optional[str] = Form(None),
    session: LTISession = Depends(require_instructor_session),
    db: Session = Depends(get_db),
):
    """
    Save one step of the course setup.

    action=api_key stores the chat provider key encrypted at rest,
    action=system_instructions stores the professor's instructions. The
    course is ready for learners once both are present.
    """
    course = _instructor_course(db, session)

    try:
        if action == "api_key":
            if not api_key or not api_key.startswith(API_KEY_PREFIX):
                raise HTTPException(status_code=400, detail="Invalid API key format")
            encrypted_api_key = request.app.state.cipher.encrypt(api_key)
            course = crud.update_course_api_key(db, course, encrypted_api_key)
            logger.info(f"API key saved for course {course.id} ({course.course_name})")

        elif action == "system_instructions":
            if not system_instructions or not system_instructions.strip():
                raise HTTPException(status_code=400, detail="System instructions are required")
            course = crud.update_course_instructions(db, course, system_instructions)
            logger.info(f"System instructions saved for course {course.id}, setup complete: {course.is_setup_complete}")

        else:
            raise HTTPException(status_code=400, detail="Invalid action")

    except EncryptionError as e:
        logger.error(f"Failed to encrypt API key for course {course.id}: {str(e)}")
        raise HTTPException(status_code=500, detail=INTERNAL_SERVER_ERROR_MESSAGE)
    except SQLAlchemyError as e:
        logger.error(f"Dashboard setup error: {str(e)}")
        raise HTTPException(status_code=500, detail=INTERNAL_SERVER_ERROR_MESSAGE)

    return RedirectResponse(url="/dashboard", status_code=303)


@router.get("/course", response_model=CourseConfigResponse)
def get_course_config(
    session: LTISession = Depends(require_instructor_session),
    db: Session = Depends(get_db),
):
    """The instructor's course configuration. The API key itself is never returned"""
    course = _instructor_course(db, session)
    response = CourseConfigResponse.model_validate(course)
    return response.model_copy(update={"has_api_key": bool(course.openai_api_key)})
