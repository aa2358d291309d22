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

import openai
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from database import crud
from database.db import get_db
from database.models import LTISession, Course
from database.schemas import ChatRequest, ChatResponse
from function.llms.openai_invoke import get_chat_completion
from logging_config import setup_logging
from utility.auth import get_current_session
from utility.exceptions import DecryptionError

logger = setup_logging(module_name='chat')
router = APIRouter()


def build_system_message(course: Course) -> str:
    professor_name = course.professor.name if course.professor else ""
    return (
        f'You are an AI assistant for the course "{course.course_name}".\n\n'
        "Course Context:\n"
        f"- Course: {course.course_name}\n"
        f"- Assistant Name: {course.assistant_name}\n"
        f"- Professor: {professor_name}\n\n"
        "Professor's Instructions:\n"
        f"{course.system_instructions}\n\n"
        "You are embedded within the learning platform and helping a student in this course. "
        "Be helpful, accurate, and follow the professor's instructions above."
    )


def _error(status_code: int, error: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": error, "message": message})


@router.post("", response_model=ChatResponse)
def chat(
    body: ChatRequest,
    request: Request,
    session: LTISession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Answer the conversation with the course's configured assistant"""
    logger.info(f"Chat request from user {session.lti_user_id} in course {session.canvas_course_id}")

    course = crud.get_course_by_canvas_id(db, session.canvas_course_id) if session.canvas_course_id else None
    if not course or (session.deployment_id and course.deployment_id and course.deployment_id != session.deployment_id):
        raise _error(404, "course_not_found", "This course has not been set up with an AI assistant yet.")
    if not course.professor:
        raise _error(404, "professor_not_found", "Course professor not found.")
    if not course.openai_api_key or not course.system_instructions:
        raise _error(400, "not_configured", "AI assistant not configured. Please ask your professor to complete the setup.")

    try:
        api_key = request.app.state.cipher.reveal(course.openai_api_key)
    except DecryptionError as e:
        logger.error(f"Failed to decrypt API key for course {course.id}: {str(e)}")
        raise _error(500, "decryption_failed", "Failed to decrypt API key. Please update your configuration.")

    logger.info(f"Using model: {course.model}, temperature: {course.temperature}, {len(body.messages)} messages")
    try:
        content = get_chat_completion(
            api_key=api_key,
            base_url=request.app.state.settings.openai_api_url,
            system_message=build_system_message(course),
            messages=[message.model_dump() for message in body.messages],
            model=course.model,
            temperature=course.temperature,
            max_tokens=course.max_tokens,
        )
    except openai.AuthenticationError as e:
        logger.error(f"Chat provider rejected the API key for course {course.id}: {str(e)}")
        raise _error(400, "invalid_api_key", "Invalid OpenAI API key. Please check your configuration.")
    except openai.RateLimitError as e:
        logger.error(f"Chat provider quota exceeded for course {course.id}: {str(e)}")
        raise _error(429, "quota_exceeded", "OpenAI API quota exceeded. Please contact your professor.")
    except openai.OpenAIError as e:
        logger.error(f"Chat provider error for course {course.id}: {str(e)}")
        raise _error(502, "provider_error", "The AI provider could not answer. Please try again later.")

    return ChatResponse(role="assistant", content=content)
