# © [2025] EDT&Partners. Licensed under CC BY 4.0.

from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field


class SessionCreate(BaseModel):
    lti_user_id: str
    canvas_user_id: Optional[str] = None
    canvas_course_id: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    user_roles: List[str] = []
    course_name: Optional[str] = None
    deployment_id: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None

class ProfessorUpsert(BaseModel):
    lti_user_id: str
    canvas_user_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None

class CourseUpsert(BaseModel):
    canvas_course_id: str
    course_name: Optional[str] = None
    course_code: Optional[str] = None
    professor_id: UUID
    deployment_id: Optional[str] = None

class CourseConfigResponse(BaseModel):
    id: UUID
    canvas_course_id: str
    course_name: Optional[str] = None
    assistant_name: str
    system_instructions: Optional[str] = None
    model: str
    max_tokens: str
    temperature: str
    is_active: bool
    is_setup_complete: bool
    has_api_key: bool = False

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

class ChatMessage(BaseModel):
    role: str
    content: str

class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)

class ChatResponse(BaseModel):
    role: str = "assistant"
    content: str
