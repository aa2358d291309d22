# © [2025] EDT&Partners. Licensed under CC BY 4.0.

from datetime import datetime, timezone
import uuid
from sqlalchemy import Column, String, ForeignKey, Text, DateTime, Boolean, JSON, Uuid, Index
from sqlalchemy.orm import relationship
from constants import (
    PROFESSORS_ID, DEFAULT_ASSISTANT_NAME, DEFAULT_MODEL, DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE,
)
from database.db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every table in this schema stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class LTISession(Base):
    __tablename__ = 'sessions'
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    session_token = Column(String(255), unique=True, nullable=False, index=True)
    lti_user_id = Column(String(255), nullable=False)
    canvas_user_id = Column(String(255), nullable=True)
    canvas_course_id = Column(String(255), nullable=True)
    user_name = Column(String(255), nullable=True)
    user_email = Column(String(255), nullable=True)
    user_roles = Column(JSON, nullable=False, default=list)
    course_name = Column(String(255), nullable=True)
    deployment_id = Column(String(255), nullable=True)
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    deep_link_return_url = Column(Text, nullable=True)
    deep_link_data = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_activity = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('ix_sessions_user_course', 'lti_user_id', 'canvas_course_id'),
        Index('ix_sessions_expires_at', 'expires_at'),
    )


class Professor(Base):
    __tablename__ = 'professors'
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    lti_user_id = Column(String(255), unique=True, nullable=False)
    canvas_user_id = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    courses = relationship("Course", back_populates="professor")


class Course(Base):
    __tablename__ = 'courses'
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    canvas_course_id = Column(String(255), unique=True, nullable=False)
    course_name = Column(String(255), nullable=True)
    course_code = Column(String(255), nullable=True)
    professor_id = Column(Uuid, ForeignKey(PROFESSORS_ID), nullable=True)
    deployment_id = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    assistant_name = Column(String(255), nullable=False, default=DEFAULT_ASSISTANT_NAME)
    # Encrypted with SecretCipher; rows written before encryption hold plaintext
    openai_api_key = Column(Text, nullable=True)
    system_instructions = Column(Text, nullable=True)
    model = Column(String(100), nullable=False, default=DEFAULT_MODEL)
    max_tokens = Column(String(20), nullable=False, default=DEFAULT_MAX_TOKENS)
    temperature = Column(String(20), nullable=False, default=DEFAULT_TEMPERATURE)
    is_setup_complete = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    professor = relationship("Professor", back_populates="courses")
