"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Table names match the ones the learning client has always used
(`users`, `exam_records`, ...). Timestamps are written as aware UTC and
shifted for display by the response helpers in `services`.
"""

from typing import Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered learner.

    Fields:
    - `employee_id`: unique 7-digit employee number
    - `name`: display name, must match exactly on login
    """
    __tablename__ = 'users'

    id: Optional[int] = Field(default=None, primary_key=True)
    employee_id: str = Field(index=True, nullable=False, unique=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow)


class UserProfile(SQLModel, table=True):
    """One-to-one profile data for a `User` (currently just the avatar)."""
    __tablename__ = 'user_profiles'

    user_id: int = Field(foreign_key='users.id', primary_key=True)
    avatar: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ExamRecord(SQLModel, table=True):
    """A single completed exam attempt with its aggregate score."""
    __tablename__ = 'exam_records'

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='users.id', index=True)
    subject: str = Field(index=True)
    score: float
    total_questions: int
    correct_count: int
    time_spent: int = 0
    exam_date: datetime = Field(default_factory=utcnow, index=True)


class WrongAnswer(SQLModel, table=True):
    """A question answered wrongly inside an `ExamRecord`."""
    __tablename__ = 'wrong_answers'

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_record_id: int = Field(foreign_key='exam_records.id', index=True)
    question_number: Optional[int] = None
    question_text: Optional[str] = None
    user_answer: str = ''
    correct_answer: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class UserWrongQuestion(SQLModel, table=True):
    """An entry in a user's personal wrong-question bank.

    Rows are unique per (user, subject, question text); saving the same
    question again updates the existing row.
    """
    __tablename__ = 'user_wrong_questions'
    __table_args__ = (UniqueConstraint('user_id', 'subject', 'question_text'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='users.id', index=True)
    subject: str
    question_text: str
    options_json: Optional[str] = None
    correct_answer: Optional[str] = None
    user_answer: Optional[str] = None
    source: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class UserNote(SQLModel, table=True):
    """A free-form study note owned by a user."""
    __tablename__ = 'user_notes'

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='users.id', index=True)
    title: str
    content: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
