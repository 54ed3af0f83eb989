"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable. The client speaks camelCase, so
every field declares its wire alias; numbers are accepted as JSON numbers
or numeric strings. Fields are optional at this layer: presence and
format checks happen in the services so they can answer with the
localized messages the client displays.
"""

from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class IdentityIn(_CamelModel):
    """The (userId, employeeId) pair every authenticated call carries."""
    user_id: Optional[str] = Field(default=None, alias='userId')
    employee_id: Optional[str] = Field(default=None, alias='employeeId')


class LoginIn(_CamelModel):
    """Payload for login and registration."""
    employee_id: Optional[str] = Field(default=None, alias='employeeId')
    name: Optional[str] = None
    avatar: Optional[str] = None


class DeleteAccountIn(IdentityIn):
    name: Optional[str] = None


class WrongQuestionUpsertIn(IdentityIn):
    subject: Optional[str] = None
    question_text: Optional[str] = Field(default=None, alias='questionText')
    options: Any = None
    correct_answer: Optional[str] = Field(default=None, alias='correctAnswer')
    user_answer: Optional[str] = Field(default=None, alias='userAnswer')
    source: Optional[str] = None


class WrongQuestionDeleteIn(IdentityIn):
    wrong_id: Optional[str] = Field(default=None, alias='wrongId')


class NoteUpsertIn(IdentityIn):
    note_id: Optional[str] = Field(default=None, alias='noteId')
    title: Optional[str] = None
    content: Optional[str] = None


class NoteDeleteIn(IdentityIn):
    note_id: Optional[str] = Field(default=None, alias='noteId')


class WrongAnswerIn(_CamelModel):
    """One wrongly answered question inside an exam submission."""
    question_number: Optional[int] = Field(default=None, alias='questionNumber')
    question_text: Optional[str] = Field(default=None, alias='questionText')
    user_answer: Optional[str] = Field(default=None, alias='userAnswer')
    correct_answer: Optional[str] = Field(default=None, alias='correctAnswer')


class ExamSubmissionIn(IdentityIn):
    """Request model for saving a finished exam."""
    subject: Optional[str] = None
    score: Optional[float] = None
    total_questions: Optional[int] = Field(default=None, alias='totalQuestions')
    correct_count: Optional[int] = Field(default=None, alias='correctCount')
    time_spent: Optional[int] = Field(default=None, alias='timeSpent')
    wrong_answers: Optional[List[WrongAnswerIn]] = Field(default=None, alias='wrongAnswers')
