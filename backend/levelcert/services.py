"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and validation. Services are intentionally thin: they validate input,
resolve the calling user, execute domain logic through repositories and
commit once per call so multi-statement writes are atomic. Expected
failures are raised as `errors.ServiceError` subclasses carrying the
localized message shown to the client.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session
from . import models, repositories
from .auth import is_valid_employee_id, parse_positive_int, require_user
from .config import settings
from .errors import (
    Conflict, Forbidden, InvalidInput, NotFound,
    INVALID_EMPLOYEE_ID, MISSING_PARAMS,
)

logger = logging.getLogger("levelcert.services")

PASS_MESSAGE = '恭喜！考试通过！'
FAIL_MESSAGE = '继续努力！'
ALL_SUBJECTS = 'ALL'


def _clean(value) -> str:
    """Trim a request value, treating `None` as the empty string."""
    return str(value if value is not None else '').strip()


def display_time(value) -> Optional[str]:
    """Render a stored UTC timestamp in the configured display offset.

    Accepts naive (UTC) or aware datetimes, and the ISO strings, with or
    without an offset, that SQLite returns for raw queries.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    shifted = value + timedelta(hours=settings.DISPLAY_TZ_OFFSET_HOURS)
    return shifted.strftime('%Y-%m-%d %H:%M:%S')


def display_score(value):
    """Render whole-number scores as ints, keep fractional ones as floats."""
    if value is None:
        return None
    value = float(value)
    return int(value) if value.is_integer() else value


def _validate_employee_id(employee_id: str) -> None:
    if not is_valid_employee_id(employee_id):
        raise InvalidInput(INVALID_EMPLOYEE_ID)


class AuthService:
    """Registration, login and account deletion."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.profile_repo = repositories.ProfileRepository(session)

    def _user_payload(self, user: models.User) -> dict:
        profile = self.profile_repo.get(user.id)
        return {
            'id': user.id,
            'employeeId': user.employee_id,
            'name': user.name,
            'avatar': profile.avatar if profile else None,
        }

    def login(self, employee_id, name) -> dict:
        """Return the user payload for an existing account.

        The account must exist and the stored name must match exactly
        (after trimming); there is no implicit registration.
        """
        employee_id, name = _clean(employee_id), _clean(name)
        if not employee_id or not name:
            raise InvalidInput(MISSING_PARAMS)
        _validate_employee_id(employee_id)
        user = self.user_repo.get_by_employee_id(employee_id)
        if not user:
            raise NotFound('账号不存在，请先注册')
        if _clean(user.name) != name:
            raise Forbidden('姓名与工号不匹配')
        return self._user_payload(user)

    def register(self, employee_id, name, avatar=None) -> dict:
        """Create a new account, optionally storing an avatar.

        Raises `Conflict` when the employee id is already registered.
        """
        employee_id, name, avatar = _clean(employee_id), _clean(name), _clean(avatar)
        if not employee_id or not name:
            raise InvalidInput(MISSING_PARAMS)
        _validate_employee_id(employee_id)
        if self.user_repo.get_by_employee_id(employee_id):
            raise Conflict('账号已存在，请直接登录')
        try:
            user = self.user_repo.create(models.User(employee_id=employee_id, name=name))
            if avatar:
                self.profile_repo.set_avatar(user.id, avatar)
            self.session.commit()
        except IntegrityError:
            # lost a race with a concurrent registration of the same id
            self.session.rollback()
            raise Conflict('账号已存在，请直接登录')
        logger.info("user registered id=%s employee_id=%s", user.id, employee_id)
        return self._user_payload(user)

    def delete_account(self, user_id, employee_id, name) -> None:
        """Delete the user and everything they own in one transaction.

        All three identity values must match the stored row. Rows are
        removed child-first: wrong answers, exam records, wrong-question
        bank, notes, profile, then the user.
        """
        uid = parse_positive_int(user_id)
        employee_id, name = _clean(employee_id), _clean(name)
        if uid is None or not employee_id or not name:
            raise InvalidInput(MISSING_PARAMS)
        _validate_employee_id(employee_id)
        user = self.user_repo.get_by_id_and_employee_id(uid, employee_id)
        if not user:
            raise NotFound('用户不存在')
        if _clean(user.name) != name:
            raise Forbidden('用户信息不匹配')
        exam_repo = repositories.ExamRepository(self.session)
        try:
            exam_repo.delete_wrong_answers_for_user(user.id)
            exam_repo.delete_records_for_user(user.id)
            repositories.WrongQuestionRepository(self.session).delete_for_user(user.id)
            repositories.NoteRepository(self.session).delete_for_user(user.id)
            self.profile_repo.delete_for_user(user.id)
            self.user_repo.delete(user)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info("account deleted id=%s employee_id=%s", uid, employee_id)


class WrongQuestionService:
    """Manage a user's personal wrong-question bank."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.WrongQuestionRepository(session)

    def list(self, user: models.User, subject: Optional[str] = None) -> List[dict]:
        """List the bank for one subject, or all subjects for `ALL`/absent."""
        subject_filter = subject if subject and subject != ALL_SUBJECTS else None
        rows = self.repo.list_for_user(user.id, subject_filter, settings.LIST_LIMIT)
        return [
            {
                'id': r.id,
                'subject': r.subject,
                'question_text': r.question_text,
                'options_json': r.options_json,
                'correct_answer': r.correct_answer,
                'user_answer': r.user_answer,
                'source': r.source,
                'created_at': display_time(r.created_at),
                'updated_at': display_time(r.updated_at),
                'options': json.loads(r.options_json) if r.options_json else [],
            }
            for r in rows
        ]

    def upsert(self, user: models.User, subject, question_text, options=None,
               correct_answer=None, user_answer=None, source=None) -> models.UserWrongQuestion:
        """Save a missed question; re-saving the same text updates it."""
        subject, question_text = _clean(subject), _clean(question_text)
        if not subject or not question_text:
            raise InvalidInput(MISSING_PARAMS)
        item = models.UserWrongQuestion(
            user_id=user.id,
            subject=subject,
            question_text=question_text,
            options_json=json.dumps(options if isinstance(options, list) else [], ensure_ascii=False),
            correct_answer=_clean(correct_answer),
            user_answer=_clean(user_answer),
            source=_clean(source),
        )
        saved = self.repo.upsert(item)
        self.session.commit()
        return saved

    def delete(self, user: models.User, wrong_id) -> int:
        """Delete an owned entry; other users' ids are silently ignored."""
        item_id = parse_positive_int(wrong_id)
        if item_id is None:
            raise InvalidInput('缺少wrongId参数')
        removed = self.repo.delete_owned(item_id, user.id)
        self.session.commit()
        return removed


class NoteService:
    """Create, update, list and delete a user's notes."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.NoteRepository(session)

    def list(self, user: models.User) -> List[dict]:
        rows = self.repo.list_for_user(user.id, settings.LIST_LIMIT)
        return [
            {
                'id': n.id,
                'title': n.title,
                'content': n.content,
                'created_at': display_time(n.created_at),
                'updated_at': display_time(n.updated_at),
            }
            for n in rows
        ]

    def upsert(self, user: models.User, title, content, note_id=None) -> int:
        """Update the note `note_id` if given, otherwise create one.

        Returns the note id. Raises `NotFound` when `note_id` does not
        name a note owned by `user`.
        """
        title, content = _clean(title), _clean(content)
        if not title or not content:
            raise InvalidInput('标题和内容不能为空')
        nid = parse_positive_int(note_id)
        if nid is not None:
            if not self.repo.update_owned(nid, user.id, title, content):
                raise NotFound('笔记不存在')
            self.session.commit()
            return nid
        note = self.repo.create(models.UserNote(user_id=user.id, title=title, content=content))
        self.session.commit()
        return note.id

    def delete(self, user: models.User, note_id) -> int:
        nid = parse_positive_int(note_id)
        if nid is None:
            raise InvalidInput('缺少noteId参数')
        removed = self.repo.delete_owned(nid, user.id)
        self.session.commit()
        return removed


class ExamService:
    """Persist exam results and serve exam history."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.ExamRepository(session)

    def save(self, submission) -> dict:
        """Store an exam record with its wrong answers in one transaction.

        `submission` is a `schemas.ExamSubmissionIn`. Returns the new
        record id, the user's best score in the subject (including this
        attempt) and the pass/fail message for the configured threshold.
        """
        subject = _clean(submission.subject)
        if (not _clean(submission.user_id) or not _clean(submission.employee_id) or not subject
                or submission.score is None or submission.total_questions is None
                or submission.correct_count is None):
            raise InvalidInput(MISSING_PARAMS)
        user = require_user(self.session, submission.user_id, submission.employee_id)
        record = models.ExamRecord(
            user_id=user.id,
            subject=subject,
            score=submission.score,
            total_questions=submission.total_questions,
            correct_count=submission.correct_count,
            time_spent=submission.time_spent or 0,
        )
        wrong_answers = [
            models.WrongAnswer(
                question_number=wa.question_number,
                question_text=wa.question_text,
                user_answer=wa.user_answer or '',
                correct_answer=wa.correct_answer,
            )
            for wa in (submission.wrong_answers or [])
        ]
        try:
            created = self.repo.create(record, wrong_answers)
            best = self.repo.best_score(user.id, subject)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            "exam saved id=%s user_id=%s subject=%s score=%s wrong=%d",
            created.id, user.id, subject, submission.score, len(wrong_answers),
        )
        return {
            'examRecordId': created.id,
            'bestScore': display_score(best) or 0,
            'message': PASS_MESSAGE if submission.score >= settings.PASS_SCORE else FAIL_MESSAGE,
        }

    def list_for_user(self, user_id, employee_id) -> List[dict]:
        """Return the most recent exams, each with the subject best score."""
        if not _clean(user_id) or not _clean(employee_id):
            raise InvalidInput(MISSING_PARAMS)
        user = require_user(self.session, user_id, employee_id)
        rows = self.repo.list_recent_with_best(user.id, settings.EXAM_LIST_LIMIT)
        return [
            {
                'id': r.id,
                'subject': r.subject,
                'score': display_score(r.score),
                'total_questions': r.total_questions,
                'correct_count': r.correct_count,
                'time_spent': r.time_spent,
                'exam_date': display_time(r.exam_date),
                'best_score': display_score(best),
            }
            for r, best in rows
        ]

    def history(self, exam_record_id) -> dict:
        """Return one exam with its owner and wrong answers.

        Any existing exam id is readable; no ownership check is made.
        """
        if not _clean(exam_record_id):
            raise InvalidInput('缺少examRecordId参数')
        exam_id = parse_positive_int(exam_record_id)
        found = self.repo.get_with_user(exam_id) if exam_id is not None else None
        if not found:
            raise NotFound('考试记录不存在')
        record, user = found
        wrong = self.repo.list_wrong_answers(record.id)
        return {
            'id': record.id,
            'user_id': record.user_id,
            'subject': record.subject,
            'score': display_score(record.score),
            'total_questions': record.total_questions,
            'correct_count': record.correct_count,
            'time_spent': record.time_spent,
            'exam_date': display_time(record.exam_date),
            'name': user.name,
            'employee_id': user.employee_id,
            'wrongAnswers': [
                {
                    'question_number': wa.question_number,
                    'question_text': wa.question_text,
                    'user_answer': wa.user_answer,
                    'correct_answer': wa.correct_answer,
                    'created_at': display_time(wa.created_at),
                }
                for wa in wrong
            ],
        }


class StatsService:
    """Aggregate statistics in three modes selected by the query."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.StatsRepository(session)

    def get(self, user_id: Optional[str] = None, subject: Optional[str] = None):
        """Per-user stats when `user_id` is given, else per-subject, else global."""
        if user_id:
            uid = parse_positive_int(user_id)
            if uid is None:
                return []
            rows = self.repo.per_user(uid)
            for row in rows:
                row['last_exam_date'] = display_time(row['last_exam_date'])
                row['best_score'] = display_score(row['best_score'])
            return rows
        if subject:
            return self.repo.per_subject(subject, settings.PASS_SCORE)
        by_subject = self.repo.subject_stats()
        for row in by_subject:
            row['last_exam_date'] = display_time(row.get('last_exam_date'))
            row['best_score'] = display_score(row.get('best_score'))
        return {
            'totalUsers': self.repo.count_users(),
            'totalExams': self.repo.count_exams(),
            'passRate': self.repo.pass_rate(settings.PASS_SCORE),
            'bySubject': by_subject,
        }
