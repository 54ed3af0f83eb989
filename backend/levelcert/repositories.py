"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
profiles, exams, wrong-question bank, notes, statistics). Repositories
add and flush but never commit: the calling service owns the
transaction, so multi-statement writes succeed or fail as a whole.
"""

from typing import List, Optional
from sqlmodel import Session, select
from sqlalchemy import case, func, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import aliased
from . import models

_UPSERT_INSERTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


class UserRepository:
    """Lookups and lifecycle operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Stage a new user and return it with its generated id."""
        self.session.add(user)
        self.session.flush()
        self.session.refresh(user)
        return user

    def get_by_employee_id(self, employee_id: str) -> Optional[models.User]:
        """Return a `User` by employee id or `None` if not found."""
        stmt = select(models.User).where(models.User.employee_id == employee_id)
        return self.session.exec(stmt).first()

    def get_by_id_and_employee_id(self, user_id: int, employee_id: str) -> Optional[models.User]:
        """Return the user only when both values belong to the same row."""
        stmt = select(models.User).where(
            models.User.id == user_id,
            models.User.employee_id == employee_id
        )
        return self.session.exec(stmt).first()

    def delete(self, user: models.User) -> None:
        self.session.delete(user)
        self.session.flush()


class ProfileRepository:
    """Access to the one-to-one `UserProfile` rows."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: int) -> Optional[models.UserProfile]:
        return self.session.get(models.UserProfile, user_id)

    def set_avatar(self, user_id: int, avatar: str) -> models.UserProfile:
        """Upsert the avatar for `user_id`, refreshing `updated_at` on change."""
        existing = self.get(user_id)
        if existing:
            existing.avatar = avatar
            existing.updated_at = models.utcnow()
            self.session.add(existing)
            self.session.flush()
            return existing
        profile = models.UserProfile(user_id=user_id, avatar=avatar)
        self.session.add(profile)
        self.session.flush()
        return profile

    def delete_for_user(self, user_id: int) -> None:
        profile = self.get(user_id)
        if profile:
            self.session.delete(profile)
            self.session.flush()


class ExamRepository:
    """Persist exam records with their wrong answers and query history."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, record: models.ExamRecord, wrong_answers: List[models.WrongAnswer]) -> models.ExamRecord:
        """Stage an `ExamRecord` and attach its `WrongAnswer`s.

        The record is flushed first to obtain an id, then each wrong
        answer is linked to it in submission order.
        """
        self.session.add(record)
        self.session.flush()
        self.session.refresh(record)
        for wa in wrong_answers:
            wa.exam_record_id = record.id
            self.session.add(wa)
        self.session.flush()
        return record

    def best_score(self, user_id: int, subject: str) -> Optional[float]:
        """Return the highest score `user_id` reached in `subject`."""
        stmt = select(func.max(models.ExamRecord.score)).where(
            models.ExamRecord.user_id == user_id,
            models.ExamRecord.subject == subject
        )
        return self.session.exec(stmt).one()

    def list_recent_with_best(self, user_id: int, limit: int):
        """Return `(ExamRecord, best_score)` rows, newest first.

        `best_score` is the user's best-ever score in the row's subject.
        """
        other = aliased(models.ExamRecord)
        best = (
            select(func.max(other.score))
            .where(other.user_id == user_id, other.subject == models.ExamRecord.subject)
            .correlate(models.ExamRecord)
            .scalar_subquery()
        )
        stmt = (
            select(models.ExamRecord, best.label('best_score'))
            .where(models.ExamRecord.user_id == user_id)
            .order_by(models.ExamRecord.exam_date.desc(), models.ExamRecord.id.desc())
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def get_with_user(self, exam_id: int):
        """Return `(ExamRecord, User)` for `exam_id` or `None`."""
        stmt = (
            select(models.ExamRecord, models.User)
            .join(models.User, models.User.id == models.ExamRecord.user_id)
            .where(models.ExamRecord.id == exam_id)
        )
        return self.session.exec(stmt).first()

    def list_wrong_answers(self, exam_id: int) -> List[models.WrongAnswer]:
        stmt = (
            select(models.WrongAnswer)
            .where(models.WrongAnswer.exam_record_id == exam_id)
            .order_by(models.WrongAnswer.question_number, models.WrongAnswer.id)
        )
        return self.session.exec(stmt).all()

    def delete_wrong_answers_for_user(self, user_id: int) -> None:
        exam_ids = select(models.ExamRecord.id).where(models.ExamRecord.user_id == user_id)
        stmt = select(models.WrongAnswer).where(models.WrongAnswer.exam_record_id.in_(exam_ids))
        for wa in self.session.exec(stmt).all():
            self.session.delete(wa)
        self.session.flush()

    def delete_records_for_user(self, user_id: int) -> None:
        stmt = select(models.ExamRecord).where(models.ExamRecord.user_id == user_id)
        for record in self.session.exec(stmt).all():
            self.session.delete(record)
        self.session.flush()


class WrongQuestionRepository:
    """Repository for the per-user wrong-question bank."""
    def __init__(self, session: Session):
        self.session = session

    def list_for_user(self, user_id: int, subject: Optional[str], limit: int) -> List[models.UserWrongQuestion]:
        """Return the user's bank, most recently updated first.

        `subject=None` lists every subject.
        """
        stmt = select(models.UserWrongQuestion).where(models.UserWrongQuestion.user_id == user_id)
        if subject is not None:
            stmt = stmt.where(models.UserWrongQuestion.subject == subject)
        stmt = stmt.order_by(
            models.UserWrongQuestion.updated_at.desc(),
            models.UserWrongQuestion.id.desc()
        ).limit(limit)
        return self.session.exec(stmt).all()

    def upsert(self, item: models.UserWrongQuestion) -> models.UserWrongQuestion:
        """Insert `item` or update the row with the same user/subject/text.

        A single `INSERT ... ON CONFLICT DO UPDATE`, so concurrent saves of
        the same question cannot collide on the unique key. On update only
        the answer fields, options, source and `updated_at` change;
        `created_at` keeps its original value.
        """
        now = models.utcnow()
        insert = _UPSERT_INSERTS[self.session.get_bind().dialect.name]
        stmt = insert(models.UserWrongQuestion).values(
            user_id=item.user_id,
            subject=item.subject,
            question_text=item.question_text,
            options_json=item.options_json,
            correct_answer=item.correct_answer,
            user_answer=item.user_answer,
            source=item.source,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=['user_id', 'subject', 'question_text'],
            set_={
                'options_json': stmt.excluded.options_json,
                'correct_answer': stmt.excluded.correct_answer,
                'user_answer': stmt.excluded.user_answer,
                'source': stmt.excluded.source,
                'updated_at': now,
            },
        )
        self.session.connection().execute(stmt)
        return self.session.exec(
            select(models.UserWrongQuestion).where(
                models.UserWrongQuestion.user_id == item.user_id,
                models.UserWrongQuestion.subject == item.subject,
                models.UserWrongQuestion.question_text == item.question_text
            ).execution_options(populate_existing=True)
        ).one()

    def delete_owned(self, item_id: int, user_id: int) -> int:
        """Delete `item_id` if it belongs to `user_id`; return rows removed."""
        existing = self.session.exec(
            select(models.UserWrongQuestion).where(
                models.UserWrongQuestion.id == item_id,
                models.UserWrongQuestion.user_id == user_id
            )
        ).first()
        if not existing:
            return 0
        self.session.delete(existing)
        self.session.flush()
        return 1

    def delete_for_user(self, user_id: int) -> None:
        stmt = select(models.UserWrongQuestion).where(models.UserWrongQuestion.user_id == user_id)
        for item in self.session.exec(stmt).all():
            self.session.delete(item)
        self.session.flush()


class NoteRepository:
    """CRUD operations for `UserNote`, always scoped to the owner."""
    def __init__(self, session: Session):
        self.session = session

    def list_for_user(self, user_id: int, limit: int) -> List[models.UserNote]:
        stmt = (
            select(models.UserNote)
            .where(models.UserNote.user_id == user_id)
            .order_by(models.UserNote.updated_at.desc(), models.UserNote.id.desc())
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def get_owned(self, note_id: int, user_id: int) -> Optional[models.UserNote]:
        stmt = select(models.UserNote).where(
            models.UserNote.id == note_id,
            models.UserNote.user_id == user_id
        )
        return self.session.exec(stmt).first()

    def create(self, note: models.UserNote) -> models.UserNote:
        self.session.add(note)
        self.session.flush()
        self.session.refresh(note)
        return note

    def update_owned(self, note_id: int, user_id: int, title: str, content: str) -> int:
        """Update an owned note in place; return the number of rows changed."""
        note = self.get_owned(note_id, user_id)
        if not note:
            return 0
        note.title = title
        note.content = content
        note.updated_at = models.utcnow()
        self.session.add(note)
        self.session.flush()
        return 1

    def delete_owned(self, note_id: int, user_id: int) -> int:
        note = self.get_owned(note_id, user_id)
        if not note:
            return 0
        self.session.delete(note)
        self.session.flush()
        return 1

    def delete_for_user(self, user_id: int) -> None:
        stmt = select(models.UserNote).where(models.UserNote.user_id == user_id)
        for note in self.session.exec(stmt).all():
            self.session.delete(note)
        self.session.flush()


class StatsRepository:
    """Read-only aggregate queries over exam records."""
    def __init__(self, session: Session):
        self.session = session

    def per_user(self, user_id: int):
        """Per-subject count/average/best/last date for one user."""
        er = models.ExamRecord
        stmt = (
            select(
                er.subject,
                func.count().label('exam_count'),
                func.avg(er.score).label('avg_score'),
                func.max(er.score).label('best_score'),
                func.max(er.exam_date).label('last_exam_date'),
            )
            .where(er.user_id == user_id)
            .group_by(er.subject)
            .order_by(er.subject)
        )
        return [dict(row._mapping) for row in self.session.exec(stmt).all()]

    def per_subject(self, subject: str, pass_score: float) -> dict:
        """Total, average and pass/fail counts for one subject."""
        er = models.ExamRecord
        stmt = select(
            func.count().label('total_exams'),
            func.avg(er.score).label('avg_score'),
            func.count(case((er.score >= pass_score, 1))).label('pass_count'),
            func.count(case((er.score < pass_score, 1))).label('fail_count'),
        ).where(er.subject == subject)
        return dict(self.session.exec(stmt).one()._mapping)

    def count_users(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.User)).one()

    def count_exams(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.ExamRecord)).one()

    def pass_rate(self, pass_score: float) -> Optional[float]:
        """Percentage of all exams at or above `pass_score` (None when empty)."""
        er = models.ExamRecord
        stmt = select(func.avg(case((er.score >= pass_score, 100), else_=0)))
        return self.session.exec(stmt).one()

    def subject_stats(self):
        """Rows of the precomputed `subject_stats` view."""
        rows = self.session.connection().execute(text("SELECT * FROM subject_stats ORDER BY subject"))
        return [dict(row._mapping) for row in rows]
