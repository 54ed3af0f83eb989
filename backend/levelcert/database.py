"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` (a local SQLite file by default) and provides
small helpers used by the application and tests.
"""

from sqlalchemy import event
from sqlmodel import SQLModel, create_engine, Session
from .config import settings
from . import models  # noqa: F401  registers the tables on SQLModel.metadata

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")
engine = create_engine(
    settings.DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
)


if _is_sqlite:
    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_conn, _record):
        # SQLite ignores REFERENCES clauses unless asked per connection
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys = ON")
        cur.close()


SUBJECT_STATS_VIEW = """
CREATE VIEW subject_stats AS
SELECT
    subject,
    COUNT(*) AS exam_count,
    COUNT(DISTINCT user_id) AS user_count,
    AVG(score) AS avg_score,
    MAX(score) AS best_score,
    SUM(CASE WHEN score >= {pass_score} THEN 1 ELSE 0 END) AS pass_count,
    MAX(exam_date) AS last_exam_date
FROM exam_records
GROUP BY subject
"""


def create_db_and_tables():
    """Create database tables and the `subject_stats` view.

    Runs once at application start and from `run_migrations.py`. Table
    creation is idempotent; the view is dropped and recreated so its pass
    threshold follows the current `PASS_SCORE`.
    """
    SQLModel.metadata.create_all(engine)
    _recreate_subject_stats_view()


def _recreate_subject_stats_view():
    with engine.begin() as conn:
        conn.exec_driver_sql("DROP VIEW IF EXISTS subject_stats")
        conn.exec_driver_sql(SUBJECT_STATS_VIEW.format(pass_score=int(settings.PASS_SCORE)))


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
