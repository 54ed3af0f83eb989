"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints used by the level-certification
learning client. Controllers are intentionally thin: they accept
requests, delegate to services, and return JSON responses. Every
response carries the same permissive CORS headers and errors always use
the `{"error": message}` envelope.

Endpoints implemented:
- POST /api/login
- POST /api/register
- POST /api/delete-account
- GET  /api/wrong-questions
- POST /api/wrong-questions/upsert
- POST /api/wrong-questions/delete
- GET  /api/notes
- POST /api/notes/upsert
- POST /api/notes/delete
- POST /api/save-exam
- GET  /api/user-exams
- GET  /api/exam-history
- GET  /api/stats
- GET  /api/health
"""

from contextlib import contextmanager
from typing import Optional
from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
import json
import logging
import time
import uuid
from .database import create_db_and_tables, get_session
from . import services, models
from .auth import get_query_user, require_user
from .config import settings
from .errors import ServiceError, MISSING_PARAMS
from .schemas import (
    LoginIn, DeleteAccountIn, WrongQuestionUpsertIn, WrongQuestionDeleteIn,
    NoteUpsertIn, NoteDeleteIn, ExamSubmissionIn,
)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization',
}


class UTF8JSONResponse(JSONResponse):
    media_type = "application/json; charset=utf-8"


app = FastAPI(title="Level Certification Learning API", default_response_class=UTF8JSONResponse)
logger = logging.getLogger("levelcert.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

create_db_and_tables()


def _error(status_code: int, message: str) -> UTF8JSONResponse:
    return UTF8JSONResponse(status_code=status_code, content={'error': message})


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    # Preflight is answered before routing, for any path.
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as exc:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        response = _error(500, str(exc))
    response.headers.update(CORS_HEADERS)
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
                "client": request.client.host if request.client else "unknown",
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    # Unknown paths and known paths with the wrong method look the same.
    if exc.status_code in (404, 405):
        return _error(404, 'Not found')
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("request validation failed path=%s errors=%s", request.url.path, exc.errors())
    return _error(400, MISSING_PARAMS)


@contextmanager
def storage_errors(action: str):
    """Turn storage failures into a 500 whose message names the action."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.exception("%s failed", action)
        raise HTTPException(status_code=500, detail=f"{action}失败: {e}")


@app.post('/api/login')
def login(payload: LoginIn, db: Session = Depends(get_session)):
    """Log in with employee id and name.

    The account must already exist and the name must match the stored
    one exactly. Returns the user with their avatar, if any.
    """
    auth = services.AuthService(db)
    with storage_errors('登录'):
        user = auth.login(payload.employee_id, payload.name)
    return {'success': True, 'user': user}


@app.post('/api/register')
def register(payload: LoginIn, db: Session = Depends(get_session)):
    """Register a new account (409 if the employee id is taken)."""
    auth = services.AuthService(db)
    with storage_errors('注册'):
        user = auth.register(payload.employee_id, payload.name, payload.avatar)
    return {'success': True, 'user': user}


@app.post('/api/delete-account')
def delete_account(payload: DeleteAccountIn, db: Session = Depends(get_session)):
    """Delete the account and all data it owns.

    Requires userId, employeeId and name to all match the stored user.
    """
    auth = services.AuthService(db)
    with storage_errors('注销'):
        auth.delete_account(payload.user_id, payload.employee_id, payload.name)
    return {'success': True}


@app.get('/api/wrong-questions')
def list_wrong_questions(subject: Optional[str] = None, db: Session = Depends(get_session),
                         user: models.User = Depends(get_query_user)):
    """List the caller's wrong-question bank (`subject=ALL` for every subject)."""
    items = services.WrongQuestionService(db).list(user, subject)
    return {'success': True, 'items': items}


@app.post('/api/wrong-questions/upsert')
def upsert_wrong_question(payload: WrongQuestionUpsertIn, db: Session = Depends(get_session)):
    user = require_user(db, payload.user_id, payload.employee_id)
    services.WrongQuestionService(db).upsert(
        user,
        subject=payload.subject,
        question_text=payload.question_text,
        options=payload.options,
        correct_answer=payload.correct_answer,
        user_answer=payload.user_answer,
        source=payload.source,
    )
    return {'success': True}


@app.post('/api/wrong-questions/delete')
def delete_wrong_question(payload: WrongQuestionDeleteIn, db: Session = Depends(get_session)):
    user = require_user(db, payload.user_id, payload.employee_id)
    services.WrongQuestionService(db).delete(user, payload.wrong_id)
    return {'success': True}


@app.get('/api/notes')
def list_notes(db: Session = Depends(get_session), user: models.User = Depends(get_query_user)):
    """List the caller's notes, most recently updated first."""
    return {'success': True, 'items': services.NoteService(db).list(user)}


@app.post('/api/notes/upsert')
def upsert_note(payload: NoteUpsertIn, db: Session = Depends(get_session)):
    """Create a note, or update it when `noteId` is supplied."""
    user = require_user(db, payload.user_id, payload.employee_id)
    note_id = services.NoteService(db).upsert(user, payload.title, payload.content, payload.note_id)
    return {'success': True, 'noteId': note_id}


@app.post('/api/notes/delete')
def delete_note(payload: NoteDeleteIn, db: Session = Depends(get_session)):
    user = require_user(db, payload.user_id, payload.employee_id)
    services.NoteService(db).delete(user, payload.note_id)
    return {'success': True}


@app.post('/api/save-exam')
def save_exam(submission: ExamSubmissionIn, db: Session = Depends(get_session)):
    """Save a finished exam with its wrong answers.

    Returns the new record id, the caller's best score in the subject and
    a pass/fail message.
    """
    svc = services.ExamService(db)
    with storage_errors('保存'):
        result = svc.save(submission)
    return {'success': True, **result}


@app.get('/api/user-exams')
def user_exams(user_id: Optional[str] = Query(default=None, alias='userId'),
               employee_id: Optional[str] = Query(default=None, alias='employeeId'),
               db: Session = Depends(get_session)):
    """Return the caller's most recent exam records."""
    svc = services.ExamService(db)
    with storage_errors('查询'):
        records = svc.list_for_user(user_id, employee_id)
    return {'success': True, 'records': records}


@app.get('/api/exam-history')
def exam_history(exam_record_id: Optional[str] = Query(default=None, alias='examRecordId'),
                 db: Session = Depends(get_session)):
    """Return one exam record with its wrong-answer detail."""
    svc = services.ExamService(db)
    with storage_errors('查询'):
        exam = svc.history(exam_record_id)
    return {'success': True, 'exam': exam}


@app.get('/api/stats')
def stats(user_id: Optional[str] = Query(default=None, alias='userId'),
          subject: Optional[str] = None,
          db: Session = Depends(get_session)):
    """Aggregate statistics: per user, per subject, or global."""
    svc = services.StatsService(db)
    with storage_errors('统计'):
        result = svc.get(user_id=user_id, subject=subject)
    return {'success': True, 'stats': result}


@app.get('/api/health')
def health():
    """Lightweight health check for uptime monitoring."""
    return {'status': 'ok', 'timestamp': int(time.time() * 1000)}
