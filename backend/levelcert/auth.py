"""Identity resolution and FastAPI dependency.

There are no sessions or tokens: every authenticated request carries
the user's numeric id together with their 7-digit employee id, and both
must belong to the same stored row. `ensure_user` performs that check;
`get_query_user` wraps it as a dependency for GET endpoints whose
identity arrives in the query string.
"""

import re
from typing import Optional
from fastapi import Depends, Query
from sqlmodel import Session
from .database import get_session
from .errors import InvalidUser
from . import models, repositories

EMPLOYEE_ID_RE = re.compile(r'^\d{7}$')


def is_valid_employee_id(value: str) -> bool:
    return bool(EMPLOYEE_ID_RE.match(value or ''))


def parse_positive_int(value) -> Optional[int]:
    """Return `value` as a positive int, or `None` if it is not one."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if number <= 0 or not number.is_integer():
        return None
    return int(number)


def ensure_user(session: Session, user_id, employee_id) -> Optional[models.User]:
    """Resolve the user for an (id, employee id) pair.

    Returns `None` when the id is not a positive number, the employee id
    is not seven digits, or the two values do not match the same row.
    """
    uid = parse_positive_int(user_id)
    eid = str(employee_id if employee_id is not None else '').strip()
    if uid is None or not is_valid_employee_id(eid):
        return None
    return repositories.UserRepository(session).get_by_id_and_employee_id(uid, eid)


def require_user(session: Session, user_id, employee_id) -> models.User:
    """Like `ensure_user` but raises `InvalidUser` (401) on failure."""
    user = ensure_user(session, user_id, employee_id)
    if not user:
        raise InvalidUser()
    return user


def get_query_user(
    user_id: Optional[str] = Query(default=None, alias='userId'),
    employee_id: Optional[str] = Query(default=None, alias='employeeId'),
    db: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency returning the user named by the query string."""
    return require_user(db, user_id, employee_id)
