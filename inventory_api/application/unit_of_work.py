import re
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import DuplicateError

# sqlite: "UNIQUE constraint failed: categories.name"
# postgres: 'duplicate key value violates unique constraint ... DETAIL:  Key (name)=(Tools) already exists.'
_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: \w+\.(\w+)")
_POSTGRES_UNIQUE = re.compile(r"Key \((\w+)\)=\((.*?)\) already exists")


def duplicate_from_integrity_error(exc: IntegrityError) -> Optional[DuplicateError]:
    """DuplicateError for a unique-constraint violation, None for any other integrity failure."""
    message = str(exc.orig)
    match = _POSTGRES_UNIQUE.search(message)
    if match:
        return DuplicateError(match.group(1), match.group(2))
    match = _SQLITE_UNIQUE.search(message)
    if match:
        return DuplicateError(match.group(1))
    return None


@contextmanager
def translate_integrity_errors(db: Session):
    try:
        yield
    except IntegrityError as exc:
        db.rollback()
        duplicate = duplicate_from_integrity_error(exc)
        if duplicate is None:
            raise
        raise duplicate from exc


def commit(db: Session) -> None:
    with translate_integrity_errors(db):
        db.commit()
