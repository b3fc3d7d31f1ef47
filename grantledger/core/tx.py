# grantledger/core/tx.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

_DEPTH_KEY = "grantledger.atomic_depth"


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    All-or-nothing unit of work.

    The outermost block commits on success and rolls back on any exception.
    Nested blocks (one ledger calling another) join the outer transaction and
    never commit on their own, so a failure anywhere in the chain discards
    every write made by the whole operation.
    """
    depth = db.info.get(_DEPTH_KEY, 0)
    db.info[_DEPTH_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except Exception:
        if depth == 0:
            db.rollback()
        raise
    finally:
        db.info[_DEPTH_KEY] = depth


def reset_atomic_depth(db: Session) -> None:
    db.info.pop(_DEPTH_KEY, None)
