# Overview: Atomic document numbers for orders and transfer references.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import LedgerError
from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(LedgerError):
    """Raised when document sequence operations fail."""

    status_code = 409


def _increment(document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    db.session.flush()
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Allocate the next number for a document type inside the caller's transaction.

    The first allocation inserts the sequence row under a SAVEPOINT so a
    concurrent first insert only rolls back the savepoint, not the caller's work.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    next_num = _increment(document_type)
    if next_num is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            next_num = _increment(document_type)
            if next_num is None:
                raise DocumentSequenceError(f"Could not allocate {document_type} number")

    return f"{prefix}{str(next_num).zfill(pad)}"
