# Overview: Atomic allocation of human-readable document numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..errors import ValidationError


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Atomically allocate the next document number for a document type.

    Runs inside the caller's transaction (flush only, no commit) so the number
    is released if the surrounding operation rolls back. The increment is a
    single UPDATE, so two concurrent callers can never read the same value.
    """
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        # First document of this type; a concurrent first insert loses on
        # the unique constraint and falls back to the UPDATE path.
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            db.session.execute(stmt)
            current = (
                db.session.query(DocumentSequence.next_number)
                .filter_by(document_type=document_type)
                .scalar()
            )
            next_num = current - 1

    return f"{prefix}-{next_num:0{pad}d}"
