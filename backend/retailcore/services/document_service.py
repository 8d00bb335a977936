# Overview: Per-branch atomic document numbering.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


def _current_number(branch_id: int, document_type: str) -> int:
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(branch_id=branch_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    branch_id: int,
    branch_code: str,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for a branch/type.

    Runs inside the caller's transaction: the increment is a single
    conditional UPDATE and rolls back with the caller. The first number for
    a branch inserts the sequence row inside a SAVEPOINT so a concurrent
    insert of the same row only undoes the savepoint.
    """
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.branch_id == branch_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_number(branch_id, document_type)
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(
                    branch_id=branch_id,
                    document_type=document_type,
                    next_number=2,
                ))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_number(branch_id, document_type)

    return f"{branch_code}-{prefix}-{next_num:0{pad}d}"
