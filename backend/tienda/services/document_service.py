# Overview: Service-layer allocation of sequential document numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence

INVOICE_DOCUMENT_TYPE = "INVOICE"
INVOICE_PREFIX = "INV"
INVOICE_PAD = 6


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _current_next_number(document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )


def next_document_number(*, document_type: str, prefix: str, pad: int) -> str:
    """
    Atomically allocate the next document number for a document type.

    The increment is a single UPDATE ... SET next_number = next_number + 1,
    so two transactions can never read the same value. Runs inside the
    caller's transaction: if the caller rolls back, the number is released.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_next_number(document_type) - 1
    else:
        # First document of this type. A concurrent creator may win the insert,
        # in which case fall back to the increment path.
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"Could not allocate {document_type} number")
            next_num = _current_next_number(document_type) - 1

    return f"{prefix}-{next_num:0{pad}d}"


def next_invoice_number() -> str:
    """INV-000001, INV-000002, ..."""
    return next_document_number(
        document_type=INVOICE_DOCUMENT_TYPE,
        prefix=INVOICE_PREFIX,
        pad=INVOICE_PAD,
    )
