# Overview: Per-tenant document numbering for invoices and transfers.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


DOCUMENT_TYPE_INVOICE = "INVOICE"
DOCUMENT_TYPE_TRANSFER = "TRANSFER"

DOCUMENT_PREFIXES = {
    DOCUMENT_TYPE_INVOICE: "INV",
    DOCUMENT_TYPE_TRANSFER: "TRF",
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    tenant_id: int,
    document_type: str,
    pad: int = 5,
) -> str:
    """
    Allocate the next document number for a tenant/type, e.g. "INV-2026-00042".

    Runs inside the caller's transaction and does not commit, so a rolled-back
    invoice releases its number. The counter is per tenant and type and does
    not restart with the year; the year in the number is the allocation year.

    Two transactions creating the first sequence row for a tenant race on the
    (tenant_id, document_type) unique key. The loser sees IntegrityError,
    which the caller's run_with_retry(retry_on_integrity=True) retries; on the
    retry the row exists and the UPDATE path is taken.
    """
    if not tenant_id:
        raise DocumentSequenceError("tenant_id is required")
    prefix = DOCUMENT_PREFIXES.get(document_type)
    if prefix is None:
        raise DocumentSequenceError(f"unknown document_type: {document_type}")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(tenant_id=tenant_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(tenant_id=tenant_id, document_type=document_type, next_number=2)
        db.session.add(seq)
        db.session.flush()
        next_num = 1

    return f"{prefix}-{utcnow().year}-{next_num:0{pad}d}"
