# Overview: Service-layer operations for the audit log; append-only, no business logic.

from __future__ import annotations

import json
from typing import Optional

from ..extensions import db
from ..models import AuditLog
"""
Audit Log Invariants (authoritative)

- Append-only record of who created which business document.
- No domain/business logic in the audit log itself.
- Entries are written inside the same DB transaction as the record they describe,
  so a rolled-back invoice/return/transfer leaves no audit row behind.
"""


def append_audit_event(
    *,
    tenant_id: int,
    entity_type: str,
    entity_id: int,
    action: str,
    user_id: int | None = None,
    payload: Optional[dict] = None,
) -> AuditLog:
    """
    Append-only audit event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - Does not commit; the caller owns the transaction.
    """
    entry = AuditLog(
        tenant_id=tenant_id,
        user_id=user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry
