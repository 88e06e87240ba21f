"""Append-only audit trail helper."""

import json

from sqlalchemy.orm import Session

from dairy_books.models.audit_log import AuditLog


def record_event(
    db: Session, event_type: str, entity_id: int | None, **details
) -> AuditLog:
    """Add an audit record to the session. Flushed with the caller's work."""
    entry = AuditLog(
        event_type=event_type,
        entity_id=entity_id,
        details=json.dumps(details, default=str, sort_keys=True),
    )
    db.add(entry)
    return entry
