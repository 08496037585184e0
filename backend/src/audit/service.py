"""Audit logging service for duplicate detection events.

Provides a single entry point for creating immutable audit entries about
flagged, cleared, dismissed and resolved orders.

Audit actions:
- flagged, flag_moved, flag_updated, cleared
- dismissed, resolved
- notified
"""

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from models.duplicate_audit_log import DuplicateAuditLog


class AuditAction:
    FLAGGED = "flagged"
    FLAG_MOVED = "flag_moved"
    FLAG_UPDATED = "flag_updated"
    CLEARED = "cleared"
    DISMISSED = "dismissed"
    RESOLVED = "resolved"
    NOTIFIED = "notified"


def log_duplicate_event(
    db: Session,
    shop_domain: str,
    order_id: str,
    action: str,
    details: Optional[Dict[str, Any]] = None,
) -> DuplicateAuditLog:
    """Create an audit log entry.

    The entry is added to the session and flushed; committing is left to the
    caller's unit of work.

    Args:
        db: Database session
        shop_domain: Shop the order belongs to
        order_id: Upstream order id
        action: One of AuditAction
        details: Additional context as JSON (e.g. {"confidence": 90})

    Returns:
        DuplicateAuditLog: The created entry
    """
    entry = DuplicateAuditLog(
        shop_domain=shop_domain,
        order_id=order_id,
        action=action,
        details_json=details or {},
    )
    db.add(entry)
    db.flush()
    return entry


def list_order_events(db: Session, shop_domain: str, order_id: str) -> list[DuplicateAuditLog]:
    """Audit trail of one order, oldest first."""
    return (
        db.query(DuplicateAuditLog)
        .filter(
            DuplicateAuditLog.shop_domain == shop_domain,
            DuplicateAuditLog.order_id == order_id,
        )
        .order_by(DuplicateAuditLog.performed_at.asc())
        .all()
    )
