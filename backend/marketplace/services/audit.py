"""Audit trail for money-moving transitions."""

import json
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def record_audit(
    db: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    user_id: int | None = None,
    actor: str = "system",
    details: dict | None = None,
) -> None:
    """Stage an audit entry on the session; it commits with the transition.

    Never raises: a malformed ``details`` payload is logged and the entry is
    skipped rather than aborting the financial transition.
    """
    try:
        entry = AuditLog(
            user_id=user_id,
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=json.loads(json.dumps(details, default=str)) if details else None,
        )
        db.add(entry)
    except Exception:
        logger.exception("Failed to write audit log: %s %s/%s", action, entity_type, entity_id)
