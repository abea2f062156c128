from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from comanda.models.audit_log import AuditLog


def log_action(
    db: Session,
    *,
    venue_id: int,
    user_id: int,
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    meta: Optional[Mapping[str, Any]] = None,
) -> AuditLog:
    entry = AuditLog(
        venue_id=venue_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_json=json.dumps(meta, ensure_ascii=False, default=str) if meta else None,
    )
    db.add(entry)
    return entry
