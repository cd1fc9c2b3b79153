# Overview: Append-only event log for workflow steps.

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from ..extensions import db
from ..models import EventLog
"""
Event Log Invariants

- Append-only audit trail; no updates or deletes.
- No domain/business logic here.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back workflow leaves no event behind.
"""


def append_event(
    *,
    table_name: str,
    record_id: int,
    action: str,
    actor: str | None = None,
    payload: Optional[dict[str, Any]] = None,
    occurred_at: Optional[datetime] = None,
) -> EventLog:
    ev = EventLog(
        table_name=table_name,
        record_id=record_id,
        action=action,
        actor=actor or "system",
        payload=payload,
    )
    if occurred_at is not None:
        ev.occurred_at = occurred_at
    db.session.add(ev)
    db.session.flush()
    return ev


def list_events(*, table_name: str, record_id: int) -> list[EventLog]:
    return (
        db.session.query(EventLog)
        .filter_by(table_name=table_name, record_id=record_id)
        .order_by(EventLog.occurred_at.asc(), EventLog.id.asc())
        .all()
    )
