from __future__ import annotations

from ..extensions import db
from yuandi.time_utils import to_utc_z, utcnow


class DocumentSequence(db.Model):
    """
    Per-(document_type, period_key) counter.

    period_key is the KST date ("240101") for daily order numbers and an
    empty string for never-resetting sequences such as SKU serials.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "period_key", name="uq_document_sequences_type_period"),
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    period_key = db.Column(db.String(16), nullable=False, default="")
    next_number = db.Column(db.Integer, nullable=False, default=1)


class EventLog(db.Model):
    """
    Append-only audit trail of workflow steps.

    Written in the same DB transaction as the change it records.
    """
    __tablename__ = "event_logs"
    __table_args__ = (
        db.Index("ix_event_logs_table_record", "table_name", "record_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    table_name = db.Column(db.String(64), nullable=False)
    record_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(32), nullable=False, index=True)
    actor = db.Column(db.String(64), nullable=False, default="system")

    payload = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "action": self.action,
            "actor": self.actor,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }
