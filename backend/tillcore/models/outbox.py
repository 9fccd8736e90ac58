from __future__ import annotations

from ..extensions import db
from tillcore.time_utils import to_utc_z


class OutboxTask(db.Model):
    """
    Side effect recorded in the same transaction as the change that needs it.

    WHY: Cash movements for a sale are written after the sale commits. If
    that write fails, the money must not be lost silently. The task is
    committed with the sale and delivered afterwards, retried until it
    succeeds or is parked for reconciliation.

    STATUS:
    - pending: waiting for (another) delivery attempt
    - delivered: side effect applied; never applied again
    - failed: attempts exhausted, needs manual reconciliation
    """
    __tablename__ = "outbox_tasks"
    __table_args__ = (
        db.Index("ix_outbox_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    kind = db.Column(db.String(32), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "version_id": self.version_id,
        }
