from __future__ import annotations

from ..extensions import db
from tillcore.time_utils import to_utc_z
from tillcore.validation import as_float


class CashSession(db.Model):
    """
    Cash drawer shift.

    WHY: The drawer session is the unit of shift accounting. No sale may be
    recorded unless a session is open, whatever the payment method.

    LIFECYCLE:
    - open: Shift is active, movements attach to it
    - closed: Shift ended, closing amount counted

    At most one session is open at a time. The open session is always read
    from the database at the point of use, never cached in process memory.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    status = db.Column(db.String(16), nullable=False, default="open", index=True)  # open, closed

    opening_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    closing_amount = db.Column(db.Numeric(12, 2), nullable=True)

    opened_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "opening_amount": as_float(self.opening_amount),
            "closing_amount": as_float(self.closing_amount),
            "opened_by": self.opened_by,
            "closed_by": self.closed_by,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class CashMovement(db.Model):
    """
    Append-only ledger of money moving through a cash session.

    MOVEMENT TYPES:
    - opening: float placed in the drawer when the session opens
    - sale: one row per payment method used by a sale (positive)
    - withdrawal: money leaving, including sale cancellations (negative)
    - deposit: money added outside a sale (positive)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.Index("ix_cash_movements_session_created", "cash_session_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)

    # Signed: positive into the drawer, negative out of it
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    description = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True, index=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    cash_session = db.relationship("CashSession", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_session_id": self.cash_session_id,
            "movement_type": self.movement_type,
            "amount": as_float(self.amount),
            "description": self.description,
            "payment_method": self.payment_method,
            "sale_id": self.sale_id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
