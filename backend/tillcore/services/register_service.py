# Overview: Cash Session Gate; open/close the drawer session and append cash movements.

"""
Cash Session Gate

WHY: Every sale must happen inside an open cash session so the drawer can
be reconciled at the end of the shift.

DESIGN PRINCIPLES:
- At most one session is open at a time
- The open session is read from the database at the point of use
- Movements are append-only and signed (positive in, negative out)
- Sessions are immutable once closed
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import CashAlreadyOpen, CashClosed, ValidationError
from ..models import CashMovement, CashSession
from tillcore.time_utils import utcnow
from tillcore.validation import money, parse_decimal
from .concurrency import begin_immediate, lock_for_update


SESSION_OPEN = "open"
SESSION_CLOSED = "closed"

MOVEMENT_OPENING = "opening"
MOVEMENT_SALE = "sale"
MOVEMENT_WITHDRAWAL = "withdrawal"
MOVEMENT_DEPOSIT = "deposit"

VALID_MOVEMENT_TYPES = [
    MOVEMENT_OPENING,
    MOVEMENT_SALE,
    MOVEMENT_WITHDRAWAL,
    MOVEMENT_DEPOSIT,
]


# =============================================================================
# GATE
# =============================================================================

def get_open_session(*, lock: bool = False) -> CashSession | None:
    """Most recently opened session that is still open, if any."""
    query = db.session.query(CashSession).filter_by(
        status=SESSION_OPEN
    ).order_by(CashSession.opened_at.desc(), CashSession.id.desc())
    if lock:
        query = lock_for_update(query)
    return query.first()


def require_open_session() -> CashSession:
    """
    Raises:
        CashClosed: if no session is open
    """
    session = get_open_session()
    if session is None:
        raise CashClosed()
    return session


def current_session_id() -> int | None:
    session = get_open_session()
    return session.id if session else None


# =============================================================================
# MOVEMENTS
# =============================================================================

def record_movement(
    session_id: int,
    movement_type: str,
    amount: Decimal,
    *,
    description: str | None = None,
    payment_method: str | None = None,
    sale_id: int | None = None,
    user_id: int | None = None,
) -> CashMovement:
    """
    Append a movement to a session (no commit).

    Args:
        amount: Signed; withdrawals are negative
    """
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type: {movement_type}")

    movement = CashMovement(
        cash_session_id=session_id,
        movement_type=movement_type,
        amount=money(amount),
        description=description,
        payment_method=payment_method,
        sale_id=sale_id,
        user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def get_movements(session_id: int, *, sale_id: int | None = None) -> list[CashMovement]:
    query = db.session.query(CashMovement).filter_by(cash_session_id=session_id)
    if sale_id is not None:
        query = query.filter_by(sale_id=sale_id)
    return query.order_by(CashMovement.id).all()


def get_sale_movements(sale_id: int) -> list[CashMovement]:
    return db.session.query(CashMovement).filter_by(
        sale_id=sale_id
    ).order_by(CashMovement.id).all()


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

def open_session(user_id: int | None, opening_amount=0, notes: str | None = None) -> CashSession:
    """
    Open the drawer and record the opening float.

    Raises:
        CashAlreadyOpen: if another session is open
        ValidationError: if the opening amount is negative
    """
    amount = money(parse_decimal(opening_amount, field="opening_amount"))
    if amount < 0:
        raise ValidationError("opening_amount cannot be negative")

    try:
        begin_immediate()
        if get_open_session(lock=True) is not None:
            raise CashAlreadyOpen()

        session = CashSession(
            status=SESSION_OPEN,
            opening_amount=amount,
            opened_by=user_id,
            opened_at=utcnow(),
            notes=notes,
        )
        db.session.add(session)
        db.session.flush()

        record_movement(
            session.id,
            MOVEMENT_OPENING,
            amount,
            description="Opening float",
            payment_method="cash",
            user_id=user_id,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Cash session %s opened by user %s", session.id, user_id)
    return session


def close_session(user_id: int | None, closing_amount=None, notes: str | None = None) -> CashSession:
    """
    Close the open session.

    Raises:
        CashClosed: if no session is open
    """
    counted = None
    if closing_amount is not None:
        counted = money(parse_decimal(closing_amount, field="closing_amount"))
        if counted < 0:
            raise ValidationError("closing_amount cannot be negative")

    try:
        begin_immediate()
        session = get_open_session(lock=True)
        if session is None:
            raise CashClosed("There is no open cash session to close")

        session.status = SESSION_CLOSED
        session.closing_amount = counted
        session.closed_by = user_id
        session.closed_at = utcnow()
        if notes:
            session.notes = f"{session.notes}\n{notes}" if session.notes else notes
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Cash session %s closed by user %s", session.id, user_id)
    return session


def session_summary(session_id: int) -> dict:
    """
    Totals per movement type and per payment method for one session.

    expected_cash counts only movements in cash (opening float included).
    """
    session = db.session.get(CashSession, session_id)
    if session is None:
        raise ValidationError(f"Cash session {session_id} not found")

    by_type_rows = db.session.query(
        CashMovement.movement_type,
        func.coalesce(func.sum(CashMovement.amount), 0),
    ).filter(
        CashMovement.cash_session_id == session_id,
    ).group_by(CashMovement.movement_type).all()

    by_method_rows = db.session.query(
        CashMovement.payment_method,
        func.coalesce(func.sum(CashMovement.amount), 0),
    ).filter(
        CashMovement.cash_session_id == session_id,
        CashMovement.movement_type != MOVEMENT_OPENING,
    ).group_by(CashMovement.payment_method).all()

    by_type = {t: float(money(Decimal(str(v)))) for t, v in by_type_rows}
    by_method = {m or "unknown": float(money(Decimal(str(v)))) for m, v in by_method_rows}

    expected_cash = db.session.query(
        func.coalesce(func.sum(CashMovement.amount), 0)
    ).filter(
        CashMovement.cash_session_id == session_id,
        CashMovement.payment_method == "cash",
    ).scalar()

    return {
        "session": session.to_dict(),
        "totals_by_type": by_type,
        "totals_by_method": by_method,
        "expected_cash": float(money(Decimal(str(expected_cash or 0)))),
    }
