# Overview: Post-commit side effects; outbox tasks written with a sale and delivered afterwards.

"""
Outbox Delivery

WHY: The cash movements of a sale are applied after the sale commits. A
failure at that point must not lose money, so each movement is first
stored as a pending task inside the sale's own transaction.

DELIVERY RULES:
- Each task is delivered in its own transaction
- A delivered task is never applied again
- Failures are logged and counted; the task stays pending
- After OUTBOX_MAX_ATTEMPTS failures the task is parked as failed
- A cash movement for a session that has closed is parked as failed at once
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import CashSession, OutboxTask
from tillcore.time_utils import utcnow
from . import register_service
from .concurrency import lock_for_update


KIND_CASH_MOVEMENT = "cash_movement"

STATUS_PENDING = "pending"
STATUS_DELIVERED = "delivered"
STATUS_FAILED = "failed"


class UndeliverableTask(Exception):
    """The task can never succeed; park it for manual reconciliation."""


def enqueue(kind: str, payload: dict, *, sale_id: int | None = None) -> OutboxTask:
    """Add a pending task to the current transaction (no commit)."""
    task = OutboxTask(
        kind=kind,
        payload=payload,
        status=STATUS_PENDING,
        attempts=0,
        sale_id=sale_id,
        created_at=utcnow(),
    )
    db.session.add(task)
    return task


def _deliver_cash_movement(payload: dict) -> None:
    session = db.session.get(CashSession, payload["session_id"])
    if session is None or session.status != register_service.SESSION_OPEN:
        raise UndeliverableTask(f"Cash session {payload['session_id']} is no longer open")

    register_service.record_movement(
        payload["session_id"],
        payload.get("movement_type", register_service.MOVEMENT_SALE),
        Decimal(str(payload["amount"])),
        description=payload.get("description"),
        payment_method=payload.get("payment_method"),
        sale_id=payload.get("sale_id"),
        user_id=payload.get("user_id"),
    )


HANDLERS = {
    KIND_CASH_MOVEMENT: _deliver_cash_movement,
}


def _record_failure(task_id: int, error: Exception, *, permanent: bool = False) -> None:
    task = db.session.get(OutboxTask, task_id)
    if task is None or task.status != STATUS_PENDING:
        return

    task.attempts = (task.attempts or 0) + 1
    task.last_error = f"{type(error).__name__}: {error}"[:1000]

    max_attempts = current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5)
    if permanent or task.attempts >= max_attempts:
        task.status = STATUS_FAILED
        current_app.logger.error(
            "Outbox task %s (%s, sale %s) parked as failed after %s attempts; reconcile manually",
            task.id, task.kind, task.sale_id, task.attempts,
        )
    db.session.commit()


def deliver_task(task_id: int) -> bool:
    """
    Apply one task in its own transaction.

    Returns:
        True if the task is delivered (now or before), False otherwise
    """
    try:
        task = lock_for_update(db.session.query(OutboxTask).filter_by(id=task_id)).first()
        if task is None:
            return False
        if task.status == STATUS_DELIVERED:
            return True
        if task.status != STATUS_PENDING:
            return False

        handler = HANDLERS.get(task.kind)
        if handler is None:
            raise ValueError(f"Unknown outbox task kind: {task.kind}")

        handler(task.payload)

        task.status = STATUS_DELIVERED
        task.attempts = (task.attempts or 0) + 1
        task.last_error = None
        task.delivered_at = utcnow()
        db.session.commit()
        return True
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to deliver outbox task %s", task_id)
        try:
            _record_failure(task_id, exc, permanent=isinstance(exc, UndeliverableTask))
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Could not record failure of outbox task %s; it stays pending", task_id)
        return False


def deliver_pending(limit: int = 100) -> dict:
    """Deliver pending tasks oldest-first."""
    task_ids = [
        row.id for row in db.session.query(OutboxTask.id).filter_by(
            status=STATUS_PENDING
        ).order_by(OutboxTask.created_at, OutboxTask.id).limit(limit).all()
    ]
    db.session.commit()

    delivered = 0
    for task_id in task_ids:
        if deliver_task(task_id):
            delivered += 1

    return {
        "processed": len(task_ids),
        "delivered": delivered,
        "failed": len(task_ids) - delivered,
    }


def get_tasks(*, status: str | None = None, sale_id: int | None = None) -> list[OutboxTask]:
    query = db.session.query(OutboxTask)
    if status:
        query = query.filter_by(status=status)
    if sale_id is not None:
        query = query.filter_by(sale_id=sale_id)
    return query.order_by(OutboxTask.id).all()
