# Overview: Pytest coverage for post-commit outbox delivery.

from decimal import Decimal

from tillcore.models import CashMovement, OutboxTask
from tillcore.services import outbox_service, register_service


def _enqueue_cash(db_session, session_id, amount="25.00"):
    task = outbox_service.enqueue(
        outbox_service.KIND_CASH_MOVEMENT,
        {
            "session_id": session_id,
            "sale_id": None,
            "movement_type": register_service.MOVEMENT_SALE,
            "payment_method": "cash",
            "amount": amount,
            "description": "Sale #0",
            "user_id": None,
        },
    )
    db_session.commit()
    return task.id


def _sale_movements(db_session):
    return db_session.query(CashMovement).filter_by(movement_type=register_service.MOVEMENT_SALE).all()


class TestDelivery:
    """Each task is applied once, in its own transaction."""

    def test_deliver_task(self, db_session, cash_session):
        task_id = _enqueue_cash(db_session, cash_session.id)

        assert outbox_service.deliver_task(task_id) is True

        task = db_session.get(OutboxTask, task_id)
        assert task.status == outbox_service.STATUS_DELIVERED
        assert task.attempts == 1
        assert task.delivered_at is not None
        movements = _sale_movements(db_session)
        assert len(movements) == 1
        assert movements[0].amount == Decimal("25.00")

    def test_delivered_task_not_applied_twice(self, db_session, cash_session):
        task_id = _enqueue_cash(db_session, cash_session.id)

        outbox_service.deliver_task(task_id)
        outbox_service.deliver_task(task_id)
        outbox_service.deliver_pending()

        assert len(_sale_movements(db_session)) == 1

    def test_failure_keeps_task_pending(self, db_session, cash_session, monkeypatch):
        task_id = _enqueue_cash(db_session, cash_session.id)

        def boom(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(register_service, "record_movement", boom)

        assert outbox_service.deliver_task(task_id) is False

        task = db_session.get(OutboxTask, task_id)
        assert task.status == outbox_service.STATUS_PENDING
        assert task.attempts == 1
        assert "ledger unavailable" in task.last_error
        assert _sale_movements(db_session) == []

    def test_failed_after_max_attempts(self, db_session, app, cash_session, monkeypatch):
        task_id = _enqueue_cash(db_session, cash_session.id)
        monkeypatch.setitem(app.config, "OUTBOX_MAX_ATTEMPTS", 2)

        def boom(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(register_service, "record_movement", boom)

        outbox_service.deliver_task(task_id)
        outbox_service.deliver_task(task_id)

        task = db_session.get(OutboxTask, task_id)
        assert task.status == outbox_service.STATUS_FAILED
        assert task.attempts == 2

        # Parked tasks are not picked up again
        monkeypatch.undo()
        result = outbox_service.deliver_pending()
        assert result["processed"] == 0

    def test_deliver_pending_recovers(self, db_session, cash_session, monkeypatch):
        first = _enqueue_cash(db_session, cash_session.id, "10.00")
        second = _enqueue_cash(db_session, cash_session.id, "15.00")

        def boom(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(register_service, "record_movement", boom)
        assert outbox_service.deliver_pending() == {"processed": 2, "delivered": 0, "failed": 2}

        monkeypatch.undo()
        assert outbox_service.deliver_pending() == {"processed": 2, "delivered": 2, "failed": 0}

        assert db_session.get(OutboxTask, first).status == outbox_service.STATUS_DELIVERED
        assert db_session.get(OutboxTask, second).status == outbox_service.STATUS_DELIVERED
        assert sorted(m.amount for m in _sale_movements(db_session)) == [Decimal("10.00"), Decimal("15.00")]

    def test_unknown_kind_is_a_failure(self, db_session):
        task = outbox_service.enqueue("carrier_pigeon", {})
        db_session.commit()

        assert outbox_service.deliver_task(task.id) is False
        assert db_session.get(OutboxTask, task.id).attempts == 1

    def test_closed_session_parks_task(self, db_session, cashier, cash_session):
        task_id = _enqueue_cash(db_session, cash_session.id)
        register_service.close_session(cashier.id)

        assert outbox_service.deliver_task(task_id) is False

        task = db_session.get(OutboxTask, task_id)
        assert task.status == outbox_service.STATUS_FAILED
        assert task.attempts == 1
        assert "no longer open" in task.last_error
        assert _sale_movements(db_session) == []
