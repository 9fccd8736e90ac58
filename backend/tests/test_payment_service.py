# Overview: Pytest coverage for payment split validation.

"""
Payment Split Validator Tests

Pure functions: no app context or database needed.
"""

from decimal import Decimal

import pytest

from tillcore.errors import InvalidPaymentAmount, InvalidPaymentMethod, PaymentAmountMismatch
from tillcore.services import payment_service
from tillcore.services.payment_service import (
    Allocation,
    SinglePayment,
    SplitPayment,
    validate_payment,
)


class TestSinglePayment:
    """A single method settles the whole total."""

    def test_single_method(self):
        payment = validate_payment(Decimal("121.00"), "cash")
        assert isinstance(payment, SinglePayment)
        assert payment.stored_method == "cash"
        assert payment.stored_allocations is None
        assert payment.allocations == [Allocation("cash", Decimal("121.00"))]

    def test_unknown_method_rejected(self):
        with pytest.raises(InvalidPaymentMethod):
            validate_payment(Decimal("10.00"), "bitcoin")

    def test_missing_method_rejected(self):
        with pytest.raises(InvalidPaymentMethod):
            validate_payment(Decimal("10.00"))

    def test_one_entry_list_is_single(self):
        """A split list of length one is treated as a single method."""
        payment = validate_payment(
            Decimal("80.00"),
            payment_methods=[{"method": "credit_card", "amount": 80}],
        )
        assert isinstance(payment, SinglePayment)
        assert payment.method == "credit_card"

    def test_one_entry_list_amount_ignored(self):
        """The single entry settles the declared total whatever its amount."""
        payment = validate_payment(
            Decimal("80.00"),
            payment_methods=[{"method": "cash", "amount": 5}],
        )
        assert payment.allocations[0].amount == Decimal("80.00")

    def test_empty_list_falls_back_to_method(self):
        payment = validate_payment(Decimal("15.00"), "bank_transfer", [])
        assert isinstance(payment, SinglePayment)
        assert payment.method == "bank_transfer"

    def test_payment_methods_must_be_list(self):
        with pytest.raises(InvalidPaymentMethod):
            validate_payment(Decimal("15.00"), "cash", "cash")


class TestSplitPayment:
    """Two or more allocations must add up to the total."""

    def test_valid_split(self):
        payment = validate_payment(
            Decimal("150.00"),
            payment_methods=[
                {"method": "cash", "amount": 50},
                {"method": "on_account", "amount": "100.00"},
            ],
        )
        assert isinstance(payment, SplitPayment)
        assert payment.stored_method == "multiple"
        assert payment.stored_allocations == [
            {"method": "cash", "amount": 50.0},
            {"method": "on_account", "amount": 100.0},
        ]

    def test_split_within_tolerance(self):
        payment = validate_payment(
            Decimal("100.00"),
            payment_methods=[
                {"method": "cash", "amount": 33.33},
                {"method": "credit_card", "amount": 66.66},
            ],
        )
        assert isinstance(payment, SplitPayment)

    def test_split_mismatch_rejected(self):
        with pytest.raises(PaymentAmountMismatch) as exc_info:
            validate_payment(
                Decimal("100.00"),
                payment_methods=[
                    {"method": "cash", "amount": 40},
                    {"method": "credit_card", "amount": 50},
                ],
            )
        assert exc_info.value.details == {"total": 100.0, "allocated": 90.0}

    def test_split_unknown_method_rejected(self):
        with pytest.raises(InvalidPaymentMethod):
            validate_payment(
                Decimal("100.00"),
                payment_methods=[
                    {"method": "cash", "amount": 50},
                    {"method": "voucher", "amount": 50},
                ],
            )

    @pytest.mark.parametrize("amount", [0, -10, "0.004", None, "abc"])
    def test_split_amount_must_be_positive(self, amount):
        with pytest.raises(InvalidPaymentAmount):
            validate_payment(
                Decimal("100.00"),
                payment_methods=[
                    {"method": "cash", "amount": 100},
                    {"method": "credit_card", "amount": amount},
                ],
            )

    def test_split_entry_must_be_object(self):
        with pytest.raises(InvalidPaymentMethod):
            validate_payment(Decimal("100.00"), payment_methods=["cash", "credit_card"])


class TestPaymentHelpers:
    """On-account share, stored form and display labels."""

    def test_on_account_amount_counts_only_on_account(self):
        payment = SplitPayment((
            Allocation("cash", Decimal("50.00")),
            Allocation("on_account", Decimal("100.00")),
        ))
        assert payment_service.uses_on_account(payment)
        assert payment_service.on_account_amount(payment) == Decimal("100.00")

    def test_on_account_amount_zero_without_on_account(self):
        payment = SinglePayment("cash", Decimal("20.00"))
        assert not payment_service.uses_on_account(payment)
        assert payment_service.on_account_amount(payment) == Decimal("0")

    def test_describe_single(self):
        assert payment_service.describe_payment(SinglePayment("credit_card", Decimal("1"))) == "Credit Card"

    def test_describe_split(self):
        payment = SplitPayment((
            Allocation("cash", Decimal("50")),
            Allocation("on_account", Decimal("100")),
        ))
        assert payment_service.describe_payment(payment) == "Cash: 50.00, On Account: 100.00"

    def test_payment_from_stored_split(self):
        class StoredSale:
            payment_method = "multiple"
            payment_methods = [{"method": "cash", "amount": 50.0}, {"method": "on_account", "amount": 100.0}]
            total = Decimal("150.00")

        payment = payment_service.payment_from_sale(StoredSale())
        assert isinstance(payment, SplitPayment)
        assert [a.method for a in payment.allocations] == ["cash", "on_account"]
        assert payment.allocations[1].amount == Decimal("100.00")

    def test_payment_from_stored_single(self):
        class StoredSale:
            payment_method = "on_account"
            payment_methods = None
            total = Decimal("75.50")

        payment = payment_service.payment_from_sale(StoredSale())
        assert payment == SinglePayment("on_account", Decimal("75.50"))
