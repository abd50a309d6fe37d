import unittest

from app.core.errors import OrderNotFoundError, PermissionDeniedError
from app.core.security import Caller, CallerRole
from app.models import PaymentStatus
from app.repositories.memory_order_store import InMemoryOrderStore
from app.services.payment_status import PaymentStatusTracker

from factories import FakeClock, stored_order

SELLER = Caller(user_id="S1", role=CallerRole.SELLER)


class TestPaymentStatusTracker(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryOrderStore()
        self.clock = FakeClock()
        self.tracker = PaymentStatusTracker(self.store, self.clock)

    def test_any_payment_status_may_follow_any_other(self) -> None:
        order = stored_order(self.store, [("S1", 10)])
        for status in (
            PaymentStatus.PAID,
            PaymentStatus.FAILED,
            PaymentStatus.REFUNDED,
            PaymentStatus.PENDING,
        ):
            self.clock.advance(seconds=1)
            updated = self.tracker.set_payment_status(str(order.id), status, SELLER)
            self.assertEqual(updated.payment_status, status.value)
            self.assertEqual(updated.updated_at, self.clock.now)

        history = [(e.from_status, e.to_status) for e in self.store.find_audit(order.id)]
        self.assertEqual(
            history,
            [
                ("PENDING", "PAID"),
                ("PAID", "FAILED"),
                ("FAILED", "REFUNDED"),
                ("REFUNDED", "PENDING"),
            ],
        )

    def test_payment_status_independent_of_fulfillment(self) -> None:
        order = stored_order(self.store, [("S1", 10)], status="CANCELLED")
        updated = self.tracker.set_payment_status(
            str(order.id), PaymentStatus.REFUNDED, SELLER, reason="order cancelled"
        )
        self.assertEqual(updated.order_status, "CANCELLED")
        self.assertEqual(updated.payment_status, "REFUNDED")
        (entry,) = self.store.find_audit(order.id)
        self.assertEqual((entry.kind, entry.operation), ("payment_status", "payment"))
        self.assertEqual(entry.reason, "order cancelled")

    def test_unknown_order(self) -> None:
        with self.assertRaises(OrderNotFoundError):
            self.tracker.set_payment_status(
                "3f0e9a56-1111-4222-8333-444455556666", PaymentStatus.PAID, SELLER
            )

    def test_customer_cannot_record_payment(self) -> None:
        order = stored_order(self.store, [("S1", 10)])
        customer = Caller(user_id="cust-1", role=CallerRole.CUSTOMER)
        with self.assertRaises(PermissionDeniedError):
            self.tracker.set_payment_status(str(order.id), PaymentStatus.PAID, customer)
        self.assertEqual(self.store.get(order.id).payment_status, "PENDING")

    def test_payment_status_parse_normalizes_case(self) -> None:
        self.assertIs(PaymentStatus.parse(" partially_refunded "), PaymentStatus.PARTIALLY_REFUNDED)
        with self.assertRaises(ValueError):
            PaymentStatus.parse("SETTLED")
