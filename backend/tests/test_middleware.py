import unittest

from app.core.tracing import TraceContext, current_trace, trace_scope
from app.middleware.metrics_middleware import template_path


class TestTemplatePath(unittest.TestCase):
    def test_ids_are_replaced(self) -> None:
        cases = {
            "/api/v1/orders/3f0e9a56-1111-4222-8333-444455556666": "/api/v1/orders/{id}",
            "/api/v1/orders/3f0e9a56-1111-4222-8333-444455556666/cancel": "/api/v1/orders/{id}/cancel",
            "/api/v1/orders/not-a-uuid/audit": "/api/v1/orders/{id}/audit",
            "/api/v1/orders/customer/cust-1": "/api/v1/orders/customer/{id}",
            "/api/v1/orders/seller/S1": "/api/v1/orders/seller/{id}",
            "/api/v1/orders/seller-stats/S1": "/api/v1/orders/seller-stats/{id}",
            "/api/v1/orders/seller-earnings/S1": "/api/v1/orders/seller-earnings/{id}",
        }
        for path, expected in cases.items():
            with self.subTest(path=path):
                self.assertEqual(template_path(path), expected)

    def test_static_paths_are_kept(self) -> None:
        for path in (
            "/api/v1/orders",
            "/api/v1/orders/admin-stats",
            "/api/v1/health/ready",
            "/metrics",
        ):
            with self.subTest(path=path):
                self.assertEqual(template_path(path), path)


class TestTraceContext(unittest.TestCase):
    TRACE_ID = "4bf92f3577b34da6a3ce929d0e0e4736"

    def test_valid_traceparent_is_continued(self) -> None:
        context = TraceContext.from_traceparent(f"00-{self.TRACE_ID}-00f067aa0ba902b7-01")

        self.assertEqual(context.trace_id, self.TRACE_ID)
        self.assertEqual(context.parent_span_id, "00f067aa0ba902b7")
        self.assertNotEqual(context.span_id, "00f067aa0ba902b7")
        self.assertTrue(context.sampled)
        self.assertEqual(
            context.traceparent, f"00-{self.TRACE_ID}-{context.span_id}-01"
        )

    def test_unsampled_flag(self) -> None:
        context = TraceContext.from_traceparent(f"00-{self.TRACE_ID}-00f067aa0ba902b7-00")
        self.assertFalse(context.sampled)
        self.assertTrue(context.traceparent.endswith("-00"))

    def test_malformed_traceparent_is_rejected(self) -> None:
        for header in (
            "garbage",
            f"01-{self.TRACE_ID}-00f067aa0ba902b7-01",
            f"00-{'0' * 32}-00f067aa0ba902b7-01",
            f"00-{self.TRACE_ID}-{'0' * 16}-01",
            f"00-{self.TRACE_ID[:-1]}-00f067aa0ba902b7-01",
            f"00-{self.TRACE_ID}-00f067aa0ba902bz-01",
        ):
            with self.subTest(header=header):
                self.assertIsNone(TraceContext.from_traceparent(header))

    def test_trace_scope_sets_and_restores_current_trace(self) -> None:
        self.assertIsNone(current_trace())
        context = TraceContext.start()

        with trace_scope(context):
            self.assertIs(current_trace(), context)

        self.assertIsNone(current_trace())
