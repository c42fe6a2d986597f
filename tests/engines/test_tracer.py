"""Tests for engine invocation tracing."""

from datetime import date
from decimal import Decimal

from taskflow_engines.tracer import compute_input_fingerprint, traced_engine
from taskflow_kernel.domain.dtos import EstimationUnit


class TestInputFingerprint:

    def test_deterministic(self):
        args = {"quantity": Decimal("8"), "unit": EstimationUnit.HOURS}

        first = compute_input_fingerprint(("quantity", "unit"), args)
        second = compute_input_fingerprint(("quantity", "unit"), dict(args))

        assert first == second
        assert len(first) == 16

    def test_mapping_key_order_ignored(self):
        a = compute_input_fingerprint(("slot",), {"slot": {"day": 1, "start": "09:00"}})
        b = compute_input_fingerprint(("slot",), {"slot": {"start": "09:00", "day": 1}})

        assert a == b

    def test_enum_and_value_fingerprint_alike(self):
        a = compute_input_fingerprint(("unit",), {"unit": EstimationUnit.DAYS})
        b = compute_input_fingerprint(("unit",), {"unit": "DAYS"})

        assert a == b

    def test_different_inputs_differ(self):
        a = compute_input_fingerprint(("day",), {"day": date(2025, 5, 27)})
        b = compute_input_fingerprint(("day",), {"day": date(2025, 5, 28)})

        assert a != b

    def test_missing_field_recorded_as_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(
            ("x",), {"x": None},
        )


class TestTracedEngine:

    def test_positional_and_keyword_calls_share_fingerprint(self, captured_logs):
        @traced_engine("sample", "2.1", fingerprint_fields=("a", "b"))
        def add(a, b):
            return a + b

        assert add(1, 2) == 3
        assert add(a=1, b=2) == 3

        traces = [r for r in captured_logs() if r["message"] == "TASKFLOW_ENGINE_TRACE"]
        assert [t["engine_version"] for t in traces] == ["2.1", "2.1"]
        assert traces[0]["input_fingerprint"] == traces[1]["input_fingerprint"]
        assert traces[0]["function"].endswith("add")

    def test_preserves_function_metadata(self):
        @traced_engine("sample", "1.0")
        def documented():
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."
