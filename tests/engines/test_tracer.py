"""
Tests for the engine tracer decorator.

Verifies:
- TRAVEL_ENGINE_TRACE is emitted once per call with name and version
- Fingerprints are stable for equal inputs and sensitive to the chosen fields
- Positional and keyword calls fingerprint identically
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from travel_engines.tracer import compute_input_fingerprint, traced_engine


class _Mode(str, Enum):
    A = "a"


@dataclass(frozen=True)
class _Item:
    code: str
    amount: Decimal


@traced_engine("sample_engine", "2.1", fingerprint_fields=("items", "mode"))
def _sample(items, mode=_Mode.A, note=None):
    return len(items)


def _traces(captured_logs):
    return [r for r in captured_logs() if r["message"] == "TRAVEL_ENGINE_TRACE"]


class TestTracedEngine:

    def test_trace_emitted(self, captured_logs):
        assert _sample([_Item("ARS", Decimal("1"))]) == 1
        (trace,) = _traces(captured_logs)
        assert trace["trace_type"] == "TRAVEL_ENGINE_TRACE"
        assert trace["engine_name"] == "sample_engine"
        assert trace["engine_version"] == "2.1"
        assert trace["function"] == "_sample"
        assert trace["duration_ms"] >= 0

    def test_positional_and_keyword_calls_match(self, captured_logs):
        items = [_Item("ARS", Decimal("1"))]
        _sample(items, _Mode.A)
        _sample(items=items, mode=_Mode.A)
        first, second = _traces(captured_logs)
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_unlisted_arguments_do_not_change_fingerprint(self, captured_logs):
        items = [_Item("ARS", Decimal("1"))]
        _sample(items, note="x")
        _sample(items, note="y")
        first, second = _traces(captured_logs)
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_listed_arguments_change_fingerprint(self, captured_logs):
        _sample([_Item("ARS", Decimal("1"))])
        _sample([_Item("ARS", Decimal("2"))])
        first, second = _traces(captured_logs)
        assert first["input_fingerprint"] != second["input_fingerprint"]


class TestComputeInputFingerprint:

    def test_dict_and_set_order_irrelevant(self):
        a = compute_input_fingerprint(("m", "s"), {"m": {"USD": 1, "ARS": 2}, "s": frozenset({2, 1})})
        b = compute_input_fingerprint(("m", "s"), {"m": {"ARS": 2, "USD": 1}, "s": frozenset({1, 2})})
        assert a == b
        assert len(a) == 16
