"""Tests for Steward Observability (OpenTelemetry tracing + metrics)."""

from unittest.mock import MagicMock, patch

import steward.observability.metrics as metrics_mod
from steward.observability import (
    get_tracer,
    record_digest_size,
    record_model_invocation,
    record_tool_call,
)


class TestTracing:
    def test_tracer_without_sdk(self):
        tracer = get_tracer()
        with tracer.start_as_current_span("steward.test") as span:
            span.set_attribute("steward.tenant_id", "t1")


class TestMetrics:
    def setup_method(self):
        metrics_mod._instruments = None

    def teardown_method(self):
        metrics_mod._instruments = None

    def test_record_without_sdk(self):
        record_model_invocation(provider="openai", success=True, latency_ms=12.5, is_system_fallback=False)
        record_tool_call(tool_name="get_agency_kpis", success=False, error_code="tool_execution_failed")
        record_digest_size(size_bytes=2048, over_soft_target=False)

    def test_instruments_created_once(self):
        meter = MagicMock()
        with patch("steward.observability.metrics.metrics.get_meter", return_value=meter) as get_meter:
            record_tool_call(tool_name="search_vault", success=True)
            record_tool_call(tool_name="search_vault", success=True)
        get_meter.assert_called_once_with("steward")
        assert meter.create_counter.call_count == 2

    def test_invocation_attributes(self):
        meter = MagicMock()
        with patch("steward.observability.metrics.metrics.get_meter", return_value=meter):
            record_model_invocation(provider="groq", success=False, latency_ms=40, is_system_fallback=True)

        counter = metrics_mod._instruments["invocations"]
        counter.add.assert_called_once_with(1, {
            "steward.provider": "groq",
            "steward.success": "False",
            "steward.system_fallback": "True",
        })
        metrics_mod._instruments["latency"].record.assert_called_once_with(40, {"steward.provider": "groq"})

    def test_tool_call_error_code_default(self):
        meter = MagicMock()
        with patch("steward.observability.metrics.metrics.get_meter", return_value=meter):
            record_tool_call(tool_name="search_vault", success=True)
        attrs = metrics_mod._instruments["tool_calls"].add.call_args.args[1]
        assert attrs["steward.error_code"] == ""
