"""Tests for settings, metrics, logging and the error taxonomy."""

import json
import logging
import threading

import pytest
from pydantic import ValidationError

from ticket_rag.config import EmbeddingConfig, LLMConfig, Settings
from ticket_rag.core import (
    ConfigurationException, DatabaseException, EmbeddingServiceException,
    InternalException, LLMException, PermissionException,
    NetworkException, ResourceNotFoundException, ValidationException,
    VectorStoreException
)
from ticket_rag.shared.infrastructure.logging import (
    CustomJsonFormatter, get_context_logger, log_latency
)
from ticket_rag.shared.infrastructure.metrics import MetricsCollector


class TestSettings:

    def test_defaults_are_offline(self, monkeypatch):
        for name in ("EMBEDDING__PROVIDER", "RERANKING__PROVIDER", "VECTOR_DB__PROVIDER", "LLM__PROVIDER"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)

        assert settings.embedding.provider == "mock"
        assert settings.vector_db.provider == "memory"
        assert settings.pipeline.top_n == 10
        assert settings.pipeline.search_limit == 100
        assert settings.pipeline.batch_concurrency == 1

    def test_nested_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("EMBEDDING__PROVIDER", "openai")
        monkeypatch.setenv("EMBEDDING__API_KEY", "sk-test")
        monkeypatch.setenv("LLM__TEMPERATURE", "0.9")

        settings = Settings(_env_file=None)

        assert settings.embedding.provider == "openai"
        assert settings.embedding.api_key == "sk-test"
        assert settings.llm.temperature == pytest.approx(0.9)

    def test_rejects_non_http_endpoint(self):
        with pytest.raises(ValidationError):
            EmbeddingConfig(endpoint="ftp://example.com")

    def test_endpoint_trailing_slash_removed(self):
        assert LLMConfig(endpoint="https://api.openai.com/v1/").endpoint == "https://api.openai.com/v1"

    def test_rejects_unknown_environment(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, environment="qa")

    def test_rejects_oversized_dimension(self):
        with pytest.raises(ValidationError):
            EmbeddingConfig(dimension=5000)


class TestMetricsCollector:

    def test_snapshot(self):
        metrics = MetricsCollector()
        metrics.record_request(100)
        metrics.record_request(300)
        metrics.record_error()
        metrics.record_embedding_call()
        metrics.record_llm_call()

        snapshot = metrics.get_metrics()

        assert snapshot.request_count == 3
        assert snapshot.error_count == 1
        assert snapshot.error_rate == pytest.approx(1 / 3)
        assert snapshot.success_rate == pytest.approx(2 / 3)
        assert snapshot.average_processing_time_ms == pytest.approx(200)
        assert snapshot.embedding_calls == 1
        assert snapshot.llm_calls == 1

    def test_empty_snapshot(self):
        snapshot = MetricsCollector().get_metrics()
        assert snapshot.error_rate == 0.0
        assert snapshot.average_processing_time_ms == 0.0
        assert snapshot.success_rate == 1.0

    def test_reset(self):
        metrics = MetricsCollector()
        metrics.record_rerank_call()
        metrics.reset()
        assert metrics.get_metrics().rerank_calls == 0

    def test_thread_safe_counting(self):
        metrics = MetricsCollector()

        def work():
            for _ in range(1000):
                metrics.record_vector_search()

        threads = [threading.Thread(target=work) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert metrics.get_metrics().vector_searches == 8000


class TestLogging:

    def _format(self, **extra) -> dict:
        formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s", environment="test")
        record = logging.LogRecord("ticket_rag", logging.INFO, __file__, 1, "hello", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return json.loads(formatter.format(record))

    def test_adds_environment_and_timestamp(self):
        payload = self._format(ticket_id="abc")
        assert payload["environment"] == "test"
        assert payload["ticket_id"] == "abc"
        assert "timestamp" in payload

    def test_redacts_secrets(self):
        payload = self._format(api_key="sk-123", token="t", total_tokens=42)
        assert payload["api_key"] == "***REDACTED***"
        assert payload["token"] == "***REDACTED***"
        assert payload["total_tokens"] == 42

    def test_log_latency_reraises(self, caplog):
        logger = logging.getLogger("ticket_rag.tests")

        with caplog.at_level(logging.WARNING, logger="ticket_rag.tests"):
            with pytest.raises(ValueError):
                with log_latency(logger, "embedding", ticket_id="abc"):
                    raise ValueError("bad")

        assert "embedding failed" in caplog.text

    def test_context_logger_carries_correlation_id(self, caplog):
        logger = get_context_logger("ticket_rag.tests", correlation_id="req-1")

        with caplog.at_level(logging.INFO, logger="ticket_rag.tests"):
            logger.info("processing")

        assert caplog.records[-1].correlation_id == "req-1"

    def test_context_logger_without_id_is_plain(self):
        assert isinstance(get_context_logger("ticket_rag.tests"), logging.Logger)


class TestErrorKinds:

    @pytest.mark.parametrize(
        "error, kind",
        [
            (ConfigurationException("missing"), "Configuration"),
            (ValidationException("title", "empty"), "Validation"),
            (ResourceNotFoundException("Vector", "1"), "NotFound"),
            (NetworkException("timeout", service_name="LLM Service"), "Network"),
            (EmbeddingServiceException("bad"), "EmbeddingService"),
            (LLMException("bad"), "LLMService"),
            (VectorStoreException("bad"), "VectorDatabase"),
            (DatabaseException("bad"), "Database"),
            (PermissionException("delete"), "Permission"),
            (InternalException("bad"), "Internal"),
        ],
    )
    def test_kind(self, error, kind):
        assert error.kind == kind
        assert error.to_dict()["kind"] == kind

    def test_validation_names_field(self):
        error = ValidationException("priority", "out of range")
        assert error.field == "priority"
        assert str(error) == "priority: out of range"
