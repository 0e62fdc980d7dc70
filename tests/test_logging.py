"""
Structured logging helpers.
"""

import logging

import pytest

from util.logging import StructuredLogger, sanitize_payload


@pytest.fixture
def structured_logger():
    return StructuredLogger("recall.test")


class TestSanitizePayload:

    def test_redacts_sensitive_fields(self):
        payload = {"api_key": "sk-live-123", "Authorization": "Bearer abc", "model": "hash-384"}

        sanitized = sanitize_payload(payload)

        assert sanitized["api_key"] == "[REDACTED]"
        assert sanitized["Authorization"] == "[REDACTED]"
        assert sanitized["model"] == "hash-384"

    def test_reveal_sensitive(self):
        assert sanitize_payload({"token": "t"}, reveal_sensitive=True) == {"token": "t"}

    def test_truncates_long_strings(self):
        sanitized = sanitize_payload({"text": "x" * 500})
        assert sanitized["text"] == "x" * 100 + "..."

    def test_nested_values(self):
        sanitized = sanitize_payload({"items": [{"password": "p"}, "short"]})
        assert sanitized == {"items": [{"password": "[REDACTED]"}, "short"]}


class TestStructuredLogger:

    def test_status_sets_level(self, structured_logger, caplog):
        with caplog.at_level(logging.INFO, logger="recall.test"):
            structured_logger.log_operation("search.semantic", "success")
            structured_logger.log_operation("search.skip_candidate", "skipped")
            structured_logger.log_operation("cache.get", "degraded")
            structured_logger.log_operation("records.save", "failed")

        levels = [record.levelno for record in caplog.records]
        assert levels == [logging.INFO, logging.WARNING, logging.WARNING, logging.ERROR]

    def test_embedding_request_redacts(self, structured_logger, caplog):
        with caplog.at_level(logging.INFO, logger="recall.test"):
            structured_logger.log_embedding_request("openai/text-embedding-3-small", "failed",
                                                    {"api_key": "sk-live", "error": "401"})

        message = caplog.records[-1].getMessage()
        assert "embedding.generate" in message
        assert "sk-live" not in message
        assert "[REDACTED]" in message

    def test_sync_run_with_errors_is_a_warning(self, structured_logger, caplog):
        with caplog.at_level(logging.INFO, logger="recall.test"):
            structured_logger.log_sync_run(2, 0, ["Websites sync failed: timeout"], 12.5)

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "sync.all" in record.getMessage()
        assert "12.5" in record.getMessage()

    def test_search_log(self, structured_logger, caplog):
        with caplog.at_level(logging.INFO, logger="recall.test"):
            structured_logger.log_search("keyword", "u1", "posts", 4, 2)

        message = caplog.records[-1].getMessage()
        assert "search.keyword" in message
        assert "'results': 2" in message
