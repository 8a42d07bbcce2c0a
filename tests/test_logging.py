"""Tests for log redaction."""

import logging

from socialbot.core.logging import SecretRedactionFilter, get_logging_config, redact_secrets


def test_graph_token_in_url_is_masked():
    url = "https://graph.facebook.com/123_456?fields=likes&access_token=EAAB123secret"

    assert redact_secrets(url) == "https://graph.facebook.com/123_456?fields=likes&access_token=***"


def test_bearer_key_is_masked():
    assert redact_secrets("Authorization: Bearer gsk_abc.123") == "Authorization: Bearer ***"


def test_filter_rewrites_formatted_record():
    record = logging.LogRecord(
        "httpx", logging.INFO, __file__, 1, "HTTP Request: GET %s", ("https://x/?access_token=tok",), None
    )

    assert SecretRedactionFilter().filter(record) is True
    assert record.getMessage() == "HTTP Request: GET https://x/?access_token=***"


def test_service_name_in_console_format():
    config = get_logging_config("api")

    assert "[api]" in config["formatters"]["console"]["format"]
    assert config["handlers"]["console"]["filters"] == ["redact"]
    assert config["loggers"]["socialbot"]["propagate"] is False
