"""
Tests for Structured Logging

Tests the structured logging functionality including:
- Sensitive data scrubbing
- Request ID propagation
- JSON output format
- Request logging middleware
"""

import unittest
import json
import os
from io import StringIO
from unittest.mock import patch

from watchme.logging_config import (
    scrub_sensitive_data,
    get_logger,
    configure_structlog,
)
from watchme.logging_context import (
    set_request_id,
    get_request_id,
    clear_context,
    bind_context,
)


def capture_json(log):
    """Run `log(logger)` and return the JSON events it printed."""
    with patch('sys.stdout', new=StringIO()) as fake_out:
        log(get_logger(__name__))
        output = fake_out.getvalue()
    return [json.loads(line) for line in output.strip().splitlines()]


class TestSensitiveDataScrubbing(unittest.TestCase):

    def test_scrub_api_key_field(self):
        data = {"api_key": "abcdef123456", "query": "dune"}
        result = scrub_sensitive_data(data)
        self.assertEqual(result["api_key"], "[REDACTED]")
        self.assertEqual(result["query"], "dune")

    def test_scrub_nested_dict(self):
        data = {"params": {"tmdb_api_key": "abcdef123456", "page": 1}}
        result = scrub_sensitive_data(data)
        self.assertEqual(result["params"]["tmdb_api_key"], "[REDACTED]")
        self.assertEqual(result["params"]["page"], 1)

    def test_scrub_list_of_dicts(self):
        data = {"calls": [{"token": "t0k3n-value"}, {"status": "ok"}]}
        result = scrub_sensitive_data(data)
        self.assertEqual(result["calls"][0]["token"], "[REDACTED]")
        self.assertEqual(result["calls"][1]["status"], "ok")

    def test_scrub_api_key_in_url(self):
        text = "GET https://api.themoviedb.org/3/search/movie?api_key=0123456789abcdef&query=dune"
        result = scrub_sensitive_data(text)
        self.assertNotIn("0123456789abcdef", result)
        self.assertIn("query=dune", result)

    def test_scrub_email_in_string(self):
        result = scrub_sensitive_data("Contact someone@example.com for access")
        self.assertEqual(result, "Contact [EMAIL_REDACTED] for access")

    def test_safe_fields_untouched(self):
        data = {"request_id": "api_key=0123456789abcdef"}
        self.assertEqual(scrub_sensitive_data(data), data)

    def test_scrub_non_string_values(self):
        self.assertEqual(scrub_sensitive_data({"count": 3, "ok": True}), {"count": 3, "ok": True})


class TestLoggingContext(unittest.TestCase):

    def setUp(self):
        clear_context()

    def tearDown(self):
        clear_context()

    def test_set_and_get_request_id(self):
        set_request_id("req-1")
        self.assertEqual(get_request_id(), "req-1")

    def test_generate_request_id(self):
        request_id = set_request_id()
        self.assertEqual(len(request_id), 36)
        self.assertEqual(get_request_id(), request_id)

    def test_clear_context(self):
        set_request_id("req-1")
        clear_context()
        self.assertIsNone(get_request_id())


class TestLoggingOutput(unittest.TestCase):

    def setUp(self):
        self.env = patch.dict(os.environ, {"FLASK_ENV": "production", "DEBUG": "0"})
        self.env.start()
        configure_structlog()
        clear_context()

    def tearDown(self):
        clear_context()
        self.env.stop()
        configure_structlog()

    def test_json_output_format(self):
        (entry,) = capture_json(lambda log: log.info("movie_added", movie_id=7, title="Dune"))

        self.assertEqual(entry["event"], "movie_added")
        self.assertEqual(entry["movie_id"], 7)
        self.assertEqual(entry["level"], "info")
        self.assertEqual(entry["service"], "watchme")
        self.assertIn("timestamp", entry)
        self.assertIn("environment", entry)

    def test_secrets_scrubbed_in_output(self):
        (entry,) = capture_json(lambda log: log.info("tmdb_call", api_key="abcdef123456"))
        self.assertEqual(entry["api_key"], "[REDACTED]")

    def test_request_id_in_logs(self):
        set_request_id("trace-123")

        def log_twice(log):
            log.info("event1")
            log.info("event2")

        entries = capture_json(log_twice)
        self.assertEqual([e["request_id"] for e in entries], ["trace-123", "trace-123"])

    def test_bind_additional_context(self):
        bind_context(movie_id=42)
        (entry,) = capture_json(lambda log: log.info("tag_attached"))
        self.assertEqual(entry["movie_id"], 42)


def test_middleware_sets_request_id(client):
    response = client.get("/health")
    assert len(response.headers["X-Request-ID"]) == 36
    # Context is cleared once the request is torn down
    assert get_request_id() is None
