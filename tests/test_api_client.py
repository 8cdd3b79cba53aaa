"""
Unit tests for MovieDataClient.

Tests cover:
- Configuration defaults and environment overrides
- Error classification (Auth, Quota, NotFound, Transient)
- Retry logic with exponential backoff
- JSON and raw byte bodies
"""

import pytest
import requests
from unittest.mock import Mock, patch
from watchme.api_client import (
    MovieDataClient,
    APIError,
    AuthError,
    QuotaError,
    NotFoundError,
    TransientError,
    APIErrorType,
    classify_status,
)


def response(status_code=200, json_data=None, text="", content=b""):
    mock_response = Mock()
    mock_response.ok = 200 <= status_code < 300
    mock_response.status_code = status_code
    mock_response.text = text
    mock_response.content = content
    if isinstance(json_data, Exception):
        mock_response.json.side_effect = json_data
    else:
        mock_response.json.return_value = json_data
    return mock_response


class TestMovieDataClient:
    """Test suite for MovieDataClient."""

    def test_initialization_defaults(self, monkeypatch):
        for name in ("API_CLIENT_TIMEOUT", "API_CLIENT_MAX_RETRIES", "API_CLIENT_BACKOFF_BASE"):
            monkeypatch.delenv(name, raising=False)
        client = MovieDataClient()
        assert client.timeout == 3.0
        assert client.max_retries == 3
        assert client.backoff_base == 0.5

    def test_initialization_from_env(self, monkeypatch):
        monkeypatch.setenv("API_CLIENT_TIMEOUT", "10.0")
        monkeypatch.setenv("API_CLIENT_MAX_RETRIES", "5")
        monkeypatch.setenv("API_CLIENT_BACKOFF_BASE", "2.0")

        client = MovieDataClient()
        assert client.timeout == 10.0
        assert client.max_retries == 5
        assert client.backoff_base == 2.0

    def test_successful_request(self):
        client = MovieDataClient()

        with patch.object(client.session, 'get', return_value=response(json_data={"id": 1})) as mock_get:
            assert client.get_json("https://api.example.com/movie/1", params={"a": 1}, api_name="TMDB") == {"id": 1}

        mock_get.assert_called_once_with(
            "https://api.example.com/movie/1", params={"a": 1}, headers=None, timeout=3.0
        )

    def test_custom_timeout_per_request(self):
        client = MovieDataClient(timeout=3.0)
        with patch.object(client.session, 'get', return_value=response()) as mock_get:
            client.get("https://api.example.com", timeout=10)
        assert mock_get.call_args.kwargs["timeout"] == 10

    @pytest.mark.parametrize("status_code", [401, 403])
    def test_auth_error(self, status_code):
        client = MovieDataClient()

        with patch.object(client.session, 'get', return_value=response(status_code, text="Unauthorized")) as mock_get:
            with pytest.raises(AuthError) as exc_info:
                client.get("https://api.example.com/test", api_name="TestAPI")

        assert str(status_code) in str(exc_info.value)
        assert exc_info.value.status_code == status_code
        assert exc_info.value.error_type == APIErrorType.AUTH
        assert mock_get.call_count == 1

    def test_not_found_is_not_retried(self):
        client = MovieDataClient()
        with patch.object(client.session, 'get', return_value=response(404)) as mock_get:
            with pytest.raises(NotFoundError):
                client.get("https://api.example.com/test")
        assert mock_get.call_count == 1

    @patch('watchme.api_client.time.sleep')
    def test_quota_error_after_retries(self, mock_sleep):
        client = MovieDataClient(max_retries=2, backoff_base=0.5)

        with patch.object(client.session, 'get', return_value=response(429, text="Rate limit")) as mock_get:
            with pytest.raises(QuotaError) as exc_info:
                client.get("https://api.example.com/test")

        assert exc_info.value.error_type == APIErrorType.QUOTA
        assert mock_get.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]

    @patch('watchme.api_client.time.sleep')
    def test_transient_500_retries(self, mock_sleep):
        client = MovieDataClient(max_retries=3)
        with patch.object(client.session, 'get', return_value=response(503)) as mock_get:
            with pytest.raises(TransientError):
                client.get("https://api.example.com/test")
        assert mock_get.call_count == 4

    @patch('watchme.api_client.time.sleep')
    def test_connection_error(self, mock_sleep):
        client = MovieDataClient(max_retries=1)
        error = requests.exceptions.ConnectionError("Connection failed")

        with patch.object(client.session, 'get', side_effect=error):
            with pytest.raises(TransientError) as exc_info:
                client.get("https://api.example.com/test")

        assert exc_info.value.original_error is error
        assert exc_info.value.status_code is None

    @patch('watchme.api_client.time.sleep')
    def test_retry_succeeds_after_failure(self, mock_sleep):
        client = MovieDataClient(max_retries=2)
        with patch.object(client.session, 'get', side_effect=[response(500), response(json_data={"ok": True})]):
            assert client.get_json("https://api.example.com/test") == {"ok": True}
        mock_sleep.assert_called_once()

    def test_deadline_caps_timeouts_and_retries(self):
        client = MovieDataClient(timeout=3.0, max_retries=3, backoff_base=0.5)
        clock = {"now": 0.0}

        def advance(seconds):
            clock["now"] += seconds

        def hang(url, params=None, headers=None, timeout=None):
            advance(timeout)
            raise requests.exceptions.Timeout("read timed out")

        with patch("watchme.api_client.time.monotonic", side_effect=lambda: clock["now"]), \
                patch("watchme.api_client.time.sleep", side_effect=advance), \
                patch.object(client.session, "get", side_effect=hang) as mock_get:
            with pytest.raises(TransientError):
                client.get("https://api.example.com/test", deadline=5.0)

        assert [c.kwargs["timeout"] for c in mock_get.call_args_list] == [3.0, 1.5]
        assert clock["now"] == 5.0

    def test_unclassified_status(self):
        client = MovieDataClient()
        with patch.object(client.session, 'get', return_value=response(418)):
            with pytest.raises(APIError) as exc_info:
                client.get("https://api.example.com/test")
        assert exc_info.value.error_type == APIErrorType.UNKNOWN

    def test_invalid_json(self):
        client = MovieDataClient()
        with patch.object(client.session, 'get', return_value=response(json_data=ValueError("bad"))):
            with pytest.raises(APIError) as exc_info:
                client.get_json("https://api.example.com/test")
        assert exc_info.value.error_type == APIErrorType.INVALID_RESPONSE

    def test_get_bytes(self):
        client = MovieDataClient()
        with patch.object(client.session, 'get', return_value=response(content=b"\x89PNG")):
            assert client.get_bytes("https://image.example.com/a.png") == b"\x89PNG"

    def test_exponential_backoff_calculation(self):
        client = MovieDataClient(backoff_base=0.5)
        assert [client._calculate_backoff(n) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_context_manager_closes_session(self):
        client = MovieDataClient()
        with patch.object(client.session, 'close') as mock_close:
            with client:
                pass
        mock_close.assert_called_once()


@pytest.mark.parametrize("status_code,expected", [
    (401, APIErrorType.AUTH),
    (403, APIErrorType.AUTH),
    (404, APIErrorType.NOT_FOUND),
    (429, APIErrorType.QUOTA),
    (500, APIErrorType.TRANSIENT),
    (504, APIErrorType.TRANSIENT),
    (400, APIErrorType.UNKNOWN),
])
def test_classify_status(status_code, expected):
    assert classify_status(status_code) == expected
