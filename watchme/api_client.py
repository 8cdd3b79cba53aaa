"""
MovieDataClient: HTTP access to the movie metadata API and its image CDN.

Every outbound call (title search, movie-by-id lookups, poster downloads)
goes through one client so timeouts, retries and error classification are
handled in a single place.

Error Taxonomy:
- TransientError: Network problems, timeouts and 5xx responses (retried)
- QuotaError: 429 rate limiting (retried)
- AuthError: 401/403, usually a missing or wrong API key
- NotFoundError: 404
- APIError: Anything else, including undecodable JSON bodies
"""

import os
import time
import logging
from enum import Enum
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class APIErrorType(Enum):
    """Classification of API errors."""
    TRANSIENT = "transient"
    AUTH = "auth"
    QUOTA = "quota"
    NOT_FOUND = "not_found"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"


class APIError(Exception):
    """Base exception for all API errors."""

    def __init__(self, message: str, error_type: APIErrorType = APIErrorType.UNKNOWN,
                 status_code: Optional[int] = None, original_error: Optional[Exception] = None):
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.original_error = original_error
        super().__init__(message)


class TransientError(APIError):
    def __init__(self, message: str, status_code: Optional[int] = None,
                 original_error: Optional[Exception] = None):
        super().__init__(message, APIErrorType.TRANSIENT, status_code, original_error)


class AuthError(APIError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, APIErrorType.AUTH, status_code)


class QuotaError(APIError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, APIErrorType.QUOTA, status_code)


class NotFoundError(APIError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, APIErrorType.NOT_FOUND, status_code)


_ERROR_CLASSES = {
    APIErrorType.AUTH: AuthError,
    APIErrorType.QUOTA: QuotaError,
    APIErrorType.NOT_FOUND: NotFoundError,
}

RETRYABLE = (APIErrorType.TRANSIENT, APIErrorType.QUOTA)


def classify_status(status_code: int) -> APIErrorType:
    """Map a non-2xx HTTP status to an error type."""
    if status_code in (401, 403):
        return APIErrorType.AUTH
    if status_code == 404:
        return APIErrorType.NOT_FOUND
    if status_code == 429:
        return APIErrorType.QUOTA
    if 500 <= status_code < 600:
        return APIErrorType.TRANSIENT
    return APIErrorType.UNKNOWN


class MovieDataClient:
    """
    requests based client with timeouts and exponential backoff.

    Configuration via environment variables:
    - API_CLIENT_TIMEOUT: Default timeout in seconds (default: 3.0)
    - API_CLIENT_MAX_RETRIES: Retries after the first attempt (default: 3)
    - API_CLIENT_BACKOFF_BASE: First backoff delay in seconds (default: 0.5)
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None
    ):
        self.timeout = timeout if timeout is not None else float(os.getenv("API_CLIENT_TIMEOUT", "3.0"))
        self.max_retries = max_retries if max_retries is not None else int(os.getenv("API_CLIENT_MAX_RETRIES", "3"))
        self.backoff_base = backoff_base if backoff_base is not None else float(os.getenv("API_CLIENT_BACKOFF_BASE", "0.5"))

        self.session = requests.Session()

        logger.info(
            f"MovieDataClient initialized: timeout={self.timeout}s, "
            f"max_retries={self.max_retries}, backoff_base={self.backoff_base}s"
        )

    def _calculate_backoff(self, attempt: int) -> float:
        """0.5s, 1s, 2s, ... with the default base."""
        return self.backoff_base * (2 ** attempt)

    def _raise(self, error_type: APIErrorType, message: str,
               status_code: Optional[int] = None, original_error: Optional[Exception] = None):
        if error_type == APIErrorType.TRANSIENT:
            raise TransientError(message, status_code, original_error)
        error_class = _ERROR_CLASSES.get(error_type)
        if error_class is not None:
            raise error_class(message, status_code)
        raise APIError(message, error_type, status_code, original_error)

    def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        api_name: str = "API",
        deadline: Optional[float] = None
    ) -> requests.Response:
        """
        GET `url`, retrying transient and quota failures.

        Args:
            url: Request URL
            params: Query parameters
            headers: Request headers
            timeout: Override the default timeout for each attempt
            api_name: Name used in log lines (e.g., "TMDB")
            deadline: Seconds the whole call may take, retries and backoff
                included. Per-attempt timeouts are cut down to fit.

        Returns:
            The 2xx response

        Raises:
            AuthError, QuotaError, NotFoundError, TransientError, APIError
        """
        request_timeout = timeout or self.timeout
        started = time.monotonic()
        attempt = 0

        while True:
            attempt_timeout = request_timeout
            if deadline is not None:
                attempt_timeout = min(request_timeout, deadline - (time.monotonic() - started))
                if attempt_timeout <= 0:
                    raise TransientError(f"{api_name} request exceeded its {deadline}s deadline")

            try:
                logger.debug(
                    f"[{api_name}] attempt {attempt + 1}/{self.max_retries + 1}: "
                    f"GET {url} (timeout={attempt_timeout}s)"
                )
                response = self.session.get(url, params=params, headers=headers, timeout=attempt_timeout)
            except requests.exceptions.RequestException as e:
                error_type = APIErrorType.TRANSIENT
                message = f"{api_name} request failed: {type(e).__name__}: {e}"
                status_code = None
                original_error = e
                logger.warning(f"[{api_name}] request exception: {type(e).__name__}: {e}")
            else:
                if response.ok:
                    if attempt > 0:
                        logger.info(f"[{api_name}] succeeded after {attempt + 1} attempt(s)")
                    return response
                error_type = classify_status(response.status_code)
                message = f"{api_name} request failed with status {response.status_code}: {response.text[:200]}"
                status_code = response.status_code
                original_error = None
                logger.warning(f"[{api_name}] status {response.status_code}: {response.text[:200]}")

            if error_type in RETRYABLE and attempt < self.max_retries:
                delay = self._calculate_backoff(attempt)
                # The next attempt needs some time left after the backoff
                if deadline is None or time.monotonic() - started + delay < deadline:
                    logger.info(
                        f"[{api_name}] retrying in {delay}s "
                        f"(attempt {attempt + 1}/{self.max_retries}, error_type={error_type.value})"
                    )
                    time.sleep(delay)
                    attempt += 1
                    continue
                logger.warning(f"[{api_name}] deadline of {deadline}s reached, not retrying")

            if attempt > 0:
                logger.error(f"[{api_name}] giving up after {attempt + 1} attempts")
            self._raise(error_type, message, status_code, original_error)

    def get_json(self, url: str, **kwargs) -> Dict[str, Any]:
        """GET `url` and decode the JSON body."""
        api_name = kwargs.get("api_name", "API")
        response = self.get(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise APIError(
                f"{api_name} returned a body that is not JSON",
                APIErrorType.INVALID_RESPONSE,
                response.status_code,
                e,
            )

    def get_bytes(self, url: str, **kwargs) -> bytes:
        """GET `url` and return the raw body, e.g. a poster image."""
        return self.get(url, **kwargs).content

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
