"""
Prometheus metrics for WatchMe.

Covers HTTP traffic, calls to TMDb, metadata cache effectiveness and the
watch list itself (movies added/deleted, tags pruned, reminders sent).
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from functools import wraps
import time

import structlog

logger = structlog.get_logger()

# HTTP
http_requests_total = Counter(
    'watchme_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'watchme_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

# External APIs
external_api_calls_total = Counter(
    'watchme_external_api_calls_total',
    'Total number of external API calls',
    ['api_name', 'status']
)

external_api_duration_seconds = Histogram(
    'watchme_external_api_duration_seconds',
    'External API call duration in seconds',
    ['api_name']
)

# Metadata cache
cache_hits_total = Counter(
    'watchme_cache_hits_total',
    'Total number of metadata cache hits',
    ['cache_type']
)

cache_misses_total = Counter(
    'watchme_cache_misses_total',
    'Total number of metadata cache misses',
    ['cache_type']
)

# Watch list
movies_added_total = Counter(
    'watchme_movies_added_total',
    'Total number of movies added to the watch list'
)

movies_deleted_total = Counter(
    'watchme_movies_deleted_total',
    'Total number of movies deleted from the watch list'
)

tags_pruned_total = Counter(
    'watchme_tags_pruned_total',
    'Total number of orphaned tags deleted'
)

notifications_delivered_total = Counter(
    'watchme_notifications_delivered_total',
    'Total number of release date notifications delivered'
)


def track_external_api_call(api_name):
    """
    Decorator to track external API call metrics.

    A dict result whose 'status' is an error status counts as an error.

    Usage:
        @track_external_api_call('tmdb')
        def search_movies_core(query):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            status = 'success'
            try:
                result = func(*args, **kwargs)
                if isinstance(result, dict) and result.get('status', 'success') not in ('success', 'not_found', 'too_short'):
                    status = 'error'
                return result
            except Exception:
                status = 'error'
                raise
            finally:
                duration = time.time() - start_time
                external_api_calls_total.labels(api_name=api_name, status=status).inc()
                external_api_duration_seconds.labels(api_name=api_name).observe(duration)
                logger.info(
                    "external_api_call",
                    api_name=api_name,
                    status=status,
                    duration_ms=round(duration * 1000, 2)
                )
        return wrapper
    return decorator


def track_cache_operation(cache_type, hit=True):
    """
    Record a cache hit or miss.

    Args:
        cache_type: Cache name (e.g., 'tmdb_search', 'tmdb_details')
        hit: True for a hit, False for a miss
    """
    if hit:
        cache_hits_total.labels(cache_type=cache_type).inc()
    else:
        cache_misses_total.labels(cache_type=cache_type).inc()


def track_movie_added():
    movies_added_total.inc()


def track_movie_deleted():
    movies_deleted_total.inc()


def track_tags_pruned(count):
    tags_pruned_total.inc(count)


def track_notification_delivered():
    notifications_delivered_total.inc()


def get_metrics():
    """
    Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics_text, content_type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
