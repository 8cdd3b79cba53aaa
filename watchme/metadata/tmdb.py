import os
import logging
from typing import Any, Dict, Optional

from watchme.api_client import (
    MovieDataClient, APIError, AuthError, NotFoundError, QuotaError, TransientError,
)
from watchme.cache import get_cache
from watchme.domain import PosterSize
from watchme.metrics import track_external_api_call
from watchme.utils import minutes_to_human

logger = logging.getLogger(__name__)

TMDB_API_KEY = os.getenv("TMDB_API_KEY")
TMDB_BASE_URL = "https://api.themoviedb.org/3"
IMAGE_BASE_URL = "https://image.tmdb.org/t/p"

# Upper bound on a single metadata fetch, in seconds
TMDB_FETCH_TIMEOUT = float(os.getenv("TMDB_FETCH_TIMEOUT", "10"))

# Auto-complete only kicks in after this many characters
MIN_QUERY_LENGTH = 4

MAX_CAST = 10

SEARCH_CACHE = "tmdb_search"
DETAILS_CACHE = "tmdb_details"

_tmdb_client = None


def _get_tmdb_client() -> MovieDataClient:
    """Get or create the shared TMDB client instance."""
    global _tmdb_client
    if _tmdb_client is None:
        _tmdb_client = MovieDataClient()
    return _tmdb_client


def poster_url(path: Optional[str], size: PosterSize) -> str:
    """Full image URL for a TMDb file path, or "" when there is no path."""
    if not path:
        return ""
    return f"{IMAGE_BASE_URL}/{size.tmdb_width}{path}"


def _error_result(error: Exception, source: str, key: Any, **extra) -> Dict[str, Any]:
    """
    Turn an exception into a status dict, caching it where a retry would
    not help soon.
    """
    cache = get_cache()
    if isinstance(error, AuthError):
        logger.error(f"TMDB authentication error: {error.message}")
        result = {"status": "auth_error", "error": error.message, "error_type": "auth"}
        cache.set(source, key, result, ttl=300)
    elif isinstance(error, QuotaError):
        logger.warning(f"TMDB quota exceeded: {error.message}")
        result = {"status": "quota_error", "error": error.message, "error_type": "quota"}
        cache.set(source, key, result, ttl=300)
    elif isinstance(error, TransientError):
        # Not cached, the next attempt may well succeed
        logger.error(f"TMDB transient error after retries: {error.message}")
        result = {"status": "error", "error": error.message, "error_type": "transient"}
    elif isinstance(error, APIError):
        logger.error(f"TMDB API error: {error.message}")
        result = {"status": "error", "error": error.message, "error_type": error.error_type.value}
    else:
        logger.error(f"TMDB unexpected error: {error}")
        result = {"status": "error", "error": str(error), "error_type": "unknown"}
    result.update(extra)
    return result


def _missing_key_result(**extra) -> Dict[str, Any]:
    result = {"status": "error", "error": "TMDb API Key not configured.", "error_type": "auth"}
    result.update(extra)
    return result


@track_external_api_call('tmdb')
def search_movies_core(query: str) -> Dict[str, Any]:
    """
    Title search for the add-movie auto-complete.

    Returns a dict with keys:
      - status: "success" | "not_found" | "too_short" | "error" | "auth_error" | "quota_error"
      - query: the query as given
      - results: list of {api_id, title, release_date, thumb_url}
      - error, error_type: when status is an error
    """
    query = (query or "").strip()
    if len(query) < MIN_QUERY_LENGTH:
        return {"status": "too_short", "query": query, "results": []}

    if not TMDB_API_KEY:
        return _missing_key_result(query=query, results=[])

    cache = get_cache()
    cached = cache.get(SEARCH_CACHE, query)
    if cached is not None:
        logger.debug(f"TMDB search cache hit for '{query}'")
        return cached

    try:
        payload = _get_tmdb_client().get_json(
            f"{TMDB_BASE_URL}/search/movie",
            params={"api_key": TMDB_API_KEY, "query": query},
            timeout=TMDB_FETCH_TIMEOUT,
            deadline=TMDB_FETCH_TIMEOUT,
            api_name="TMDB",
        )
    except NotFoundError:
        result = {"status": "not_found", "query": query, "results": []}
        cache.set(SEARCH_CACHE, query, result, ttl=3600)
        return result
    except Exception as e:
        return _error_result(e, SEARCH_CACHE, query, query=query, results=[])

    results = [
        {
            "api_id": item.get("id"),
            "title": item.get("title") or item.get("original_title") or "",
            "release_date": item.get("release_date") or None,
            "thumb_url": poster_url(item.get("poster_path"), PosterSize.THUMB),
        }
        for item in payload.get("results") or []
        if item.get("id") is not None
    ]
    result = {
        "status": "success" if results else "not_found",
        "query": query,
        "results": results,
    }
    cache.set(SEARCH_CACHE, query, result)
    return result


def _pick_poster_path(payload: Dict[str, Any]) -> Optional[str]:
    if payload.get("poster_path"):
        return payload["poster_path"]
    posters = (payload.get("images") or {}).get("posters") or []
    for poster in posters:
        if poster.get("file_path"):
            return poster["file_path"]
    return None


def _parse_details(api_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
    cast = sorted(
        (payload.get("credits") or {}).get("cast") or [],
        key=lambda member: member.get("order", 0),
    )
    runtime = payload.get("runtime") or None
    poster_path = _pick_poster_path(payload)
    posters = {
        size.size: poster_url(poster_path, size)
        for size in PosterSize
        if poster_path
    }
    return {
        "status": "success",
        "api_id": api_id,
        "title": payload.get("title") or "",
        "release_date": payload.get("release_date") or None,
        "rating": payload.get("vote_average"),
        "plot": payload.get("overview") or "",
        "runtime": runtime,
        "runtime_human": minutes_to_human(runtime),
        "genres": [g.get("name") for g in payload.get("genres") or [] if g.get("name")],
        "cast": [m.get("name") for m in cast if m.get("name")][:MAX_CAST],
        "posters": posters,
    }


@track_external_api_call('tmdb')
def get_movie_details_core(api_id: int) -> Dict[str, Any]:
    """
    Fetch rating, plot, runtime, genres, cast and posters for a TMDb id.

    Returns a dict with keys:
      - status: "success" | "not_found" | "error" | "auth_error" | "quota_error"
      - api_id, title, release_date, rating, plot, runtime, runtime_human,
        genres, cast, posters ({"mid": url, "thumb": url}) on success
      - error, error_type: when status is an error
    """
    if not TMDB_API_KEY:
        return _missing_key_result(api_id=api_id)

    cache = get_cache()
    cached = cache.get(DETAILS_CACHE, api_id)
    if cached is not None:
        logger.debug(f"TMDB details cache hit for {api_id}")
        return cached

    try:
        payload = _get_tmdb_client().get_json(
            f"{TMDB_BASE_URL}/movie/{int(api_id)}",
            params={
                "api_key": TMDB_API_KEY,
                "append_to_response": "credits,images",
                "include_image_language": "en,null",
            },
            timeout=TMDB_FETCH_TIMEOUT,
            deadline=TMDB_FETCH_TIMEOUT,
            api_name="TMDB",
        )
    except NotFoundError:
        result = {"status": "not_found", "api_id": api_id}
        cache.set(DETAILS_CACHE, api_id, result, ttl=3600)
        return result
    except Exception as e:
        return _error_result(e, DETAILS_CACHE, api_id, api_id=api_id)

    result = _parse_details(api_id, payload)
    cache.set(DETAILS_CACHE, api_id, result)
    return result
