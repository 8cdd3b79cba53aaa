"""
Poster downloads backed by an on-disk cache.

A poster is fetched once and then served from the cache directory. The
cache file name is the URL path with "/" and "." replaced by "-", so
"/t/p/w92/abc.jpg" is stored as "-t-p-w92-abc-jpg".
"""

import os
import logging
import mimetypes
import tempfile
from typing import Optional, Tuple
from urllib.parse import urlparse

from watchme.api_client import MovieDataClient

logger = logging.getLogger(__name__)

DEFAULT_MIMETYPE = "image/jpeg"


def escape_path(url: str) -> str:
    """
    >>> escape_path("https://image.tmdb.org/t/p/w92/abc.jpg")
    '-t-p-w92-abc-jpg'
    """
    return urlparse(url).path.replace("/", "-").replace(".", "-")


class PosterCache:
    """
    Download-once store for poster images.

    Configuration (via environment variables):
        POSTER_CACHE_DIR: Where files are kept (default: <tmp>/watchme-posters)
    """

    def __init__(self, cache_dir: Optional[str] = None, client: Optional[MovieDataClient] = None):
        self.cache_dir = cache_dir or os.getenv(
            "POSTER_CACHE_DIR", os.path.join(tempfile.gettempdir(), "watchme-posters")
        )
        self.client = client
        os.makedirs(self.cache_dir, exist_ok=True)

    def _get_client(self) -> MovieDataClient:
        if self.client is None:
            self.client = MovieDataClient()
        return self.client

    def cache_path(self, url: str) -> str:
        name = escape_path(url)
        if not name.strip("-"):
            raise ValueError(f"Cannot cache poster without a path: {url!r}")
        return os.path.join(self.cache_dir, name)

    @staticmethod
    def guess_mimetype(url: str) -> str:
        mimetype, _ = mimetypes.guess_type(urlparse(url).path)
        return mimetype or DEFAULT_MIMETYPE

    def contains(self, url: str) -> bool:
        return os.path.exists(self.cache_path(url))

    def fetch(self, url: str) -> Tuple[bytes, str]:
        """
        Return (content, mimetype) for a poster URL, downloading it on a miss.

        Raises:
            APIError (or a subclass) when the download fails
        """
        path = self.cache_path(url)
        mimetype = self.guess_mimetype(url)

        if os.path.exists(path):
            with open(path, "rb") as f:
                logger.debug(f"Poster cache hit: {url}")
                return f.read(), mimetype

        content = self._get_client().get_bytes(url, api_name="TMDB images")

        # Write to a temp file first so readers never see half a poster
        fd, tmp_path = tempfile.mkstemp(dir=self.cache_dir, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        logger.info(f"Poster cached: {url} ({len(content)} bytes)")
        return content, mimetype

    def clear(self) -> int:
        """Delete every cached poster. Returns the number of files removed."""
        count = 0
        for name in os.listdir(self.cache_dir):
            path = os.path.join(self.cache_dir, name)
            if os.path.isfile(path):
                os.remove(path)
                count += 1
        logger.info(f"Poster cache cleared: {count} files")
        return count
