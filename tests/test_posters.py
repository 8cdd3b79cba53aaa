"""
Tests for the on-disk poster cache.
"""

import os

import pytest
from unittest.mock import MagicMock

from watchme.api_client import TransientError
from watchme.posters import PosterCache, escape_path

URL = "https://image.tmdb.org/t/p/w92/abc.jpg"


@pytest.fixture
def client():
    client = MagicMock()
    client.get_bytes.return_value = b"jpeg-bytes"
    return client


@pytest.fixture
def posters(tmp_path, client):
    return PosterCache(cache_dir=str(tmp_path / "posters"), client=client)


def test_escape_path():
    assert escape_path(URL) == "-t-p-w92-abc-jpg"


def test_creates_cache_dir(posters):
    assert os.path.isdir(posters.cache_dir)


def test_env_cache_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("POSTER_CACHE_DIR", str(tmp_path / "from-env"))
    assert PosterCache().cache_dir == str(tmp_path / "from-env")


def test_fetch_downloads_once(posters, client):
    assert posters.fetch(URL) == (b"jpeg-bytes", "image/jpeg")
    assert posters.contains(URL)

    assert posters.fetch(URL) == (b"jpeg-bytes", "image/jpeg")
    client.get_bytes.assert_called_once_with(URL, api_name="TMDB images")


def test_file_name(posters):
    posters.fetch(URL)
    assert os.listdir(posters.cache_dir) == ["-t-p-w92-abc-jpg"]


def test_mimetype_from_extension(posters):
    assert posters.fetch("https://image.tmdb.org/t/p/w92/abc.png")[1] == "image/png"
    assert PosterCache.guess_mimetype("https://image.tmdb.org/noext") == "image/jpeg"


def test_failed_download_leaves_no_file(posters, client):
    client.get_bytes.side_effect = TransientError("timeout")
    with pytest.raises(TransientError):
        posters.fetch(URL)
    assert os.listdir(posters.cache_dir) == []


def test_url_without_path(posters):
    with pytest.raises(ValueError):
        posters.fetch("https://image.tmdb.org")


def test_clear(posters):
    posters.fetch(URL)
    posters.fetch("https://image.tmdb.org/t/p/w500/abc.jpg")
    assert posters.clear() == 2
    assert not posters.contains(URL)
