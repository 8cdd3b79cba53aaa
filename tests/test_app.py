"""
Tests for the Flask application factory.
Tests configuration, extensions, startup rescheduling and error handling.
"""

from datetime import date, timedelta
from unittest.mock import patch

from flask import Flask

from watchme.app import create_app
from watchme.domain import Movie
from watchme.models import db
from watchme.notifications import ReleaseNotifier
from watchme.posters import PosterCache
from watchme.store import WatchlistStore


def test_app_is_flask_instance(app):
    assert isinstance(app, Flask)
    assert app.config['TESTING'] is True
    assert app.config['SQLALCHEMY_DATABASE_URI'] == 'sqlite:///:memory:'


def test_extensions_registered(app):
    assert isinstance(app.extensions['release_notifier'], ReleaseNotifier)
    assert isinstance(app.extensions['poster_cache'], PosterCache)
    assert not app.extensions['release_notifier'].scheduler.running


def test_database_url_from_env(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'env.db'}"
    monkeypatch.setenv('WATCHME_DATABASE_URL', url)
    monkeypatch.setenv('WATCHME_NOTIFICATIONS_ENABLED', '0')

    app = create_app({'POSTER_CACHE_DIR': str(tmp_path / 'posters')})

    assert app.config['SQLALCHEMY_DATABASE_URI'] == url
    assert app.config['NOTIFICATIONS_ENABLED'] is False


def test_startup_reschedules_upcoming_releases(tmp_path):
    config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'watchme.db'}",
        'POSTER_CACHE_DIR': str(tmp_path / 'posters'),
    }

    first = create_app(dict(config, NOTIFICATIONS_ENABLED=False))
    with first.app_context():
        store = WatchlistStore()
        store.add_movie(Movie("Dune", date.today() + timedelta(days=5)))
        store.add_movie(Movie("Heat", date.today() - timedelta(days=5)))
        db.session.remove()

    second = create_app(dict(config, NOTIFICATIONS_ENABLED=True))
    notifier = second.extensions['release_notifier']
    try:
        assert notifier.scheduler.running
        assert [job.name for job in notifier.scheduler.get_jobs()] == ["Release of Dune"]
    finally:
        notifier.shutdown()


def test_unexpected_error_is_json_500(client):
    with patch('watchme.routes.api.WatchlistStore.list_movies', side_effect=RuntimeError("disk on fire")):
        response = client.get('/api/movies')

    assert response.status_code == 500
    assert response.get_json() == {"status": "error", "error": "An internal error occurred."}
