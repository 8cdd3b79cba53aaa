import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from watchme.app import create_app
from watchme.models import db
from watchme.store import WatchlistStore
from watchme.cache import reset_global_cache


@pytest.fixture(autouse=True)
def clean_cache():
    """Ensure a fresh metadata cache for every test."""
    reset_global_cache()

    yield

    reset_global_cache()


@pytest.fixture(scope='function')
def app(tmp_path):
    """Fresh app on an in-memory database, scheduler not started."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'NOTIFICATIONS_ENABLED': False,
        'POSTER_CACHE_DIR': str(tmp_path / 'posters'),
    })

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()

    app.extensions['release_notifier'].shutdown()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return WatchlistStore()


@pytest.fixture
def notifier(app):
    return app.extensions['release_notifier']


@pytest.fixture
def scheduler():
    """A scheduler that is never started, so jobs stay pending."""
    return BackgroundScheduler()
