import os
import sys
from datetime import timedelta

import pytest

# Ensure the backend root (containing the `hodl` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from hodl import create_app, db, socketio

API_SECRET = 'test-api-secret'


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    API_SECRET = API_SECRET
    BCRYPT_LOG_ROUNDS = 4
    BCRYPT_HANDLE_LONG_PASSWORDS = True
    CORS_ORIGINS = ['http://localhost:5173']
    MAX_PLAYERS = 3
    ACTIVE_WINDOW_HOURS = 24
    ROUND_DURATION_SEC = 60
    PRICE_ASSET = 'btc'
    PRICE_DECIMALS = 2
    PRICE_SOURCES = ['kraken', 'binance', 'coingecko']
    PRICE_SOURCE_TIMEOUT_SEC = 1
    PRICE_FETCH_ITERATIONS = 3
    PRICE_FETCH_INTERVAL_SEC = 0
    PRICE_BROADCAST_INTERVAL_SEC = 1


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import hodl.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    test_client = flask_app.test_client()
    test_client.environ_base['HTTP_X_API_SECRET'] = API_SECRET
    return test_client


@pytest.fixture()
def anon_client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws',
        auth={'apiSecret': API_SECRET},
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def set_price(flask_app):
    from hodl.services.prices import store

    def _set(value, source='test'):
        return store.set_price(value, source=source)
    return _set


@pytest.fixture()
def backdate(flask_app):
    """Move a guess's submission time into the past."""
    from hodl.models import Guess

    def _backdate(guess_id, seconds):
        guess = db.session.get(Guess, guess_id)
        guess.guessed_at = guess.guessed_at - timedelta(seconds=seconds)
        db.session.commit()
    return _backdate
