import pytest

from chemistry.config import Config
from chemistry.game.service import GameService
from chemistry.server import create_app


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SOCKETIO_ASYNC_MODE = "threading"
    REDIS_URL = ""
    CLEANUP_ENABLED = False
    LANGUAGES = ("en", "id")


@pytest.fixture()
def service():
    return GameService()


@pytest.fixture()
def app_and_socketio():
    return create_app(TestConfig)


@pytest.fixture()
def flask_app(app_and_socketio):
    return app_and_socketio[0]


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(app_and_socketio):
    flask_app, socketio = app_and_socketio
    created = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        created.append(test_client)
        return test_client

    yield _make

    for test_client in created:
        try:
            if test_client.is_connected():
                test_client.disconnect()
        except Exception:
            pass
