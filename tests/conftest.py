" PyTest Config. This contains global-level pytest fixtures. "
import os
import os.path
import tempfile

import pytest
from flask import g
from flask_login import FlaskLoginClient

from main import create_app
from main import db as db_obj
from tests._utils import make_shift, make_user


@pytest.fixture(scope="module")
def app():
    """Fixture to provide an instance of the app.
    This will also create a Flask app_context and tear it down.

    Each test module gets its own SQLite database file, so tests which use
    several connections at once (the concurrency tests) see the same data.
    """
    if "SETTINGS_FILE" not in os.environ:
        root = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..")
        os.environ["SETTINGS_FILE"] = os.path.join(root, "config", "test.cfg")

    with tempfile.TemporaryDirectory() as tmpdir:
        config_override = {
            "SQLALCHEMY_DATABASE_URI": "sqlite:///" + os.path.join(tmpdir, "shifts.db"),
        }
        app = create_app(config_override=config_override)
        app.test_client_class = FlaskLoginClient

        @app.before_request
        def forget_previous_login():
            # Requests made by the test client reuse this app context, and
            # with it `g`, which is where Flask-Login caches the user.
            g.pop("_login_user", None)

        with app.app_context():
            db_obj.create_all()

            yield app

            db_obj.session.close()
            db_obj.drop_all()
            db_obj.engine.dispose()


@pytest.fixture
def client(app):
    "Yield a test HTTP client for the app"
    yield app.test_client()


@pytest.fixture(scope="module")
def db(app):
    "Yield the DB object"
    yield db_obj


@pytest.fixture
def outbox(app):
    "Capture mail and yield the outbox."
    mail_state = app.extensions["mailman"]
    mail_state.outbox = []
    yield mail_state.outbox


@pytest.fixture
def volunteer(db):
    yield make_user()


@pytest.fixture
def admin(db):
    yield make_user("Admin", permission="volunteer:admin")


@pytest.fixture
def shift(db):
    yield make_shift()
