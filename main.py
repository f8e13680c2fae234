import logging
import logging.config
from pathlib import Path

import email_validator
import yaml
from datetype import DateTime
from flask import Flask, abort, jsonify, request, url_for
from flask_login import LoginManager
from flask_mailman import Mail
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import TIMESTAMP, MetaData, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import DeclarativeBase
from werkzeug.exceptions import HTTPException

from loggingmanager import create_logging_manager, set_user_id

# If we have logging handlers set up here, don't touch them.
# This is especially problematic during testing as we don't
# want to overwrite pytest's handlers. Note: if anything
# logs before this point, logging.basicConfig will install
# a default stderr StreamHandler.
if len(logging.root.handlers) == 0 and Path("logging.yaml").is_file():
    install_logging = True
    with open("logging.yaml") as f:
        conf = yaml.load(f, Loader=yaml.FullLoader)
        if Path("logging.override.yaml").is_file():
            with open("logging.override.yaml") as fo:
                conf_overrides = yaml.load(fo, Loader=yaml.FullLoader)

                def update_logging(d, s):
                    for k, v in s.items():
                        if isinstance(v, dict):
                            d[k] = update_logging(d.get(k, {}), v)
                        elif v is not None:
                            d[k] = v
                    return d

                update_logging(conf, conf_overrides)

        logging.config.dictConfig(conf)

else:
    install_logging = False

logger = logging.getLogger(__name__)

naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class BaseModel(DeclarativeBase):
    metadata = MetaData(naming_convention=naming_convention)


def get_or_404[M: BaseModel](db: SQLAlchemy, model: type[M], id: int) -> M:
    try:
        return db.session.get_one(model, id)
    except NoResultFound:
        abort(404)


# Workaround for a weird issue where, with `DateTime[None]` in the type_annotation_map
# directly, `Mapped[DateTime[None] | None]` in models worked fine but
# `Mapped[DateTime[None]]` resulted in "Could not locate SQLAlchemy Core type for Python
# type datetype.DateTime[None]".
NaiveDT = DateTime[None]

# We can't use `type_annotation_map` directly in the BaseModel due to flask-sqlalchemy
# https://github.com/pallets-eco/flask-sqlalchemy/issues/1361
db = SQLAlchemy(model_class=BaseModel)
db.Model.registry.update_type_annotation_map(  # type: ignore[attr-defined]
    {
        NaiveDT: TIMESTAMP(timezone=False),
    }
)

migrate = Migrate()
mail = Mail()
login_manager = LoginManager()


def serialize_sqlite_transactions(engine: Engine):
    """SQLite's default deferred transactions take the write lock only when they
    first write, so two sign-ups can both count the same free slot and then
    collide. Open every transaction with BEGIN IMMEDIATE instead, which makes
    writers queue on the database lock (up to the connection's busy timeout).

    PostgreSQL gets the same effect from the FOR UPDATE lock on the shift row.
    """

    @event.listens_for(engine, "connect")
    def disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        # Deleting a shift relies on ON DELETE CASCADE for its signups.
        dbapi_connection.execute("PRAGMA foreign_keys = ON")

    @event.listens_for(engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_app(dev_server=False, config_override=None):
    app = Flask(__name__)
    app.config.from_envvar("SETTINGS_FILE")
    if config_override:
        app.config.from_mapping(config_override)

    if "SECRET_KEY" not in app.config:
        raise RuntimeError("SECRET_KEY must be set in the app config")

    if dev_server:
        # Print outgoing mail to the terminal unless told otherwise
        app.config.setdefault("MAIL_BACKEND", "console")

    if install_logging:
        create_logging_manager(app)
        # Flask has now kindly installed its own log handler which we will summarily remove.
        app.logger.propagate = True
        app.logger.handlers = []
        if not app.debug:
            logging.root.setLevel(logging.INFO)
        else:
            logging.root.setLevel(logging.DEBUG)

    for extension in (db, mail):
        extension.init_app(app)

    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            serialize_sqlite_transactions(db.engine)

    migrate.init_app(app, db)

    login_manager.init_app(app, add_context_processor=False)

    from models.user import User

    @login_manager.user_loader
    def load_user(userid: str) -> User | None:
        user = db.session.get(User, int(userid))
        if user:
            set_user_id(user.email)
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify(error="unauthorized", message="You need to log in first"), 401

    if not app.debug:

        @app.errorhandler(Exception)
        def handle_exception(e):
            """Generic exception handler to catch and log unhandled exceptions in production."""
            if isinstance(e, HTTPException):
                # HTTPException is used to implement flask's HTTP errors so pass it through.
                return e

            app.logger.exception("Unhandled exception in request: %s", request)
            return jsonify(error="internal", message="Something went wrong"), 500

    @app.errorhandler(404)
    def handle_404(e):
        return jsonify(error="not_found", message="Not found"), 404

    app.jinja_env.globals["external_url"] = external_url

    @app.shell_context_processor
    def shell_imports():
        ctx = {}

        # Import models and constants
        import models

        for attr in dir(models):
            if attr[0].isupper():
                ctx[attr] = getattr(models, attr)

        # And just for convenience
        ctx["db"] = db

        return ctx

    if app.config["DEBUG"] or app.testing:
        if not email_validator.TEST_ENVIRONMENT:
            email_validator.TEST_ENVIRONMENT = True
            email_validator.SPECIAL_USE_DOMAIN_NAMES.remove("invalid")

    from apps.users import users
    from apps.volunteer import volunteer
    from apps.volunteer.admin import volunteer_admin

    app.register_blueprint(users)
    app.register_blueprint(volunteer, url_prefix="/volunteer")
    app.register_blueprint(volunteer_admin, url_prefix="/volunteer/admin")

    return app


def external_url(endpoint, **values):
    """Generate an absolute external URL. If you need to override this,
    you're probably doing something wrong.
    """
    return url_for(endpoint, _external=True, **values)
