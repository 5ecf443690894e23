import logging
import os

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from app.dataroom.config import load_config
from app.dataroom.db import init_db, teardown_db_session
from app.dataroom.routes import bp as routes_bp
from app.dataroom.auth import bp as auth_bp, load_current_viewer
from app.dataroom.modules.files.admin import bp as files_bp
from app.dataroom.modules.investors.admin import bp as investors_bp
from app.dataroom.modules.tracking.admin import bp as tracking_bp
from app.dataroom.storage import check_storage
from app.dataroom.watermark import init_watermarking

_ERROR_MESSAGES = {
    400: "Bad request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not found",
    405: "Method not allowed",
    413: "File too large",
}


def _check_production_config(app: Flask) -> None:
    env = (app.config.get("ENV") or "").strip().lower()
    if env not in ("prod", "production"):
        return
    db_url = str(app.config.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError("DATABASE_URL is required in production.")
    if db_url.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if str(app.config.get("SECRET_KEY") or "") in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")


def _dispose_engine_after_fork(app: Flask) -> None:
    # gunicorn --preload forks workers after the engine exists; pooled connections must not cross.
    if not hasattr(os, "register_at_fork"):
        return

    def _after_fork_child() -> None:
        engine = app.extensions.get("sqlalchemy_engine")
        if engine:
            engine.dispose()
            app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

    os.register_at_fork(after_in_child=_after_fork_child)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        code = e.code or 500
        if code < 400:
            return e  # routing redirects
        if code == 403:
            reason = getattr(g, "forbidden_reason", None)
            viewer = getattr(g, "viewer", None)
            app.logger.warning(
                "Forbidden: path=%s viewer=%s reason=%s request_id=%s",
                request.path,
                getattr(viewer, "email", None),
                reason,
                getattr(g, "request_id", None),
            )
            return jsonify(error=reason or _ERROR_MESSAGES[403]), 403
        return jsonify(error=_ERROR_MESSAGES.get(code, e.name)), code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify(error="Internal server error"), 500


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    _check_production_config(app)

    init_db(app)
    _dispose_engine_after_fork(app)
    check_storage(app.config, app.logger)
    init_watermarking(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(files_bp)
    app.register_blueprint(investors_bp)
    app.register_blueprint(tracking_bp)

    app.before_request(load_current_viewer)
    app.teardown_appcontext(teardown_db_session)
    _register_error_handlers(app)

    logging.getLogger(__name__).info(
        "create_app() complete (storage=%s, video timeout=%ss)",
        app.config.get("STORAGE_BACKEND"),
        app.config.get("VIDEO_ENCODE_TIMEOUT"),
    )
    return app
