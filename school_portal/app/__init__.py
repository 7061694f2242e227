import logging
from collections.abc import Mapping

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from . import config
from .services import db_service


def create_app(overrides: Mapping | None = None) -> Flask:
    app = Flask(__name__)
    app.secret_key = config.SECRET_KEY
    app.config.update(
        DB_PATH=config.DB_PATH,
        SOURCE_FETCH_TIMEOUT=config.SOURCE_FETCH_TIMEOUT,
        LOG_LEVEL=config.LOG_LEVEL,
    )
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db_service.init_app(app)

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"error": e.description}), e.code

    from .routes.auth import bp as auth_bp
    from .routes.student import bp as student_bp
    from .routes.admin import bp as admin_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(admin_bp)

    return app
