from flask import Flask, jsonify
from dotenv import load_dotenv
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException
import os

load_dotenv()

from config import Config  # noqa: E402  (load_dotenv needs to run first)
from extensions import db, login_manager, serialize_sqlite_writers  # noqa: E402  (load_dotenv needs to run first)
import app_logging  # noqa: E402
from modules.core import DomainError  # noqa: E402

log = app_logging.get_logger(__name__)


def register_error_handlers(app: Flask) -> None:
    """Every failure leaves the API as {"success": false, "error", "code"}."""

    @app.errorhandler(DomainError)
    def handle_domain_error(exc: DomainError):
        db.session.rollback()
        log.warning(exc.message, extra={"code": exc.code, "field": exc.field, "details": exc.details})
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(exc: IntegrityError):
        db.session.rollback()
        log.warning("integrity error", extra={"error": str(exc.orig)})
        return jsonify(success=False, error="Data conflicts with an existing record", code="duplicate_data"), 409

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        code = (exc.name or "error").lower().replace(" ", "_")
        return jsonify(success=False, error=exc.description, code=code), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        db.session.rollback()
        log.error("unhandled error", exc_info=exc)
        return jsonify(success=False, error="Internal server error", code="internal_error"), 500


def create_app(test_config=None) -> Flask:
    """Application factory for the fleet inventory API."""

    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app_logging.configure(app.config.get("LOG_LEVEL", "INFO"))

    # init extensions
    db.init_app(app)
    login_manager.init_app(app)

    # blueprints
    from modules.spare_parts import bp as spare_parts_bp, containers_bp
    from modules.inventory import bp as inventory_bp
    from modules.maintenance import bp as maintenance_bp
    from modules.reports import bp as reports_bp
    from modules.users import bp as users_bp

    app.register_blueprint(spare_parts_bp)
    app.register_blueprint(containers_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(maintenance_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(users_bp)

    from home_routes import home
    app.register_blueprint(home)  # "/" and /auth

    register_error_handlers(app)

    # DB
    with app.app_context():
        # models must be imported before create_all()
        import models  # noqa: F401
        from modules.spare_parts import models as spare_parts_models  # noqa: F401
        from modules.inventory import models as inventory_models  # noqa: F401
        from modules.maintenance import models as maintenance_models  # noqa: F401
        from modules.reports import models as reports_models  # noqa: F401

        serialize_sqlite_writers(db.engine)
        db.create_all()

    # uploads dir
    os.makedirs(app.config.get("UPLOAD_FOLDER", "uploads"), exist_ok=True)

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True)
