import logging

from flask import Flask
from app.config import DevelopmentConfig
from app.extensions import db, migrate, mail, serialise_sqlite_writers
from app.celery_utils import celery_init_app
from app.services.clock import BusinessClock

def create_app(config_class=DevelopmentConfig):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    logging.getLogger('app').setLevel(app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Fail at startup on a bad timezone rather than on the first booking
    BusinessClock.from_config(app.config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)
    celery_init_app(app)

    if app.config['SQLITE_BEGIN_IMMEDIATE']:
        with app.app_context():
            serialise_sqlite_writers(db.engine)

    # Models must be imported for create_all / migrations to see them
    from app import models  # noqa: F401
    from app import tasks  # noqa: F401

    # Register Blueprints
    from app.api.routes.auth import auth_bp
    from app.api.routes.bookings import bookings_bp
    from app.api.routes.notifications import notifications_bp
    from app.api.routes.admin import admin_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(bookings_bp, url_prefix='/api/bookings')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    @app.route('/health')
    def health():
        return {"status": "ok", "app": "BoardroomBooking"}

    return app
