import logging
from flask import Flask, jsonify
from studio.config import DevelopmentConfig
from studio.extensions import db, migrate
from studio.errors import BookingError

def create_app(config_class=DevelopmentConfig):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(level=app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    from studio.services.lock_gateway import TTLockGateway
    app.extensions['lock_gateway'] = TTLockGateway.from_config(app.config)
    if app.extensions['lock_gateway'] is None:
        app.logger.info("Smart lock credentials not configured, running with fallback access codes only")

    # Register Blueprints
    from studio.api.routes.auth import auth_bp
    from studio.api.routes.rooms import rooms_bp
    from studio.api.routes.bookings import bookings_bp
    from studio.api.routes.admin import admin_bp
    from studio.api.routes.smart_lock import smart_lock_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(rooms_bp, url_prefix='/api/rooms')
    app.register_blueprint(bookings_bp, url_prefix='/api/bookings')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')
    app.register_blueprint(smart_lock_bp, url_prefix='/api/smart-lock')

    from studio.commands import register_commands
    register_commands(app)

    @app.errorhandler(BookingError)
    def handle_booking_error(error):
        return jsonify({'error': error.message}), error.status_code

    @app.route('/health')
    def health():
        return {"status": "ok", "app": "StudioBooking"}

    return app
