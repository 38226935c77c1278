from flask import current_app
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()


def get_lock_gateway():
    """Return the configured Lock Gateway, or None when running without a smart lock."""
    return current_app.extensions.get('lock_gateway')
