"""
Research Administration Portal
Shared SQLAlchemy handle.

Every model module imports ``db`` from here; ``create_app`` binds it with
``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
