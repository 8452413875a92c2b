"""
DealDesk — SQLAlchemy extension instance.

Every model module imports ``db`` from here so the factory can bind it
once with ``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
