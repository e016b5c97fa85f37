"""
SQLAlchemy extension instance shared by every model module.

Usage:
    from approval_engine.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
