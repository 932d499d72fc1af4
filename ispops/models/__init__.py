"""
ISP Operations Platform
SQLAlchemy extension instance shared by every model module.

Usage:
    from ispops.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
