"""
Workplan
Shared SQLAlchemy handle.

Usage:
    from workplan.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
