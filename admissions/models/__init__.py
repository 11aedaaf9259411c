"""
Admissions Workflow Service
Shared SQLAlchemy handle.

Usage:
    from admissions.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
