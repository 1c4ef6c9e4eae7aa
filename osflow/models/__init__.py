"""
Content OS Workflow Platform
Model package — shared SQLAlchemy handle.

Usage:
    from osflow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
