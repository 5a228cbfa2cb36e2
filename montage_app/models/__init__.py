"""
Montage Pipeline Engine
Shared SQLAlchemy handle.

Usage:
    from montage_app.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
