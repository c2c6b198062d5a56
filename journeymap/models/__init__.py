"""
Journey Map Workspace
SQLAlchemy instance shared by the database storage backend.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
