"""
Traveler Lifecycle Service
Shared SQLAlchemy handle. Model modules import ``db`` from here.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
