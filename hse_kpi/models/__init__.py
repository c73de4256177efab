"""
HSE KPI Tracker
SQLAlchemy extension instance shared by every model module.

Usage:
    from hse_kpi.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
