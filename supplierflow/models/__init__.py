"""
Supplier Onboarding Workflow
Shared SQLAlchemy handle.

Usage:
    from supplierflow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
