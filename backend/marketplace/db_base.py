"""
Declarative base shared by every marketplace model.

Importing marketplace.models registers all tables on Base.metadata.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
