"""
ORM models package.

Importing this package registers every table on `Base.metadata`, which
Alembic autogenerate and `Database.create_all()` rely on.
"""

from epermitted.models.application import Application, ApplicationStatus, ReferenceCounter
from epermitted.models.council import Council, PermitType
from epermitted.models.user import User

__all__ = [
    "Application",
    "ApplicationStatus",
    "Council",
    "PermitType",
    "ReferenceCounter",
    "User",
]
