"""
E-Permitted Backend — Application Package Initializer
=====================================================

What: Permit-application intake and tracking service for local councils.
Who:  Imported by uvicorn (`epermitted.main:app`), Alembic, pytest and the
      seed script.

Architecture Note:
    The backend is layered:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, auth dependencies
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← intake, references, auth, AI
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Database handle, async sessions
    └─────────────────────────────────────┘

    Routes never touch SQL directly; services never build HTTP responses.
"""

__version__ = "1.0.0"
