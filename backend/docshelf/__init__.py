"""
DocShelf Backend — Application Package Initializer
====================================================

What: Marks the `docshelf` directory as a Python package.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend is layered the same way top to bottom:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   PageService (Page Directory)      │  ← CRUD, DTO conversion, reorder
    ├─────────────────────────────────────┤
    │   Reindexer  │  Partition locks     │  ← pure ordering logic, serialization
    ├─────────────────────────────────────┤
    │   PageStore / PageRepository        │  ← storage collaborator
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
