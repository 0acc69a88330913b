"""
PawLenx Backend — Application Package
======================================

What: The `pawlenx` package: account, pet and job-application backend.
Who:  Imported by uvicorn (`pawlenx.main:app`), pytest and the services below.

Architecture Note:
    The backend keeps the classic layered shape, with a remote document host
    standing where a database would normally sit:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Auth, pets, ingestion
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← Stored documents + API contracts
    ├─────────────────────────────────────┤
    │   Remote Document Store + Staging   │  ← GitHub contents API, local disk
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
