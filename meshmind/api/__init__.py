"""API Layer — FastAPI routes, dependencies and error handlers.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - Request-level errors return structured JSON before any stream opens

Design Decisions:
    - Thin routes delegate to services
"""
