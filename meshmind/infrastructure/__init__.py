"""Infrastructure Layer — external service clients and cross-cutting concerns.

Invariants:
    - All external calls wrapped with retry/timeout/error mapping
    - Failures surface as MeshError subclasses from core/errors.py

Design Decisions:
    - Resilient wrappers over raw clients
"""
