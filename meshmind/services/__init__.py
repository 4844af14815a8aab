"""Services Layer — mesh orchestration and the collaborators it is wired to.

Invariants:
    - Provider lookup uses an explicit registry (no auto-discovery)
    - Agent-level failures are rendered into the stream, never raised to the route
"""
