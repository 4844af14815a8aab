"""Core Layer — pure mesh protocol logic, no IO, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Marker encoding, segment decoding and history shaping are pure and deterministic

Design Decisions:
    - Functional core separated from imperative shell
"""
