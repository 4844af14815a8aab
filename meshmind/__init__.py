"""MeshMind — multi-agent response multiplexing over a single text stream.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""

__version__ = "1.0.0"
