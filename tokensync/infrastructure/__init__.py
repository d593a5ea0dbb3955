"""Infrastructure Layer — storage, transport, and cross-cutting concerns.

Invariants:
    - Infrastructure never imports from services/
    - All external calls wrapped with retry/timeout/error mapping

Design Decisions:
    - Resilient wrappers over raw clients: core sees only the boundary protocols
"""
