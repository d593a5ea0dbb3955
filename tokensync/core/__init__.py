"""Core Layer — pure domain logic, no IO, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Randomness, storage and transport reach core only through repository_protocols

Design Decisions:
    - Functional core separated from imperative shell
"""
