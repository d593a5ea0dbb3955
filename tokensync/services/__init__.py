"""Services Layer — the device token manager and its persistence gate.

Invariants:
    - Services orchestrate core logic against the boundary protocols
    - No service awaits while a record is half-updated
"""
