"""tokensync — push device token registration kept in sync with the push server.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
