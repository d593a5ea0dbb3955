"""Secure Randomness — the RandomSource used for encryption keys."""

import secrets


def secure_random_bytes(size: int) -> bytes:
    return secrets.token_bytes(size)
