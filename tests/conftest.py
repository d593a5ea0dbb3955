"""Root conftest — shared test configuration."""

import os

# Settings require an account identity; tests never touch a real database file
os.environ.setdefault("LOCAL_ACCOUNT_ID", "777000")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///:memory:",
)
