"""Root conftest — shared test configuration."""

import os

# Ensure tests never talk to a real provider or database
os.environ.setdefault("PAYMENT_KEY_ID", "rzp_test_key")
os.environ.setdefault("PAYMENT_KEY_SECRET", "test-secret")
os.environ.setdefault("PAYMENT_PROVIDER_BASE_URL", "https://provider.invalid/v1")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
