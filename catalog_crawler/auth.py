from __future__ import annotations

import os
from typing import Callable

AuthSupplier = Callable[[], str]


def static_credential(value: str) -> AuthSupplier:
    """Return a supplier that always yields value."""
    if not value:
        raise ValueError("credential must not be empty")
    return lambda: value


def env_credential(var: str) -> AuthSupplier:
    """Return a supplier that reads the credential from an environment variable.

    The variable is read on every call so a rotated key is picked up."""

    def supplier() -> str:
        value = os.environ.get(var, "").strip()
        if not value:
            raise ValueError(f"environment variable {var} is not set")
        return value

    return supplier
