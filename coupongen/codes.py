from __future__ import annotations

import secrets

CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def generate_id(length: int = 12) -> str:
    """Random upper-case alphanumeric identifier (campaign and coupon codes)."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_password(length: int = 18) -> str:
    return secrets.token_urlsafe(length)


__all__ = ["CODE_ALPHABET", "generate_id", "generate_password"]
