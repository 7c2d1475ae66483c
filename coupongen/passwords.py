"""Password hashing for principals.

New hashes use Werkzeug's scheme. Stores migrated from earlier releases may
still hold bcrypt hashes or plain base64 encodings; both verify, and
``needs_rehash`` tells the login path to replace them.
"""
from __future__ import annotations

import base64

import bcrypt
from werkzeug.security import check_password_hash, generate_password_hash

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def hash_password(plain: str) -> str:
    return generate_password_hash(plain)


def _is_bcrypt(hashed: str) -> bool:
    return hashed.startswith(_BCRYPT_PREFIXES)


def _is_werkzeug(hashed: str) -> bool:
    return hashed.startswith(("pbkdf2:", "scrypt:"))


def verify_password(plain: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    if _is_werkzeug(hashed):
        return check_password_hash(hashed, plain)
    if _is_bcrypt(hashed):
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False
    try:
        return base64.b64encode(plain.encode("utf-8")).decode("ascii") == hashed
    except UnicodeError:
        return False


def needs_rehash(hashed: str | None) -> bool:
    return not hashed or not _is_werkzeug(hashed)


__all__ = ["hash_password", "verify_password", "needs_rehash"]
