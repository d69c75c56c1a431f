from __future__ import annotations

import hmac
import secrets
from typing import Dict, Optional

import bcrypt


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash.startswith("$2"):
        # plaintext record carried over from an older database file
        return hmac.compare_digest(password.encode("utf-8"), password_hash.encode("utf-8"))
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class TokenRegistry:
    """In-memory bearer tokens for logged-in admins."""

    def __init__(self):
        self._tokens: Dict[str, str] = {}

    def issue(self, email: str) -> str:
        token = secrets.token_hex(24)
        self._tokens[token] = email
        return token

    def resolve(self, token: str) -> Optional[str]:
        return self._tokens.get(token)

    def revoke(self, email: str) -> None:
        self._tokens = {t: e for t, e in self._tokens.items() if e != email}
