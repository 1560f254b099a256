"""
Password hashing with bcrypt.

Rows imported from the legacy MySQL database may still hold plain-text
passwords. ``verify_password`` accepts them so the login flow can upgrade
the row to a bcrypt hash (see ``needs_rehash``).
"""

import hmac

import bcrypt

BCRYPT_ROUNDS = 12


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt."""
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def is_bcrypt_hash(value: str | None) -> bool:
    return bool(value) and value.startswith(("$2b$", "$2a$", "$2y$"))


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify a plain-text password against a bcrypt hash or a legacy plain value."""
    if not password_hash or plain_password is None:
        return False

    if is_bcrypt_hash(password_hash):
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )

    # Legacy plain-text row
    return hmac.compare_digest(plain_password.encode("utf-8"), password_hash.encode("utf-8"))


def needs_rehash(password_hash: str | None) -> bool:
    """True when the stored value is not a bcrypt hash yet."""
    return not is_bcrypt_hash(password_hash)
