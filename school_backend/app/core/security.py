"""
Password hashing helpers.

bcrypt hashes are stored as text in ``users.hashed_password``.
"""

import re
import bcrypt

# At least 8 characters with an upper case letter, a lower case letter and a digit
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}$")


def get_password_hash(password: str) -> str:
    """Hash a plain text password with a fresh salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plain text password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def is_strong_password(password: str) -> bool:
    return bool(PASSWORD_PATTERN.match(password))
