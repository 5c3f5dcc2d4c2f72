from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError

passwordHasher = PasswordHasher(encoding="utf-8")


def makePassword(password: str) -> str:
    """Hash a plain-text password using Argon2."""
    return passwordHasher.hash(password)


def checkPassword(password: str, password_hash: str) -> bool:
    """
    Verify a plain-text password against a stored Argon2 hash.

    Args:
        password (str): The plain-text password to check.
        password_hash (str): The stored hash, as saved in `user.password`.

    Returns:
        bool: True if the password matches, False on mismatch or on a
        corrupted stored hash.
    """
    try:
        return passwordHasher.verify(password_hash, password)
    except (VerifyMismatchError, InvalidHashError):
        return False
