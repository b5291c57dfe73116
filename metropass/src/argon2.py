from argon2 import PasswordHasher
from argon2.exceptions import VerificationError, InvalidHashError

passwordHasher = PasswordHasher(encoding="utf-8")


def makePassword(password: str) -> str:
    """Hash a plain-text user password with Argon2 before it is stored."""
    return passwordHasher.hash(password)


def checkPassword(password: str, hashed_password: str) -> bool:
    """
    Verify a login attempt against the stored Argon2 hash.

    Args:
        password (str): The plain-text password sent by the user.
        hashed_password (str): The hash stored in `user.password`.

    Returns:
        bool: True if the password matches the hash, False otherwise.
            A malformed stored hash is treated as a mismatch.
    """
    try:
        return passwordHasher.verify(hashed_password, password)
    except (VerificationError, InvalidHashError):
        return False
