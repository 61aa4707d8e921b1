"""Random credential generation."""

import secrets
import string

PASSWORD_ALPHABET = string.ascii_letters
PASSWORD_LENGTH = 32


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    """Generate a random password of upper and lower case ASCII letters."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))
