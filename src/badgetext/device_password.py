"""
Boot-time device password.

The password is generated once per process and shown only on the local
display, together with a QR code URL pointing a phone at the update page.
It is never advertised, never served from the characteristic, and never
persisted.
"""

import secrets
import string
from urllib.parse import urlencode

PASSWORD_LENGTH = 4
PASSWORD_ALPHABET = string.ascii_uppercase + string.digits


def generate_password(length=PASSWORD_LENGTH, alphabet=PASSWORD_ALPHABET) -> str:
    if length <= 0:
        raise ValueError(f"password length must be positive, got {length}")
    return "".join(secrets.choice(alphabet) for _ in range(length))


def qr_url(base_url: str, password: str) -> str:
    """
    Build the URL encoded in the on-screen QR code.

    Args:
        base_url: Update page URL, with or without an existing query string
        password: The device password

    Returns:
        base_url with password appended as a query parameter
    """
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'password': password})}"
