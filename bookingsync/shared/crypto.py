"""Encryption of OAuth tokens stored at rest"""

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from ..config import SECRET_KEY
from ..exceptions import ExternalUnavailable


def _cipher() -> Fernet:
    # Fernet needs a 32-byte urlsafe key; derive one from whatever SECRET_KEY holds
    digest = hashlib.sha256(SECRET_KEY.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_token(token: str) -> str:
    return _cipher().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    try:
        return _cipher().decrypt(encrypted.encode()).decode()
    except InvalidToken:
        raise ExternalUnavailable(
            "google_calendar", "stored credential cannot be decrypted", recoverable=False
        ) from None
