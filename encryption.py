import os
from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

from errors import FileReadError

def get_fernet() -> Fernet:
    # Prefer app config, fallback to environment
    key = current_app.config.get("ENCRYPTION_KEY") or os.environ.get("ENCRYPTION_KEY")
    if not key:
        raise RuntimeError(
            "ENCRYPTION_KEY is not set. Generate one with Fernet.generate_key() and set it in your environment."
        )
    if isinstance(key, str):
        key = key.encode("utf-8")
    return Fernet(key)

def encrypt_bytes(data: bytes) -> bytes:
    return get_fernet().encrypt(data)

def decrypt_bytes(token: bytes) -> bytes:
    try:
        return get_fernet().decrypt(token)
    except InvalidToken:
        raise FileReadError("Stored file could not be decrypted.")
