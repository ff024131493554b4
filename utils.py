import base64
import secrets
from typing import Optional

from flask import current_app, request, session

from errors import FileReadError
from files import read_upload

_CSRF_KEY = "_csrf_token"

def generate_csrf_token() -> str:
    # Reuse existing token for the session to avoid accidental mismatches
    token = session.get(_CSRF_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[_CSRF_KEY] = token
    return token

def validate_csrf_token(token: Optional[str]) -> bool:
    return bool(token) and session.get(_CSRF_KEY) == token

def request_csrf_token() -> Optional[str]:
    return request.headers.get("X-CSRF-Token") or request.form.get("csrf_token")

def request_data() -> dict:
    """Form fields or a JSON body, whichever the client sent."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()

def to_data_url(data: bytes, mimetype: str) -> str:
    return f"data:{mimetype};base64,{base64.b64encode(data).decode('ascii')}"

def read_logo_upload(file) -> str:
    logo = read_upload(file, current_app.config["LOGO_EXTENSIONS"])
    if not logo.mimetype.startswith("image/"):
        raise FileReadError("The logo must be an image.")
    return to_data_url(logo.data, logo.mimetype)
