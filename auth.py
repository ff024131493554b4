"""User registry, session and role capabilities."""
import logging
import re
import uuid
from functools import wraps
from typing import Optional

from flask import abort
from flask_login import UserMixin, current_user
from werkzeug.security import generate_password_hash, check_password_hash

from errors import NotFoundError, PermissionDenied, ValidationError
from store import Store

logger = logging.getLogger(__name__)

USERS_KEY = "mock_users_list"
SESSION_KEY = "mock_user_session"

ADMIN = "admin"
DATA_ENTRY_OPERATOR = "data-entry-operator"
VIEWER = "viewer"
VALID_ROLES = [ADMIN, DATA_ENTRY_OPERATOR, VIEWER]

ACTIVE = "active"
INACTIVE = "inactive"

PUBLIC_FIELDS = ("id", "name", "email", "role", "status")

# ==================== Capabilities ====================

VIEW_DOCUMENTS = "documents.view"
DOWNLOAD_DOCUMENTS = "documents.download"
FORWARD_DOCUMENTS = "documents.forward"
UPLOAD_DOCUMENTS = "documents.upload"
DELETE_DOCUMENTS = "documents.delete"
MANAGE_CATEGORIES = "categories.manage"
MANAGE_USERS = "users.manage"
VIEW_LOGS = "logs.view"
MANAGE_BRANDING = "branding.manage"
MANAGE_BACKUPS = "backup.manage"

_VIEWER_CAPABILITIES = {VIEW_DOCUMENTS, DOWNLOAD_DOCUMENTS, FORWARD_DOCUMENTS}

ROLE_CAPABILITIES = {
    VIEWER: frozenset(_VIEWER_CAPABILITIES),
    DATA_ENTRY_OPERATOR: frozenset(_VIEWER_CAPABILITIES | {UPLOAD_DOCUMENTS}),
    ADMIN: frozenset(_VIEWER_CAPABILITIES | {
        UPLOAD_DOCUMENTS, DELETE_DOCUMENTS, MANAGE_CATEGORIES, MANAGE_USERS,
        VIEW_LOGS, MANAGE_BRANDING, MANAGE_BACKUPS,
    }),
}


def capabilities_for(role: Optional[str]) -> frozenset:
    return ROLE_CAPABILITIES.get(role, frozenset())


def can(user: Optional[dict], capability: str) -> bool:
    if not user:
        return False
    return capability in capabilities_for(user.get("role"))


def is_admin(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") == ADMIN


def is_data_entry_operator(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") == DATA_ENTRY_OPERATOR


def public_profile(user: dict) -> dict:
    return {field: user.get(field) for field in PUBLIC_FIELDS}


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", email) is not None


class SessionUser(UserMixin):
    """flask_login wrapper around the public profile held in the session."""

    def __init__(self, profile: dict):
        self.profile = profile
        self.id = profile["id"]

    @property
    def role(self):
        return self.profile.get("role")

    def can(self, capability: str) -> bool:
        return can(self.profile, capability)


def capability_required(capability):
    """Route guard: 401 when signed out, 403 when the role lacks ``capability``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if not current_user.can(capability):
                abort(403)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def _seed_users():
    return [
        {
            "id": "1",
            "name": "Admin User",
            "email": "admin@example.com",
            "password": generate_password_hash("password123"),
            "role": ADMIN,
            "status": ACTIVE,
        },
        {
            "id": "2",
            "name": "John Doe",
            "email": "johndoe@example.com",
            "password": generate_password_hash("password123"),
            "role": VIEWER,
            "status": ACTIVE,
        },
    ]


class UserRegistry:
    def __init__(self, store: Store):
        self.store = store

    def _all(self) -> list[dict]:
        users = self.store.get(USERS_KEY)
        if users is None:
            users = _seed_users()
            self.store.set(USERS_KEY, users)
        if not isinstance(users, list):
            logger.error("User registry has unexpected shape; treating as empty")
            return []
        return users

    def records(self) -> list[dict]:
        """Full user records, password hashes included, for backups."""
        return self._all()

    def _save(self, users: list[dict]) -> None:
        self.store.set(USERS_KEY, users)

    def list(self) -> list[dict]:
        return [public_profile(u) for u in self._all()]

    def get(self, user_id: str) -> Optional[dict]:
        for user in self._all():
            if user["id"] == user_id:
                return public_profile(user)
        return None

    def find_by_email(self, email: str) -> Optional[dict]:
        email = normalize_email(email)
        for user in self._all():
            if normalize_email(user["email"]) == email:
                return user
        return None

    def verify(self, email: str, password: str) -> Optional[dict]:
        user = self.find_by_email(email)
        if user and password and check_password_hash(user["password"], password):
            return user
        return None

    def add(self, name: str, email: str, password: str, role: str = VIEWER) -> dict:
        name = (name or "").strip()
        email = normalize_email(email)
        if not name or not email or not password or not role:
            raise ValidationError("Please fill out all fields to add a new user.")
        if not is_valid_email(email):
            raise ValidationError("Please enter a valid email address.")
        if role not in VALID_ROLES:
            raise ValidationError(f"Unknown role: {role}.")
        users = self._all()
        if any(normalize_email(u["email"]) == email for u in users):
            raise ValidationError("User with this email already exists.")
        existing_ids = {u["id"] for u in users}
        user_id = uuid.uuid4().hex
        while user_id in existing_ids:
            user_id = uuid.uuid4().hex
        user = {
            "id": user_id,
            "name": name,
            "email": email,
            "password": generate_password_hash(password),
            "role": role,
            "status": ACTIVE,
        }
        self._save(users + [user])
        logger.info("User %s added with role %s", email, role)
        return public_profile(user)

    def remove(self, user_id: str, acting_user_id: Optional[str] = None) -> dict:
        if user_id == acting_user_id:
            raise PermissionDenied("You cannot remove your own account.")
        users = self._all()
        remaining = [u for u in users if u["id"] != user_id]
        if len(remaining) == len(users):
            raise NotFoundError("User not found.")
        removed = next(u for u in users if u["id"] == user_id)
        self._save(remaining)
        logger.info("User %s removed", removed["email"])
        return public_profile(removed)

    def change_password(self, user_id: str, new_password: str) -> dict:
        if not new_password:
            raise ValidationError("Password cannot be empty.")
        users = self._all()
        for user in users:
            if user["id"] == user_id:
                user["password"] = generate_password_hash(new_password)
                self._save(users)
                return public_profile(user)
        raise NotFoundError("User not found.")

    def toggle_status(self, user_id: str, acting_user_id: Optional[str] = None) -> dict:
        if user_id == acting_user_id:
            raise PermissionDenied("You cannot change the status of your own account.")
        users = self._all()
        for user in users:
            if user["id"] == user_id:
                user["status"] = INACTIVE if user.get("status", ACTIVE) == ACTIVE else ACTIVE
                self._save(users)
                logger.info("User %s is now %s", user["email"], user["status"])
                return public_profile(user)
        raise NotFoundError("User not found.")


class SessionManager:
    """Holds the signed-in user's public profile under ``SESSION_KEY``."""

    def __init__(self, store: Store, users: UserRegistry, activity=None):
        self.store = store
        self.users = users
        self.activity = activity

    def current_user(self) -> Optional[dict]:
        session = self.store.get(SESSION_KEY)
        return session if isinstance(session, dict) and session.get("id") else None

    def login(self, email: str, password: str) -> Optional[dict]:
        user = self.users.verify(email, password)
        if user is None or user.get("status", ACTIVE) != ACTIVE:
            return None
        profile = public_profile(user)
        self.store.set(SESSION_KEY, profile)
        if self.activity is not None:
            self.activity.append("User Logged In")
        return profile

    def logout(self) -> None:
        if self.current_user() is None:
            return
        if self.activity is not None:
            self.activity.append("User Logged Out")
        self.store.remove(SESSION_KEY)

    def change_own_password(self, current_password: str, new_password: str) -> dict:
        user = self.current_user()
        if user is None:
            raise PermissionDenied("You must be logged in to change your password.")
        if not current_password or not new_password:
            raise ValidationError("Current and new password are required.")
        if self.users.verify(user["email"], current_password) is None:
            raise ValidationError("Current password is incorrect.")
        return self.users.change_password(user["id"], new_password)

    def is_admin(self) -> bool:
        return is_admin(self.current_user())

    def is_data_entry_operator(self) -> bool:
        return is_data_entry_operator(self.current_user())
