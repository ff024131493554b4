"""Whole-workspace backup and restore.

A backup is one JSON object with ``users``, ``documents``, ``branding``,
``categories`` and ``logs``. Uploaded file contents are not included.
"""
import logging

from activity import LOGS_KEY
from auth import ACTIVE, ADMIN, INACTIVE, USERS_KEY, VALID_ROLES
from branding import BRANDING_KEY
from documents import CATEGORIES_KEY, DOCUMENTS_KEY, REQUIRED_FIELDS
from errors import RestoreError

logger = logging.getLogger(__name__)

REQUIRED_SECTIONS = {
    "users": list,
    "documents": list,
    "branding": dict,
    "categories": list,
}

USER_FIELDS = ("id", "email", "password")


def create_backup(workspace) -> dict:
    return {
        "users": workspace.users.records(),
        "documents": workspace.documents.list(),
        "branding": workspace.branding.get(),
        "categories": workspace.categories.list(),
        "logs": workspace.activity.entries(),
    }


def _invalid(reason: str) -> RestoreError:
    return RestoreError(f"Invalid backup file format: {reason}.")


def _check_users(users: list) -> None:
    for user in users:
        if not isinstance(user, dict):
            raise _invalid("every user must be an object")
        if not all(isinstance(user.get(field), str) and user.get(field) for field in USER_FIELDS):
            raise _invalid("every user needs an id, email and password")
        if user.get("role") not in VALID_ROLES:
            raise _invalid(f"unknown role {user.get('role')!r}")
        if user.get("status", ACTIVE) not in (ACTIVE, INACTIVE):
            raise _invalid(f"unknown status {user.get('status')!r}")
    # a restore must never lock every administrator out
    if not any(u["role"] == ADMIN and u.get("status", ACTIVE) == ACTIVE for u in users):
        raise _invalid("no active admin user")


def _check_documents(documents: list) -> None:
    seen = set()
    for doc in documents:
        if not isinstance(doc, dict) or not isinstance(doc.get("id"), str) or not doc["id"]:
            raise _invalid("every document needs an id")
        if not all(isinstance(doc.get(field), str) for field in REQUIRED_FIELDS):
            raise _invalid(f"document {doc['id']} is missing required fields")
        if doc["id"] in seen:
            raise _invalid(f"duplicate document id {doc['id']}")
        seen.add(doc["id"])


def validate_backup(payload) -> dict:
    if not isinstance(payload, dict):
        raise RestoreError("Invalid backup file format.")
    for section, kind in REQUIRED_SECTIONS.items():
        if not isinstance(payload.get(section), kind):
            raise _invalid(f"missing or malformed '{section}'")
    _check_users(payload["users"])
    _check_documents(payload["documents"])
    if not all(isinstance(name, str) for name in payload["categories"]):
        raise _invalid("categories must be names")
    logs = payload.get("logs")
    if logs is None:
        logs = []
    elif not isinstance(logs, list):
        raise _invalid("malformed 'logs'")
    return {**{section: payload[section] for section in REQUIRED_SECTIONS}, "logs": logs}


def restore_backup(workspace, payload) -> dict:
    """Replace users, documents, branding, categories and logs with ``payload``.

    Validation happens before anything is written, so an invalid backup
    leaves the store as it was.
    """
    try:
        data = validate_backup(payload)
    except RestoreError as e:
        logger.warning("Rejected invalid backup: %s", e)
        raise
    store = workspace.store
    store.set(USERS_KEY, data["users"])
    store.set(DOCUMENTS_KEY, data["documents"])
    store.set(BRANDING_KEY, data["branding"])
    store.set(CATEGORIES_KEY, data["categories"])
    store.set(LOGS_KEY, data["logs"])
    logger.info("Restored backup with %d users and %d documents", len(data["users"]), len(data["documents"]))
    return data
