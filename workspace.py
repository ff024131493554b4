"""Wires the Store into the registries every view works with."""
import logging
from typing import Optional

from flask import current_app

from activity import ActivityLog, DEFAULT_LIMIT
from auth import SessionManager, UserRegistry
from branding import Branding
from documents import CategoryRegistry, DocumentRegistry
from files import FileStore, MemoryFileStore, SQLFileStore, StoredFile
from store import MemoryStore, SQLStore, Store

logger = logging.getLogger(__name__)


class Workspace:
    def __init__(self, store: Store, files: Optional[FileStore] = None,
                 log_limit: int = DEFAULT_LIMIT, department_name: str = "DocuSafe"):
        self.store = store
        self.channel = store.channel
        self.files = files or MemoryFileStore()
        self.documents = DocumentRegistry(store)
        self.categories = CategoryRegistry(store)
        self.users = UserRegistry(store)
        self.activity = ActivityLog(store, limit=log_limit)
        self.session = SessionManager(store, self.users, self.activity)
        self.branding = Branding(store, default_name=department_name)

    @classmethod
    def from_config(cls, config) -> "Workspace":
        if config.get("STORE_BACKEND", "sql") == "memory":
            store, files = MemoryStore(), MemoryFileStore()
        else:
            store, files = SQLStore(), SQLFileStore()
        return cls(
            store,
            files,
            log_limit=config.get("ACTIVITY_LOG_LIMIT", DEFAULT_LIMIT),
            department_name=config.get("DEFAULT_DEPARTMENT_NAME", "DocuSafe"),
        )

    def upload_document(self, fields: dict, upload: Optional[StoredFile] = None) -> dict:
        if upload is not None:
            fields = {**fields, "fileName": upload.filename, "mimeType": upload.mimetype}
        doc = self.documents.add(fields)
        if upload is not None:
            try:
                self.files.save(doc["id"], upload.data, upload.filename, upload.mimetype)
            except Exception:
                logger.exception("Could not store file for %s; discarding the document", doc["id"])
                self.documents.remove(doc["id"])
                raise
        self.activity.append("Document Uploaded", {"documentId": doc["id"], "documentTitle": doc["title"]})
        return doc

    def delete_document(self, doc_id: str) -> dict:
        doc = self.documents.remove(doc_id)
        self.files.delete(doc_id)
        self.activity.append("Document Deleted", {"documentId": doc_id})
        return doc

    def delete_documents(self, doc_ids) -> list:
        removed = self.documents.remove_many(doc_ids)
        for doc_id in removed:
            self.files.delete(doc_id)
        self.activity.append("Bulk Documents Deleted", {"documentIds": removed})
        return removed


def get_workspace() -> Workspace:
    return current_app.extensions["docusafe"]
