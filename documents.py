"""Document and category registries."""
import logging
import uuid
from datetime import date
from typing import Optional

from errors import NotFoundError, ValidationError
from store import Store

logger = logging.getLogger(__name__)

DOCUMENTS_KEY = "documents"
CATEGORIES_KEY = "categories"

REQUIRED_FIELDS = ("title", "category", "description", "keywords")
SEARCH_FIELDS = ("title", "description", "keywords")

INITIAL_CATEGORIES = ["Letters", "Notifications", "Notesheets"]

INITIAL_DOCUMENTS = [
    {
        "id": "DOC-001",
        "title": "Quarterly Financial Report Q2 2023",
        "category": "Letters",
        "date": "2023-06-30",
        "description": "Detailed financial report for the second quarter of 2023.",
        "keywords": "finance, report, q2",
    },
    {
        "id": "DOC-002",
        "title": "New Office Safety Protocols",
        "category": "Notifications",
        "date": "2023-07-15",
        "description": "Updated safety protocols for all office employees.",
        "keywords": "safety, office, protocols",
    },
    {
        "id": "DOC-003",
        "title": "Project Alpha - Phase 1 Approval",
        "category": "Notesheets",
        "date": "2023-07-20",
        "description": "Approval notesheet for the first phase of Project Alpha.",
        "keywords": "project alpha, approval, phase 1",
    },
    {
        "id": "DOC-004",
        "title": "Employee Onboarding Feedback Form",
        "category": "Letters",
        "date": "2023-08-01",
        "description": "Form for new employees to provide feedback on the onboarding process.",
        "keywords": "onboarding, feedback, employee",
    },
    {
        "id": "DOC-005",
        "title": "Company Holiday Schedule 2024",
        "category": "Notifications",
        "date": "2023-08-05",
        "description": "The official company holiday schedule for the year 2024.",
        "keywords": "holiday, schedule, 2024",
    },
]


def _contains(haystack: Optional[str], needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


def matches(doc: dict, query: str = "", filters: Optional[dict] = None) -> bool:
    """True when ``doc`` satisfies the free-text query and every filter.

    ``query`` is a case-insensitive substring over title, description and
    keywords. ``title`` and ``keywords`` filters are substrings of their own
    field; ``category`` and ``date`` must be equal. Blank criteria match
    everything.
    """
    filters = filters or {}
    if query and not any(_contains(doc.get(field), query) for field in SEARCH_FIELDS):
        return False
    for field in ("title", "keywords"):
        value = filters.get(field)
        if value and not _contains(doc.get(field), value):
            return False
    for field in ("category", "date"):
        value = filters.get(field)
        if value and doc.get(field) != value:
            return False
    return True


class DocumentRegistry:
    def __init__(self, store: Store):
        self.store = store

    def list(self):
        docs = self.store.get(DOCUMENTS_KEY)
        if docs is None:
            docs = [dict(d) for d in INITIAL_DOCUMENTS]
            self.store.set(DOCUMENTS_KEY, docs)
        if not isinstance(docs, list):
            logger.error("Document registry has unexpected shape; treating as empty")
            return []
        return docs

    def get(self, doc_id: str) -> dict:
        for doc in self.list():
            if doc.get("id") == doc_id:
                return doc
        raise NotFoundError("Document not found.")

    def _new_id(self, existing: set) -> str:
        doc_id = f"DOC-{uuid.uuid4().hex[:8].upper()}"
        while doc_id in existing:
            doc_id = f"DOC-{uuid.uuid4().hex[:8].upper()}"
        return doc_id

    def add(self, fields: dict) -> dict:
        values = {name: (fields.get(name) or "").strip() for name in REQUIRED_FIELDS}
        if not all(values.values()):
            raise ValidationError("Please fill out all fields to upload a document.")
        docs = self.list()
        doc = {
            "id": self._new_id({d.get("id") for d in docs}),
            **values,
            "date": fields.get("date") or date.today().isoformat(),
        }
        for optional in ("fileName", "fileUrl", "mimeType"):
            if fields.get(optional):
                doc[optional] = fields[optional]
        self.store.set(DOCUMENTS_KEY, [doc] + docs)
        logger.info("Document %s added", doc["id"])
        return doc

    def remove(self, doc_id: str) -> dict:
        docs = self.list()
        remaining = [d for d in docs if d.get("id") != doc_id]
        if len(remaining) == len(docs):
            raise NotFoundError("Document not found.")
        self.store.set(DOCUMENTS_KEY, remaining)
        return next(d for d in docs if d.get("id") == doc_id)

    def remove_many(self, doc_ids):
        """Remove every listed id that exists; return the ids removed."""
        if not isinstance(doc_ids, (list, tuple, set, frozenset)):
            raise ValidationError("Document ids must be a list.")
        wanted = set(doc_ids)
        if not wanted:
            raise ValidationError("No documents selected.")
        docs = self.list()
        removed = [d["id"] for d in docs if d.get("id") in wanted]
        if not removed:
            raise NotFoundError("None of the selected documents exist.")
        self.store.set(DOCUMENTS_KEY, [d for d in docs if d.get("id") not in wanted])
        return removed

    def search(self, query: str = "", filters: Optional[dict] = None):
        return [doc for doc in self.list() if matches(doc, query, filters)]

    def in_tab(self, docs, tab: Optional[str] = None):
        if not tab or tab == "all":
            return docs
        return [d for d in docs if (d.get("category") or "").lower() == tab.lower()]

    def category_counts(self) -> dict:
        counts = {}
        for doc in self.list():
            counts[doc.get("category")] = counts.get(doc.get("category"), 0) + 1
        return counts


class CategoryRegistry:
    def __init__(self, store: Store):
        self.store = store

    def list(self):
        categories = self.store.get(CATEGORIES_KEY)
        if categories is None:
            categories = list(INITIAL_CATEGORIES)
            self.store.set(CATEGORIES_KEY, categories)
        if not isinstance(categories, list):
            logger.error("Category registry has unexpected shape; treating as empty")
            return []
        return categories

    def add(self, name: str):
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name is required.")
        categories = self.list()
        if name in categories:
            raise ValidationError("This category already exists.")
        categories = categories + [name]
        self.store.set(CATEGORIES_KEY, categories)
        return categories

    def remove(self, name: str):
        categories = self.list()
        if name not in categories:
            raise NotFoundError("Category not found.")
        categories = [c for c in categories if c != name]
        self.store.set(CATEGORIES_KEY, categories)
        return categories
