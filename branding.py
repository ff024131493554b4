from typing import Optional

from store import Store

BRANDING_KEY = "branding_settings"
BRANDING_FIELDS = ("departmentName", "logoUrl")


class Branding:
    """Department name and logo shown in the navigation chrome."""

    def __init__(self, store: Store, default_name: str = "DocuSafe"):
        self.store = store
        self.default_name = default_name

    def get(self) -> dict:
        settings = self.store.get(BRANDING_KEY)
        if not isinstance(settings, dict):
            settings = {"departmentName": self.default_name}
            self.store.set(BRANDING_KEY, settings)
        return {
            "departmentName": settings.get("departmentName") or self.default_name,
            "logoUrl": settings.get("logoUrl") or "",
        }

    def merge(self, partial: Optional[dict]) -> dict:
        updates = {k: v for k, v in (partial or {}).items() if k in BRANDING_FIELDS and v is not None}
        settings = {**self.get(), **updates}
        self.store.set(BRANDING_KEY, settings)
        return settings
