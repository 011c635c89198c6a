"""
Process-wide settings record: migration markers, legacy blobs, last-run dates.
"""
from typing import Any

from sqlalchemy.orm import Session

from app.infrastructure.db.models import AppSetting


class SettingsStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str, default: Any = None) -> Any:
        row = self.db.get(AppSetting, key)
        if row is None:
            return default
        return row.value

    def set(self, key: str, value: Any) -> None:
        row = self.db.get(AppSetting, key)
        if row is None:
            self.db.add(AppSetting(key=key, value=value))
        else:
            row.value = value
        self.db.flush()

    def is_set(self, key: str) -> bool:
        return self.get(key) in (True, "true")

    def all(self) -> dict[str, Any]:
        return {row.key: row.value for row in self.db.query(AppSetting).all()}
