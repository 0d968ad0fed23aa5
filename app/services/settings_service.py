from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.database import run_in_transaction
from app.core.errors import ValidationError
from app.models.setting import Setting

DEFAULT_SETTINGS: Dict[str, Any] = {
    "sound": True,
    "autorefresh": True,
    "restaurant": {},
}

SECRET_KEYS = {"staff_pin"}


class SettingsService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str, default: Any = None) -> Any:
        row = self.db.get(Setting, key)
        if row is None:
            return DEFAULT_SETTINGS.get(key, default)
        return row.value

    def get_all(self) -> Dict[str, Any]:
        values = dict(DEFAULT_SETTINGS)
        for row in self.db.query(Setting).all():
            values[row.key] = row.value
        for key in SECRET_KEYS:
            values.pop(key, None)
        return values

    def set_many(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Upsert de todas las claves en una transacción (last write wins)"""
        if not values:
            raise ValidationError("missing_settings")
        for key, value in values.items():
            self._validate(key, value)

        def apply():
            for key, value in values.items():
                row = self.db.get(Setting, key)
                if row is None:
                    self.db.add(Setting(key=key, value=value))
                else:
                    row.value = value
            return values

        run_in_transaction(self.db, apply, attempts=1, label="settings.set")
        return self.get_all()

    @staticmethod
    def _validate(key: str, value: Any) -> None:
        if not key or len(key) > 100:
            raise ValidationError("invalid_setting_key")
        if key in ("sound", "autorefresh") and not isinstance(value, bool):
            raise ValidationError(f"invalid_{key}")
        if key == "staff_pin" and not _is_pin(value):
            raise ValidationError("invalid_staff_pin")
        if key == "restaurant" and not isinstance(value, dict):
            raise ValidationError("invalid_restaurant")


def _is_pin(value: Optional[Any]) -> bool:
    return isinstance(value, str) and value.isdigit() and 4 <= len(value) <= 8
