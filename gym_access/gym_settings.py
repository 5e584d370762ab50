from __future__ import annotations

"""
Gym settings read through a key/value configuration interface.

Every component that needs a setting receives a ``ConfigProvider`` explicitly. Missing or
unparsable values always resolve to the defaults below; configuration is never fatal.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import ConfigEntry
from .utils import utcnow


logger = logging.getLogger("config")

DEFAULT_SETTINGS: Dict[str, str] = {
    "gym_name": "My Gym",
    "timezone": "America/Bogota",
    "morosity_tolerance_days": "5",
    "qr_duration_seconds": "30",
    "qr_recent_entry_minutes": "10",
    "qr_token_retention_hours": "24",
    "partial_payments_enabled": "false",
    "partial_payments_deadline_days": "15",
    "partial_payments_grace_days": "5",
    "partial_payments_allow_access": "true",
    "require_payment_to_activate": "false",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class PartialPaymentsConfig:
    enabled: bool
    deadline_days: int
    grace_period_days: int
    allow_access_with_partial: bool
    require_payment_to_activate: bool


class ConfigProvider:
    """Read-only view over gym settings with defaults and typed accessors."""

    def _lookup(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def get(self, key: str) -> Optional[str]:
        value = self._lookup(key)
        if value is None or value == "":
            return DEFAULT_SETTINGS.get(key)
        return value

    def get_int(self, key: str) -> int:
        raw = self.get(key)
        try:
            return int(str(raw).strip())
        except (TypeError, ValueError):
            fallback = int(DEFAULT_SETTINGS[key])
            logger.warning("config key=%s value=%r is not an integer; using default %s", key, raw, fallback)
            return fallback

    def get_bool(self, key: str) -> bool:
        raw = self.get(key)
        return str(raw or "").strip().lower() in _TRUE_VALUES

    def all(self) -> Dict[str, str]:
        return {key: self.get(key) or "" for key in DEFAULT_SETTINGS}

    # Convenience accessors used by the access core
    @property
    def qr_duration_seconds(self) -> int:
        return self.get_int("qr_duration_seconds")

    @property
    def qr_recent_entry_minutes(self) -> int:
        return self.get_int("qr_recent_entry_minutes")

    @property
    def qr_token_retention_hours(self) -> int:
        return self.get_int("qr_token_retention_hours")

    @property
    def morosity_tolerance_days(self) -> int:
        return self.get_int("morosity_tolerance_days")

    def partial_payments(self) -> PartialPaymentsConfig:
        return PartialPaymentsConfig(
            enabled=self.get_bool("partial_payments_enabled"),
            deadline_days=self.get_int("partial_payments_deadline_days"),
            grace_period_days=self.get_int("partial_payments_grace_days"),
            allow_access_with_partial=self.get_bool("partial_payments_allow_access"),
            require_payment_to_activate=self.get_bool("require_payment_to_activate"),
        )


class DictConfigProvider(ConfigProvider):
    def __init__(self, values: Optional[Mapping[str, object]] = None) -> None:
        self._values = {k: str(v).lower() if isinstance(v, bool) else str(v) for k, v in (values or {}).items()}

    def _lookup(self, key: str) -> Optional[str]:
        return self._values.get(key)


class DbConfigProvider(ConfigProvider):
    """Settings stored in the ``config`` table. Rows are read on each lookup, never cached."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _lookup(self, key: str) -> Optional[str]:
        entry = self.db.get(ConfigEntry, key)
        return entry.value if entry else None

    def all(self) -> Dict[str, str]:
        stored = {row.key: row.value for row in self.db.execute(select(ConfigEntry)).scalars().all()}
        merged = dict(DEFAULT_SETTINGS)
        merged.update({k: v for k, v in stored.items() if v not in (None, "")})
        return merged

    def set(self, key: str, value: str) -> None:
        entry = self.db.get(ConfigEntry, key)
        if entry is None:
            entry = ConfigEntry(key=key, value=value)
        else:
            entry.value = value
            entry.updated_at = utcnow()
        self.db.add(entry)


def seed_default_settings(db: Session) -> int:
    """Insert defaults for keys that are not stored yet. Returns the number inserted."""
    inserted = 0
    for key, value in DEFAULT_SETTINGS.items():
        if db.get(ConfigEntry, key) is None:
            db.add(ConfigEntry(key=key, value=value))
            inserted += 1
    return inserted
