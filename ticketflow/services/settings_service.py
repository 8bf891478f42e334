"""Per-company settings lookup (feature flags and kanban configuration)."""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ticketflow.db.enums import SettingKey
from ticketflow.db.models import Setting

logger = logging.getLogger(__name__)

ENABLED_VALUES = {"enabled", "true", "1", "yes", "on"}


def _key(key: SettingKey | str) -> str:
    return key.value if isinstance(key, SettingKey) else key


def get_setting(db: Session, company_id: UUID, key: SettingKey | str) -> str | None:
    """Return the raw setting value, or None when unset."""
    return db.execute(
        select(Setting.value).where(
            Setting.company_id == company_id,
            Setting.key == _key(key),
        )
    ).scalar_one_or_none()


def is_enabled(db: Session, company_id: UUID, key: SettingKey | str, default: bool = False) -> bool:
    value = get_setting(db, company_id, key)
    if value is None:
        return default
    return value.strip().lower() in ENABLED_VALUES


def get_json_setting(db: Session, company_id: UUID, key: SettingKey | str) -> Any | None:
    """Parse a JSON setting. Malformed values are logged and treated as unset."""
    value = get_setting(db, company_id, key)
    if not value:
        return None
    try:
        return json.loads(value)
    except ValueError:
        logger.warning("setting_json_invalid company_id=%s key=%s", company_id, _key(key))
        return None


def set_setting(db: Session, company_id: UUID, key: SettingKey | str, value: str | None) -> Setting:
    """Create or update a setting (caller commits)."""
    setting = db.execute(
        select(Setting).where(Setting.company_id == company_id, Setting.key == _key(key))
    ).scalar_one_or_none()
    if setting is None:
        setting = Setting(company_id=company_id, key=_key(key), value=value)
        db.add(setting)
    else:
        setting.value = value
    db.flush()
    return setting
