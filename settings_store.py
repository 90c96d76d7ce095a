"""
settings_store.py — runtime-editable app settings.

Priority order:
  1. Persisted settings (edited from the CLI / app) — takes precedence
  2. Environment variable / .env file                — fallback / bootstrap
  3. Built-in default

Settings are stored as one JSON object under config.SETTINGS_KEY, rewritten
in full on every change.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import config
from providers.base import BusinessType, ScanMode
from storage import StorageBackend

logger = logging.getLogger(__name__)


# ── Setting definitions ────────────────────────────────────────────────────────
# Each entry: key → env var, default, type, label
# type: "str" | "bool" | "list"

SETTINGS_META: dict[str, dict] = {
    "companyName": {
        "env": "COMPANY_NAME",
        "default": "STOCK AUTO MAROC",
        "type": "str",
        "label": "🏢 Société / Parc",
    },
    "allowedLocations": {
        "env": "ALLOWED_LOCATIONS",
        "default": "RECEPTION,SHOWROOM,DEPOT,LIVRAISON",
        "type": "list",
        "label": "📍 Zones de stockage",
    },
    "strictLocationMode": {
        "env": "STRICT_LOCATION_MODE",
        "default": "false",
        "type": "bool",
        "label": "🔒 Zones strictes",
    },
    "businessType": {
        "env": "BUSINESS_TYPE",
        "default": "VO",
        "type": "str",
        "label": "🚗 Type de flotte",
    },
}


def _cast(raw: str, typ: str) -> Any:
    if typ == "bool":
        return raw.strip().lower() in ("true", "1", "yes")
    if typ == "list":
        return [x.strip().upper() for x in raw.split(",") if x.strip()]
    return raw.strip()


def _env_or_default(key: str) -> Any:
    meta = SETTINGS_META[key]
    env_val = os.getenv(meta["env"], "").strip()
    return _cast(env_val if env_val else meta["default"], meta["type"])


@dataclass
class AppSettings:
    company_name: str = "STOCK AUTO MAROC"
    allowed_locations: list[str] = field(
        default_factory=lambda: ["RECEPTION", "SHOWROOM", "DEPOT", "LIVRAISON"]
    )
    strict_location_mode: bool = False
    business_type: BusinessType = BusinessType.USED

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            company_name=_env_or_default("companyName").upper(),
            allowed_locations=(
                _env_or_default("allowedLocations")
                or _cast(SETTINGS_META["allowedLocations"]["default"], "list")
            ),
            strict_location_mode=_env_or_default("strictLocationMode"),
            business_type=BusinessType.parse(_env_or_default("businessType")),
        )

    @classmethod
    def from_dict(cls, data: dict, fallback: Optional["AppSettings"] = None) -> "AppSettings":
        base = fallback or cls()
        locations = data.get("allowedLocations")
        if not isinstance(locations, list) or not locations:
            locations = list(base.allowed_locations)
        return cls(
            company_name=data.get("companyName", base.company_name),
            allowed_locations=[str(loc) for loc in locations],
            strict_location_mode=bool(data.get("strictLocationMode", base.strict_location_mode)),
            business_type=BusinessType.parse(data.get("businessType", base.business_type.value)),
        )

    def to_dict(self) -> dict:
        return {
            "companyName": self.company_name,
            "allowedLocations": list(self.allowed_locations),
            "strictLocationMode": self.strict_location_mode,
            "businessType": self.business_type.value,
        }

    @property
    def scan_modes(self) -> list[ScanMode]:
        """New-vehicle fleets have no registration document to scan."""
        if self.business_type is BusinessType.NEW:
            return [ScanMode.VIN]
        return [ScanMode.VIN, ScanMode.REGISTRATION_DOCUMENT]


class SettingsStore:

    def __init__(self, backend: StorageBackend, key: Optional[str] = None) -> None:
        self._backend = backend
        self._key = key or config.SETTINGS_KEY
        self._settings = AppSettings.from_env()

    @property
    def settings(self) -> AppSettings:
        return self._settings

    async def load(self) -> AppSettings:
        """Persisted values win; anything missing comes from env / defaults."""
        defaults = AppSettings.from_env()
        raw = await self._backend.load(self._key)
        if raw:
            try:
                self._settings = AppSettings.from_dict(json.loads(raw), fallback=defaults)
            except (ValueError, TypeError, AttributeError) as exc:
                logger.warning("settings_store: unreadable settings blob, using defaults: %s", exc)
                self._settings = defaults
        else:
            self._settings = defaults
        return self._settings

    async def _save(self) -> None:
        await self._backend.save(self._key, json.dumps(self._settings.to_dict(), ensure_ascii=False))
        logger.info("settings_store: saved %r", self._settings.to_dict())

    async def set_company_name(self, name: str) -> None:
        name = name.strip().upper()
        if not name:
            raise ValueError("Company name cannot be empty")
        self._settings.company_name = name
        await self._save()

    async def set_business_type(self, value: str) -> None:
        raw = value.strip().upper()
        if raw not in {b.value for b in BusinessType}:
            raise ValueError(f"Unknown business type: {value!r} (expected VN or VO)")
        self._settings.business_type = BusinessType(raw)
        await self._save()

    async def set_strict_location_mode(self, enabled: bool) -> None:
        self._settings.strict_location_mode = enabled
        await self._save()

    async def add_location(self, name: str) -> bool:
        """Add a zone (uppercased). Returns False if it already exists."""
        name = name.strip().upper()
        if not name:
            raise ValueError("Zone name cannot be empty")
        if name in self._settings.allowed_locations:
            return False
        self._settings.allowed_locations.append(name)
        await self._save()
        return True

    async def remove_location(self, name: str) -> None:
        name = name.strip().upper()
        locations = self._settings.allowed_locations
        if name not in locations:
            raise KeyError(f"Unknown zone: {name}")
        if len(locations) == 1:
            raise ValueError("At least one zone must remain")
        locations.remove(name)
        await self._save()
