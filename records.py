"""
records.py — vehicle records and the draft the user edits before saving.

Lifecycle:
  RecognitionResult ──draft_from_result()──▶ Draft ──promote()──▶ VehicleRecord
Only promote() produces a VehicleRecord, and it refuses drafts without a VIN
or without a zone.
"""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from providers.base import RecognitionResult

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")

# Same layout as the fr-FR locale: 19/10/2026 and 14:05
DATE_FORMAT = "%d/%m/%Y"
TIME_FORMAT = "%H:%M"


class DraftValidationError(ValueError):
    """The draft cannot be saved yet; the message is shown to the user."""


def normalize_vin(raw: Optional[str]) -> str:
    """Keep only ASCII letters and digits, uppercased."""
    return _NON_ALNUM.sub("", raw or "").upper()


@dataclass
class VehicleRecord:
    vin: str
    make: str
    model: str
    year: str
    location: str
    full_date: str
    timestamp: str
    plate: Optional[str] = None
    remarks: Optional[str] = None

    # Persisted with the historical camelCase key so old exports reload as-is
    def to_dict(self) -> dict:
        data = asdict(self)
        data["fullDate"] = data.pop("full_date")
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "VehicleRecord":
        return cls(
            vin=data.get("vin", ""),
            make=data.get("make", ""),
            model=data.get("model", ""),
            year=data.get("year", ""),
            location=data.get("location", ""),
            full_date=data.get("fullDate", ""),
            timestamp=data.get("timestamp", ""),
            plate=data.get("plate"),
            remarks=data.get("remarks"),
        )


@dataclass
class Draft:
    """Editable, possibly incomplete record."""
    vin: str = ""
    plate: str = ""
    make: str = ""
    model: str = ""
    year: str = ""
    remarks: str = ""

    _UPPERCASE = ("vin", "plate", "make", "model")

    def edit(self, **fields: str) -> None:
        """Apply hand corrections. Identity fields are uppercased as typed."""
        for name, value in fields.items():
            if name not in self.__dataclass_fields__:
                raise AttributeError(f"Unknown draft field: {name}")
            value = value or ""
            if name in self._UPPERCASE:
                value = value.upper()
            setattr(self, name, value)

    @property
    def is_empty(self) -> bool:
        return not any(asdict(self).values())


def draft_from_result(result: RecognitionResult) -> Draft:
    return Draft(
        vin=normalize_vin(result.vin),
        plate=(result.plate or "").upper(),
        make=(result.make or "").upper(),
        model=(result.model or "").upper(),
        year=result.year or "",
    )


def promote(
    draft: Draft,
    location: Optional[str],
    allowed_locations: Optional[list[str]] = None,
    now: Optional[datetime] = None,
) -> VehicleRecord:
    """
    Turn a confirmed draft into a record stamped with the capture time.
    When allowed_locations is given (strict zone mode) the zone must be one of them.
    """
    if not draft.vin.strip():
        raise DraftValidationError("⚠️ LE NUMÉRO DE CHÂSSIS (VIN) EST OBLIGATOIRE")
    if not (location or "").strip():
        raise DraftValidationError("⚠️ CHOISISSEZ UNE ZONE EN HAUT AVANT DE SCANNER")
    if allowed_locations is not None and location not in allowed_locations:
        raise DraftValidationError(f"⚠️ ZONE INCONNUE : {location}")

    now = now or datetime.now()
    return VehicleRecord(
        vin=draft.vin.strip(),
        plate=draft.plate or None,
        make=draft.make,
        model=draft.model,
        year=draft.year,
        location=location,
        full_date=now.strftime(DATE_FORMAT),
        timestamp=now.strftime(TIME_FORMAT),
        remarks=draft.remarks or None,
    )
