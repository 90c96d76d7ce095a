"""
Shared types and base class for vision providers.

Everything the relay needs to know about a scan lives here:
  ScanMode / BusinessType  — the two request enums (wire values included)
  MODE_PROFILES            — per-mode instruction + required fields
  RecognitionResult        — validated model output, also what the client gets
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


# ── Request enums ─────────────────────────────────────────────────────────────

class ScanMode(str, Enum):
    VIN = "vin"
    REGISTRATION_DOCUMENT = "registration-document"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ScanMode":
        """Map a wire value to a mode. Unknown or missing values fall back to VIN."""
        value = (raw or "").strip().lower()
        if value in _MODE_ALIASES:
            return _MODE_ALIASES[value]
        try:
            return cls(value)
        except ValueError:
            return cls.VIN


# Older clients sent the French name for the registration document
_MODE_ALIASES = {"carte_grise": ScanMode.REGISTRATION_DOCUMENT}


class BusinessType(str, Enum):
    NEW = "VN"      # véhicules neufs
    USED = "VO"     # véhicules d'occasion

    @classmethod
    def parse(cls, raw: Optional[str]) -> "BusinessType":
        try:
            return cls((raw or "").strip().upper())
        except ValueError:
            return cls.USED


# ── Prompts ───────────────────────────────────────────────────────────────────

REGISTRATION_DOCUMENT_PROMPT = """CARTE GRISE MAROC (certificat d'immatriculation) :
Lis chaque champ par son libellé officiel :
  - E   : NIV / numéro de châssis (17 caractères) → "vin"
  - D.1 : Marque du constructeur → "make"
  - D.3 : Modèle → "model". Donne le nom commercial officiel du constructeur
          (ex: "CLIO", "208", "MG ZS"), jamais un code de version ou de type interne.
  - B   : Date de première mise en circulation, garde uniquement l'année → "year"
  - A   : Numéro d'immatriculation → "plate"
Réponds UNIQUEMENT avec l'objet JSON, sans texte avant ou après."""

VIN_PROMPT = """ANALYSE PHOTO CHÂSSIS / VÉHICULE :
1. Trouve impérativement le NIV (VIN) de 17 caractères, gravé sur le châssis ou imprimé sur l'étiquette.
2. Identifie la MARQUE du constructeur à partir du logo ou du style visible (ex: MG, Renault, Peugeot).
3. Identifie le MODÈLE commercial précis. Si plusieurs modèles de la même marque partagent
   la même plateforme (ex: MG4 / MG5 / MG ZS), choisis le modèle exact : ne réponds jamais
   avec un nom générique de plateforme ou de châssis.
4. Donne l'ANNÉE si elle apparaît sur l'étiquette NIV.
Réponds UNIQUEMENT avec l'objet JSON, sans texte avant ou après."""

_BUSINESS_HINTS = {
    BusinessType.NEW: "Contexte : véhicule neuf (VN), l'immatriculation est souvent absente.",
    BusinessType.USED: "Contexte : véhicule d'occasion (VO), une immatriculation peut être visible.",
}


@dataclass(frozen=True)
class ModeProfile:
    """What to ask the model for a given scan mode, and what it must return."""
    instruction: str
    required_fields: tuple[str, ...]


# Adding a mode = adding an entry here (plus the enum member)
MODE_PROFILES: dict[ScanMode, ModeProfile] = {
    ScanMode.VIN: ModeProfile(VIN_PROMPT, ("vin",)),
    ScanMode.REGISTRATION_DOCUMENT: ModeProfile(
        REGISTRATION_DOCUMENT_PROMPT, ("vin", "make", "model"),
    ),
}


def build_user_prompt(mode: ScanMode, business_type: BusinessType = BusinessType.USED) -> str:
    """Instruction for mode, followed by a one-line fleet context hint."""
    return f"{MODE_PROFILES[mode].instruction}\n{_BUSINESS_HINTS[business_type]}"


# ── Response schema ───────────────────────────────────────────────────────────

# field → description sent to the model; every field is a string
RESPONSE_FIELDS: dict[str, str] = {
    "vin":   "Numéro de châssis exact (NIV)",
    "plate": "Immatriculation",
    "make":  "Marque constructeur",
    "model": "Modèle commercial précis",
    "year":  "Année",
}
SCHEMA_REQUIRED: tuple[str, ...] = ("vin",)


@dataclass
class RecognitionResult:
    """Structured output of one recognition. Any field may be missing."""
    vin: Optional[str] = None
    plate: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "RecognitionResult":
        """
        Build from untrusted JSON. Unknown keys are ignored, numbers are
        stringified (models sometimes return the year as 2019), anything
        else that is not a string is dropped.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        kwargs: dict[str, str] = {}
        for name in (*RESPONSE_FIELDS, "error"):
            value = data.get(name)
            if value is None:
                continue
            if isinstance(value, bool):
                logger.warning("Dropping non-string field %s=%r", name, value)
                continue
            if isinstance(value, (int, float)):
                value = str(value)
            if not isinstance(value, str):
                logger.warning("Dropping non-string field %s=%r", name, value)
                continue
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, str]:
        return {k: v for k, v in self.__dict__.items() if v is not None}

    def missing_fields(self, mode: ScanMode) -> list[str]:
        """Required fields for mode that came back absent or blank."""
        return [
            name for name in MODE_PROFILES[mode].required_fields
            if not (getattr(self, name) or "").strip()
        ]

    def is_soft_failure(self, mode: ScanMode) -> bool:
        return bool(self.error) or bool(self.missing_fields(mode))


def parse_json_response(raw: str, provider_name: str) -> dict:
    """
    Parse JSON from a model response, handling markdown fences gracefully.
    Raises ValueError on parse failure.
    """
    text = raw.strip()
    # Strip ```json ... ``` or ``` ... ``` fences if present
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("[%s] Non-JSON response: %s", provider_name, raw[:300])
        raise ValueError(f"[{provider_name}] JSON parse error: {exc}") from exc


# ── Abstract base ──────────────────────────────────────────────────────────────

class VisionProvider(ABC):
    """Base class all vision providers must implement."""

    name: str           # e.g. "google"
    model_id: str       # e.g. "gemini-2.0-flash"

    @abstractmethod
    async def recognise(
        self,
        image_bytes: bytes,
        mode: ScanMode,
        business_type: BusinessType,
        mime_type: str = "image/jpeg",
    ) -> Optional[str]:
        """Run vision inference. Returns the raw model text, or None if empty."""
        ...

    @property
    def full_name(self) -> str:
        return f"{self.name}/{self.model_id}"
