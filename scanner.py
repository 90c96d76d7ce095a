"""
scanner.py — one user's scanning session.

Ties the pipeline together:
  photo → normalize_image → RecognitionGateway → draft → (edits) → HistoryStore

Rules enforced here, before any network call:
  • a zone must be selected, and it must be one of the configured zones
  • the scan mode must be offered for the fleet type
  • only one scan may be in flight at a time
Failures come back as ScanOutcome.error strings, never as raw exceptions,
except ScanInProgressError which is a programming error of the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from gateway import RecognitionError, RecognitionGateway
from history_store import HistoryStore
from image_normalizer import ImageDecodeError, ImageSource, normalize_image
from providers.base import ScanMode
from records import Draft, DraftValidationError, VehicleRecord, draft_from_result, promote
from settings_store import AppSettings

logger = logging.getLogger(__name__)

NO_ZONE_MESSAGE       = "⚠️ CHOISISSEZ UNE ZONE EN HAUT AVANT DE SCANNER"
DECODE_ERROR_MESSAGE  = "Photo illisible. Reprenez la photo."
MODE_UNAVAILABLE      = "Scan de carte grise indisponible pour une flotte VN."
INCOMPLETE_MESSAGE    = "Lecture incomplète ({fields}). Complétez à la main ou reprenez la photo."


class ScanInProgressError(RuntimeError):
    """A second scan was started while the first was still running."""


@dataclass
class ScanOutcome:
    draft: Draft = field(default_factory=Draft)
    error: Optional[str] = None
    preview_data_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ScanSession:

    def __init__(
        self,
        gateway: RecognitionGateway,
        history: HistoryStore,
        settings: AppSettings,
    ) -> None:
        self._gateway = gateway
        self._history = history
        self._settings = settings
        self._busy = False
        self.location: Optional[str] = None
        self.location_locked = False
        self.draft = Draft()

    @property
    def busy(self) -> bool:
        return self._busy

    # ── Zone ──────────────────────────────────────────────────────────────────

    def select_location(self, location: str) -> None:
        location = location.strip().upper()
        if self.location_locked and location != self.location:
            raise DraftValidationError("Zone verrouillée : déverrouillez-la avant de changer.")
        if location not in self._settings.allowed_locations:
            raise DraftValidationError(f"⚠️ ZONE INCONNUE : {location}")
        self.location = location

    def unlock_location(self) -> None:
        self.location_locked = False

    # ── Scan ──────────────────────────────────────────────────────────────────

    async def scan(self, image: ImageSource, mode: ScanMode = ScanMode.VIN) -> ScanOutcome:
        if self._busy:
            raise ScanInProgressError("A scan is already running")
        if not self.location:
            return ScanOutcome(error=NO_ZONE_MESSAGE)
        if mode not in self._settings.scan_modes:
            return ScanOutcome(error=MODE_UNAVAILABLE)

        self._busy = True
        try:
            return await self._run(image, mode)
        finally:
            self._busy = False

    async def _run(self, image: ImageSource, mode: ScanMode) -> ScanOutcome:
        try:
            normalized = normalize_image(image)
        except ImageDecodeError as exc:
            logger.warning("Rejected photo: %s", exc)
            return ScanOutcome(error=DECODE_ERROR_MESSAGE)

        preview = normalized.data_url
        try:
            result = await self._gateway.extract(
                normalized.base64, mode, self._settings.business_type, normalized.mime_type,
            )
        except RecognitionError as exc:
            return ScanOutcome(error=str(exc), preview_data_url=preview)

        if result.error:
            return ScanOutcome(error=result.error, preview_data_url=preview)

        self.draft = draft_from_result(result)
        self.location_locked = True

        missing = result.missing_fields(mode)
        error = INCOMPLETE_MESSAGE.format(fields=", ".join(missing).upper()) if missing else None
        return ScanOutcome(draft=self.draft, error=error, preview_data_url=preview)

    # ── Draft ─────────────────────────────────────────────────────────────────

    def start_manual(self, **fields: str) -> Draft:
        """Start a hand-typed draft, e.g. when the photo could not be read."""
        self.draft = Draft()
        self.draft.edit(**fields)
        return self.draft

    def edit_draft(self, **fields: str) -> Draft:
        self.draft.edit(**fields)
        return self.draft

    async def save(self, now: Optional[datetime] = None) -> VehicleRecord:
        """
        Promote the current draft into the history.
        Raises DraftValidationError, leaving the history untouched, when the
        VIN or the zone is missing.
        """
        allowed = self._settings.allowed_locations if self._settings.strict_location_mode else None
        record = promote(self.draft, self.location, allowed, now)
        await self._history.append(record)
        self.draft = Draft()
        return record
