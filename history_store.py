"""
history_store.py — the local inventory: every saved VehicleRecord, newest first.

The store is the single source of truth for display and export. Entries only
disappear through remove() or clear(); asking the user to confirm either is
the caller's job. Every mutation rewrites the whole collection through the
injected backend (load once, save on every change).
"""
from __future__ import annotations

import json
import logging
from typing import Optional

import config
from records import VehicleRecord
from storage import StorageBackend

logger = logging.getLogger(__name__)

_SEARCH_FIELDS = ("vin", "plate", "make", "model", "location")


class HistoryStore:

    def __init__(self, backend: StorageBackend, key: Optional[str] = None) -> None:
        self._backend = backend
        self._key = key or config.HISTORY_KEY
        self._records: list[VehicleRecord] = []

    async def load(self) -> list[VehicleRecord]:
        """Read the persisted collection. A missing key means an empty history."""
        raw = await self._backend.load(self._key)
        if raw:
            try:
                self._records = [VehicleRecord.from_dict(d) for d in json.loads(raw)]
            except (ValueError, TypeError, AttributeError) as exc:
                # A crash mid-write can leave a broken blob; refuse to overwrite it silently
                logger.error("History blob %r is corrupt: %s", self._key, exc)
                raise
        else:
            self._records = []
        logger.info("Loaded %d history record(s)", len(self._records))
        return self.get()

    async def _save(self) -> None:
        payload = json.dumps([r.to_dict() for r in self._records], ensure_ascii=False)
        await self._backend.save(self._key, payload)

    # ── Read ──────────────────────────────────────────────────────────────────

    def get(self) -> list[VehicleRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def entries(self, term: str = "") -> list[tuple[int, VehicleRecord]]:
        """
        (index, record) pairs matching term, in display order.
        The index addresses the full collection, so it is safe to pass to remove().
        """
        needle = (term or "").strip().upper()
        if not needle:
            return list(enumerate(self._records))
        return [
            (i, r) for i, r in enumerate(self._records)
            if any(needle in (getattr(r, f) or "").upper() for f in _SEARCH_FIELDS)
        ]

    def search(self, term: str = "") -> list[VehicleRecord]:
        """Case-insensitive substring match on vin, plate, make, model and zone."""
        return [r for _, r in self.entries(term)]

    # ── Mutations ─────────────────────────────────────────────────────────────

    async def append(self, record: VehicleRecord) -> None:
        if not record.vin or not record.location:
            raise ValueError("A record needs both a VIN and a location")
        self._records.insert(0, record)
        await self._save()
        logger.info("Saved %s in %s (%d in stock)", record.vin, record.location, len(self._records))

    async def remove(self, index: int) -> VehicleRecord:
        if not 0 <= index < len(self._records):
            raise IndexError(f"No history entry at index {index}")
        record = self._records.pop(index)
        await self._save()
        logger.info("Removed %s from history", record.vin)
        return record

    async def clear(self) -> None:
        count = len(self._records)
        self._records = []
        await self._save()
        logger.warning("History cleared (%d record(s) removed)", count)
