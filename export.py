"""
export.py — getting records out of the app: CSV inventory and share links.

The CSV opens directly in a French-locale Excel: ';' separator and a UTF-8
byte-order mark so accents survive.
"""
from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import quote

from records import VehicleRecord

logger = logging.getLogger(__name__)

CSV_HEADER = ["VIN", "IMMAT", "MARQUE", "MODELE", "ANNEE", "DATE", "HEURE", "ZONE"]
WHATSAPP_URL = "https://wa.me/?text="


def csv_filename(today: Optional[datetime] = None) -> str:
    today = today or datetime.now(timezone.utc)
    return f"inventaire_{today.date().isoformat()}.csv"


def to_csv(records: Iterable[VehicleRecord]) -> str:
    """Rows in the given (display) order, header first. No BOM."""
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=";", lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for r in records:
        writer.writerow([
            r.vin, r.plate or "", r.make, r.model, r.year,
            r.full_date, r.timestamp, r.location,
        ])
    return buf.getvalue()


def export_csv(
    records: list[VehicleRecord],
    directory: str | Path = ".",
    today: Optional[datetime] = None,
) -> Optional[Path]:
    """Write inventaire_<date>.csv into directory. Returns None when there is nothing to export."""
    if not records:
        logger.info("Nothing to export")
        return None
    path = Path(directory) / csv_filename(today)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(to_csv(records), encoding="utf-8-sig")
    logger.info("Exported %d record(s) to %s", len(records), path)
    return path


# ── Sharing ───────────────────────────────────────────────────────────────────

def share_text(record: VehicleRecord) -> str:
    return (
        "📦 *INVENTAIRE STOCK*\n\n"
        f"📍 Zone: {record.location}\n"
        f"🚗 Véhicule: {record.make} {record.model}\n"
        f"🔢 VIN: {record.vin}\n"
        f"🆔 Plaque: {record.plate or 'N/A'}\n"
        f"📅 Date: {record.full_date} à {record.timestamp}"
    )


def whatsapp_share_url(record: VehicleRecord) -> str:
    return WHATSAPP_URL + quote(share_text(record), safe="")
