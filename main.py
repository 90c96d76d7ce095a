"""
main.py — Single entry point.

  python main.py serve                 → run the recognition relay (aiohttp)
  python main.py scan PHOTO --zone Z   → scan a photo through the relay, review, save
  python main.py add --vin ... --zone Z
  python main.py list [TERM] | remove N | clear | export [DIR] | share N
  python main.py settings | zone-add Z | zone-remove Z | set-company NAME
  python main.py set-business VN|VO | set-strict on|off

The client commands work on the local inventory (SQLite in DATA_DIR) and talk
to the relay at RELAY_URL; only `serve` needs the Gemini API key.
"""
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import config

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    # Log file lives in the same data/ directory as the database so that a single
    # Docker volume mount (./data:/app/data) captures both.
    data_dir = Path(config.DATA_DIR)
    data_dir.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=logging.DEBUG if verbose else logging.INFO,
        handlers=[
            console,
            logging.FileHandler(str(data_dir / "scanner.log"), encoding="utf-8"),
        ],
    )
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


# ── Relay ─────────────────────────────────────────────────────────────────────

async def serve() -> None:
    from relay_server import start_relay

    runner = await start_relay()
    stop_event = asyncio.Event()

    def _stop(*_):
        logger.info("Shutdown signal received.")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop)
        except (NotImplementedError, RuntimeError):
            # Windows doesn't support add_signal_handler for all signals
            pass

    print(f"✅ Relay running on port {config.RELAY_PORT}. Press Ctrl+C to stop.")
    try:
        await stop_event.wait()
    finally:
        await runner.cleanup()
        logger.info("Relay stopped.")


# ── Client commands ───────────────────────────────────────────────────────────

async def _open_stores():
    import database as db
    from history_store import HistoryStore
    from settings_store import SettingsStore
    from storage import SQLiteBackend

    await db.init_db()
    backend = SQLiteBackend()
    history = HistoryStore(backend)
    settings = SettingsStore(backend)
    await history.load()
    await settings.load()
    return history, settings


def _confirm(question: str, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    return input(f"{question} [o/N] ").strip().lower() in ("o", "oui", "y", "yes")


def _print_record(index: int, record) -> None:
    plate = f"  {record.plate}" if record.plate else ""
    print(f"[{index}] {record.make} {record.model}  {record.vin}{plate}  "
          f"📍 {record.location}  {record.full_date} {record.timestamp}")


def _review(draft, assume_yes: bool) -> None:
    """Let the user correct each recognised field before saving."""
    for name in ("vin", "plate", "make", "model", "year"):
        current = getattr(draft, name)
        if assume_yes:
            print(f"  {name.upper():6} {current}")
            continue
        typed = input(f"  {name.upper():6} [{current}] ").strip()
        if typed:
            draft.edit(**{name: typed})


async def cmd_scan(args) -> int:
    from gateway import RecognitionGateway
    from providers.base import ScanMode
    from records import DraftValidationError
    from scanner import ScanSession

    history, settings = await _open_stores()
    session = ScanSession(RecognitionGateway(args.relay_url), history, settings.settings)
    try:
        session.select_location(args.zone)
    except DraftValidationError as exc:
        print(exc)
        return 1

    outcome = await session.scan(Path(args.photo), ScanMode.parse(args.mode))
    if outcome.error:
        print(f"❌ {outcome.error}")
        if outcome.draft.is_empty:
            return 1

    _review(session.draft, args.yes)
    if not _confirm("Valider le stock ?", args.yes):
        return 1
    try:
        record = await session.save()
    except DraftValidationError as exc:
        print(exc)
        return 1
    print(f"✅ {record.vin} enregistré en {record.location}")
    return 0


async def cmd_add(args) -> int:
    from gateway import RecognitionGateway
    from records import DraftValidationError
    from scanner import ScanSession

    history, settings = await _open_stores()
    session = ScanSession(RecognitionGateway(), history, settings.settings)
    try:
        session.select_location(args.zone)
        session.start_manual(
            vin=args.vin, plate=args.plate or "", make=args.make or "",
            model=args.model or "", year=args.year or "", remarks=args.remarks or "",
        )
        record = await session.save()
    except DraftValidationError as exc:
        print(exc)
        return 1
    print(f"✅ {record.vin} enregistré en {record.location}")
    return 0


async def cmd_list(args) -> int:
    history, _ = await _open_stores()
    entries = history.entries(args.term or "")
    print(f"Inventaire ({len(entries)})")
    for index, record in entries:
        _print_record(index, record)
    if not entries:
        print("Aucun résultat")
    return 0


async def cmd_remove(args) -> int:
    history, _ = await _open_stores()
    if not 0 <= args.index < len(history):
        print(f"Aucun véhicule à l'index {args.index}")
        return 1
    if not _confirm("Supprimer ce véhicule du stock ?", args.yes):
        return 1
    record = await history.remove(args.index)
    print(f"🗑️ {record.vin} supprimé")
    return 0


async def cmd_clear(args) -> int:
    history, _ = await _open_stores()
    if not _confirm("⚠️ ATTENTION : Cela va supprimer TOUT l'historique local. Continuer ?", args.yes):
        return 1
    await history.clear()
    print("🗑️ Stock vidé")
    return 0


async def cmd_export(args) -> int:
    from export import export_csv

    history, _ = await _open_stores()
    path = export_csv(history.get(), args.directory)
    if path is None:
        print("Inventaire vide, rien à exporter")
        return 1
    print(f"📄 {path}")
    return 0


async def cmd_share(args) -> int:
    from export import whatsapp_share_url

    history, _ = await _open_stores()
    records = history.get()
    if not 0 <= args.index < len(records):
        print(f"Aucun véhicule à l'index {args.index}")
        return 1
    print(whatsapp_share_url(records[args.index]))
    return 0


async def cmd_settings(args) -> int:
    from settings_store import SETTINGS_META

    _, store = await _open_stores()
    values = store.settings.to_dict()
    for key, meta in SETTINGS_META.items():
        value = values[key]
        if isinstance(value, list):
            value = ", ".join(value)
        print(f"{meta['label']}: {value}")
    return 0


async def cmd_zone_add(args) -> int:
    _, store = await _open_stores()
    if not await store.add_location(args.name):
        print(f"Zone {args.name.upper()} déjà présente")
    return 0


async def cmd_zone_remove(args) -> int:
    _, store = await _open_stores()
    try:
        await store.remove_location(args.name)
    except (KeyError, ValueError) as exc:
        print(exc)
        return 1
    return 0


async def cmd_set_company(args) -> int:
    _, store = await _open_stores()
    await store.set_company_name(args.name)
    return 0


async def cmd_set_business(args) -> int:
    _, store = await _open_stores()
    await store.set_business_type(args.value)
    return 0


async def cmd_set_strict(args) -> int:
    _, store = await _open_stores()
    await store.set_strict_location_mode(args.value == "on")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inventaire stock — scanner NIV / carte grise",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log to the console")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run the recognition relay")

    p = sub.add_parser("scan", help="Scan a photo and save the vehicle")
    p.add_argument("photo", help="Path to the photo")
    p.add_argument("--zone", required=True, help="Storage zone")
    p.add_argument("--mode", default="vin", choices=["vin", "registration-document"])
    p.add_argument("--relay-url", default=None, help="Relay base URL (overrides RELAY_URL)")
    p.add_argument("-y", "--yes", action="store_true", help="Save without reviewing")
    p.set_defaults(func=cmd_scan)

    p = sub.add_parser("add", help="Enter a vehicle by hand")
    p.add_argument("--vin", required=True)
    p.add_argument("--zone", required=True)
    p.add_argument("--plate")
    p.add_argument("--make")
    p.add_argument("--model")
    p.add_argument("--year")
    p.add_argument("--remarks")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("list", help="Show the inventory, optionally filtered")
    p.add_argument("term", nargs="?", default="")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("remove", help="Delete one vehicle")
    p.add_argument("index", type=int)
    p.add_argument("-y", "--yes", action="store_true")
    p.set_defaults(func=cmd_remove)

    p = sub.add_parser("clear", help="Delete the whole inventory")
    p.add_argument("-y", "--yes", action="store_true")
    p.set_defaults(func=cmd_clear)

    p = sub.add_parser("export", help="Write the inventory as CSV")
    p.add_argument("directory", nargs="?", default=".")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("share", help="Print a WhatsApp share link for one vehicle")
    p.add_argument("index", type=int)
    p.set_defaults(func=cmd_share)

    p = sub.add_parser("settings", help="Show the current settings")
    p.set_defaults(func=cmd_settings)

    p = sub.add_parser("zone-add", help="Add a storage zone")
    p.add_argument("name")
    p.set_defaults(func=cmd_zone_add)

    p = sub.add_parser("zone-remove", help="Remove a storage zone")
    p.add_argument("name")
    p.set_defaults(func=cmd_zone_remove)

    p = sub.add_parser("set-company", help="Set the company / lot name")
    p.add_argument("name")
    p.set_defaults(func=cmd_set_company)

    p = sub.add_parser("set-business", help="Set the fleet type")
    p.add_argument("value", choices=["VN", "VO"])
    p.set_defaults(func=cmd_set_business)

    p = sub.add_parser("set-strict", help="Only accept configured zones when saving")
    p.add_argument("value", choices=["on", "off"])
    p.set_defaults(func=cmd_set_strict)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    try:
        if args.command == "serve":
            asyncio.run(serve())
            return 0
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
