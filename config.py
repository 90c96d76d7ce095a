"""
Central configuration — reads from .env file.

Settings priority order:
  1. Persisted app settings (zones, company, fleet type) — see settings_store.py
  2. Environment variable / .env file                    — fallback / bootstrap

The Gemini API key is not read here: the relay resolves it from
the environment on every request (see relay_server._resolve_api_key) so a
missing key is reported per request instead of crashing at import.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# ── Gemini ────────────────────────────────────────────────────────────────────
# Checked in order; the first non-empty value wins.
API_KEY_ENV_VARS: tuple[str, ...] = ("GEMINI_API_KEY", "API_KEY", "GOOGLE_API_KEY")

GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

# ── Relay server ──────────────────────────────────────────────────────────────
RELAY_HOST: str = os.getenv("RELAY_HOST", "0.0.0.0")
RELAY_PORT: int = int(os.getenv("RELAY_PORT", "8080"))
RELAY_PATH: str = "/api/analyze-vin"

# Requests larger than this are rejected by aiohttp with 413
RELAY_MAX_BODY_BYTES: int = int(os.getenv("RELAY_MAX_BODY_BYTES", str(4_500_000)))

# ── Client ────────────────────────────────────────────────────────────────────
# Base URL the gateway posts to, e.g. https://scanner.example.com
RELAY_URL: str = os.getenv("RELAY_URL", "http://127.0.0.1:8080").rstrip("/")

# Image normalisation
MAX_IMAGE_SIZE: int = int(os.getenv("MAX_IMAGE_SIZE", "1200"))
JPEG_QUALITY: int   = int(os.getenv("JPEG_QUALITY", "70"))

# ── Local state ───────────────────────────────────────────────────────────────
DATA_DIR: str = os.getenv("DATA_DIR", "data")

HISTORY_KEY: str  = "vin_scan_history"
SETTINGS_KEY: str = "vin_scan_settings"

