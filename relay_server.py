"""
relay_server.py — server-side boundary between the scanner app and Gemini.

Runs as an aiohttp web server. The Gemini key never leaves the server: the app
posts the photo here, the relay builds the prompt for the scan mode, calls the
model with a JSON response schema and returns the validated result.

Endpoints:
  POST /api/analyze-vin  → recognition result JSON (or {"error": ...})
  GET  /health           → plain-text health check

Responses of /api/analyze-vin:
  200  result object                         (may lack required fields: soft failure)
  200  {"error": NO_DATA_MESSAGE}            model returned nothing usable
  400  {"error": ...}                        malformed request body
  405  {"error": ...}                        anything but POST
  413                                        body over RELAY_MAX_BODY_BYTES (aiohttp)
  500  {"error": MISSING_KEY_MESSAGE}        no API key configured
  500  {"error": TECHNICAL_ERROR_MESSAGE}    inference failed
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from typing import Optional

from aiohttp import web

import config
from providers import manager
from providers.base import BusinessType, RecognitionResult, ScanMode, parse_json_response

logger = logging.getLogger(__name__)

METHOD_NOT_ALLOWED_MESSAGE = "Méthode non autorisée"
MISSING_KEY_MESSAGE        = "Clé API Gemini manquante. Configurez API_KEY."
BAD_REQUEST_MESSAGE        = "Requête invalide : image manquante ou illisible."
NO_DATA_MESSAGE            = "Impossible de lire les données. Image floue ou reflet ?"
TECHNICAL_ERROR_MESSAGE    = "Le serveur a rencontré un problème. Vérifiez la connexion."


def _resolve_api_key() -> Optional[str]:
    """Read the Gemini key from the environment, at request time."""
    for name in config.API_KEY_ENV_VARS:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def validate_model_output(raw: str, mode: ScanMode, provider_name: str) -> Optional[RecognitionResult]:
    """
    Treat the model text as untrusted: parse it and keep only declared string
    fields. Returns None when nothing usable came back.
    """
    try:
        result = RecognitionResult.from_dict(parse_json_response(raw, provider_name))
    except ValueError as exc:
        logger.warning("Unusable model output: %s", exc)
        return None
    # The schema marks these required but the model may still omit them
    missing = result.missing_fields(mode)
    if missing:
        logger.info("%s scan missing required field(s): %s", mode.value, ", ".join(missing))
    return result


# ── Request handlers ───────────────────────────────────────────────────────────

async def handle_analyze(request: web.Request) -> web.Response:
    if request.method != "POST":
        return _error(METHOD_NOT_ALLOWED_MESSAGE, 405)

    api_key = _resolve_api_key()
    if not api_key:
        logger.error("No Gemini API key set (checked %s)", ", ".join(config.API_KEY_ENV_VARS))
        return _error(MISSING_KEY_MESSAGE, 500)

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(BAD_REQUEST_MESSAGE, 400)
    if not isinstance(body, dict) or not isinstance(body.get("image"), str) or not body["image"]:
        return _error(BAD_REQUEST_MESSAGE, 400)

    try:
        image_bytes = base64.b64decode(body["image"], validate=True)
    except (binascii.Error, ValueError):
        return _error(BAD_REQUEST_MESSAGE, 400)

    mode = ScanMode.parse(body.get("mode"))
    business_type = BusinessType.parse(body.get("businessType"))
    mime_type = body.get("mimeType") or "image/jpeg"

    try:
        raw = await manager.recognise_image(api_key, image_bytes, mode, business_type, mime_type)
    except Exception:
        logger.exception("Inference failed for %s scan", mode.value)
        return _error(TECHNICAL_ERROR_MESSAGE, 500)

    if not raw:
        logger.info("%s scan: model returned no text", mode.value)
        return web.json_response({"error": NO_DATA_MESSAGE})

    result = validate_model_output(raw, mode, config.GEMINI_MODEL)
    if result is None:
        return web.json_response({"error": NO_DATA_MESSAGE})

    logger.info("%s scan OK (vin=%s)", mode.value, result.vin or "-")
    return web.json_response(result.to_dict())


async def handle_health(request: web.Request) -> web.Response:
    """Health check — returns 200 OK. Use with uptime monitors."""
    configured = "configured" if _resolve_api_key() else "MISSING"
    return web.Response(text=f"OK — API key {configured}", content_type="text/plain")


# ── App factory ────────────────────────────────────────────────────────────────

def build_web_app() -> web.Application:
    app = web.Application(client_max_size=config.RELAY_MAX_BODY_BYTES)
    app.router.add_get("/health", handle_health)
    app.router.add_route("*", config.RELAY_PATH, handle_analyze)
    return app


async def start_relay() -> web.AppRunner:
    """Start the web server. Returns runner so caller can shut it down cleanly."""
    app    = build_web_app()
    runner = web.AppRunner(app, access_log=logger)
    await runner.setup()
    site = web.TCPSite(runner, config.RELAY_HOST, config.RELAY_PORT)
    await site.start()
    logger.info(
        "🚗 Recognition relay listening on %s:%d%s  (model: %s)",
        config.RELAY_HOST, config.RELAY_PORT, config.RELAY_PATH, config.GEMINI_MODEL,
    )
    return runner
