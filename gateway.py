"""
gateway.py — client side of the recognition relay.

extract() posts one normalized photo to the relay and returns the
RecognitionResult. Every failure is turned into a RecognitionError whose
message can be shown to the user as-is; a soft failure ({"error": ...} with a
200 status) is NOT raised, it comes back on result.error.
"""
from __future__ import annotations

import json
import logging
from typing import Optional

import aiohttp

import config
from providers.base import BusinessType, RecognitionResult, ScanMode

logger = logging.getLogger(__name__)

TOO_LARGE_MESSAGE   = "L'image est trop lourde pour être traitée. Réessayez avec une photo moins zoomée."
CONNECTION_MESSAGE  = "Erreur de connexion."
BAD_RESPONSE_MESSAGE = "Réponse du serveur illisible."


class RecognitionError(Exception):
    """A scan failed before a result could be read. str(exc) is user-facing."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class RecognitionGateway:

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._url = f"{(base_url or config.RELAY_URL).rstrip('/')}{config.RELAY_PATH}"
        self._session = session

    async def extract(
        self,
        image_base64: str,
        mode: ScanMode = ScanMode.VIN,
        business_type: BusinessType = BusinessType.USED,
        mime_type: str = "image/jpeg",
    ) -> RecognitionResult:
        payload = {
            "image": image_base64,
            "mode": mode.value,
            "businessType": business_type.value,
            "mimeType": mime_type,
        }
        try:
            if self._session is not None:
                return await self._post(self._session, payload)
            async with aiohttp.ClientSession() as session:
                return await self._post(session, payload)
        except aiohttp.ClientError as exc:
            logger.error("Relay unreachable at %s: %s", self._url, exc)
            raise RecognitionError(CONNECTION_MESSAGE) from exc

    async def _post(self, session: aiohttp.ClientSession, payload: dict) -> RecognitionResult:
        async with session.post(self._url, json=payload) as resp:
            status = resp.status
            if status == 413:
                raise RecognitionError(TOO_LARGE_MESSAGE, status)

            # Proxies in front of the relay may send pages in any encoding
            body = _decode_body(await resp.read(), resp.charset)
            if not 200 <= status < 300:
                raise RecognitionError(_classify_failure(status, resp.content_type, body), status)

            try:
                data = json.loads(body)
                result = RecognitionResult.from_dict(data)
            except ValueError as exc:
                logger.error("Relay sent non-JSON success body: %s", body[:300])
                raise RecognitionError(BAD_RESPONSE_MESSAGE, status) from exc

        if result.error:
            logger.info("Relay soft failure: %s", result.error)
        return result


def _decode_body(raw: bytes, charset: Optional[str]) -> str:
    try:
        return raw.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


def _classify_failure(status: int, content_type: str, body: str) -> str:
    """User-facing message for a non-2xx relay response."""
    if "application/json" in (content_type or ""):
        try:
            data = json.loads(body)
        except ValueError:
            data = None
        message = data.get("error") if isinstance(data, dict) else None
        if not isinstance(message, str):
            message = None
        logger.error("Relay error %d: %s", status, message or body[:300])
        return message or f"Erreur serveur ({status})"
    logger.error("Relay error %d (non-JSON body): %s", status, body[:300])
    return f"Erreur réseau : le serveur a répondu {status}."
