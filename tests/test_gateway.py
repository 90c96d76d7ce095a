"""
Tests for gateway.py — the relay is replaced by tiny aiohttp apps on a TestServer.

Covers:
  - request payload sent to the relay
  - 2xx: result parsed, soft {"error"} passed through, {} is not an exception
  - 413 always maps to the fixed "too heavy" message
  - non-2xx JSON: body error / generic "Erreur serveur (status)"
  - non-2xx non-JSON (any encoding): "Erreur réseau" message
  - 2xx non-JSON and unreachable relay
  - end to end against the real relay app with the model mocked
"""
from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest
from aiohttp import test_utils, web

import config
import relay_server
from gateway import (
    BAD_RESPONSE_MESSAGE,
    CONNECTION_MESSAGE,
    TOO_LARGE_MESSAGE,
    RecognitionError,
    RecognitionGateway,
)
from providers.base import BusinessType, RecognitionResult, ScanMode


def _relay(status: int = 200, text: str = "{}", content_type: str = "application/json", seen=None,
           body: bytes | None = None):
    async def handler(request: web.Request) -> web.Response:
        if seen is not None:
            seen.append(await request.json())
        if body is not None:
            return web.Response(status=status, body=body, content_type=content_type, charset="utf-8")
        return web.Response(status=status, text=text, content_type=content_type)

    app = web.Application()
    app.router.add_post(config.RELAY_PATH, handler)
    return app


async def _extract(app: web.Application, **kwargs) -> RecognitionResult:
    async with test_utils.TestServer(app) as server:
        gateway = RecognitionGateway(str(server.make_url("/")))
        return await gateway.extract("QUJD", **kwargs)


# ── Success ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestSuccess:
    async def test_payload_sent(self):
        seen: list = []
        await _extract(
            _relay(seen=seen),
            mode=ScanMode.REGISTRATION_DOCUMENT, business_type=BusinessType.NEW, mime_type="image/png",
        )
        assert seen == [{
            "image": "QUJD",
            "mode": "registration-document",
            "businessType": "VN",
            "mimeType": "image/png",
        }]

    async def test_default_payload(self):
        seen: list = []
        await _extract(_relay(seen=seen))
        assert seen[0]["mode"] == "vin"
        assert seen[0]["businessType"] == "VO"
        assert seen[0]["mimeType"] == "image/jpeg"

    async def test_result_parsed(self):
        body = json.dumps({"vin": "VF1", "make": "RENAULT", "model": "CLIO", "year": "2020"})
        result = await _extract(_relay(text=body))
        assert result == RecognitionResult(vin="VF1", make="RENAULT", model="CLIO", year="2020")

    async def test_empty_object_is_not_an_exception(self):
        result = await _extract(_relay(text="{}"))
        assert result.vin is None
        assert result.missing_fields(ScanMode.VIN) == ["vin"]

    async def test_soft_error_passed_through(self):
        result = await _extract(_relay(text='{"error": "Image floue"}'))
        assert result.error == "Image floue"

    async def test_non_json_success_body(self):
        with pytest.raises(RecognitionError) as exc_info:
            await _extract(_relay(text="<html>ok</html>", content_type="text/html"))
        assert str(exc_info.value) == BAD_RESPONSE_MESSAGE


# ── Failure classification ────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestFailures:
    @pytest.mark.parametrize("text, content_type", [
        ('{"error": "custom"}', "application/json"),
        ("<html>Request Entity Too Large</html>", "text/html"),
        ("", "text/plain"),
    ])
    async def test_413_always_too_heavy(self, text, content_type):
        with pytest.raises(RecognitionError) as exc_info:
            await _extract(_relay(status=413, text=text, content_type=content_type))
        assert str(exc_info.value) == TOO_LARGE_MESSAGE
        assert exc_info.value.status == 413

    async def test_json_error_body_used(self):
        with pytest.raises(RecognitionError) as exc_info:
            await _extract(_relay(status=500, text='{"error": "Clé API Gemini manquante."}'))
        assert str(exc_info.value) == "Clé API Gemini manquante."
        assert exc_info.value.status == 500

    async def test_json_without_error_field(self):
        with pytest.raises(RecognitionError) as exc_info:
            await _extract(_relay(status=502, text='{"detail": "x"}'))
        assert str(exc_info.value) == "Erreur serveur (502)"

    async def test_non_json_error(self):
        with pytest.raises(RecognitionError) as exc_info:
            await _extract(_relay(status=504, text="<html>Gateway Timeout</html>", content_type="text/html"))
        assert str(exc_info.value) == "Erreur réseau : le serveur a répondu 504."

    async def test_error_page_in_wrong_encoding(self):
        page = "<html>Mauvaise passerelle é</html>".encode("latin-1")
        with pytest.raises(RecognitionError) as exc_info:
            await _extract(_relay(status=502, body=page, content_type="text/html"))
        assert str(exc_info.value) == "Erreur réseau : le serveur a répondu 502."

    async def test_success_body_in_wrong_encoding(self):
        page = "<html>Mauvaise passerelle é</html>".encode("latin-1")
        with pytest.raises(RecognitionError) as exc_info:
            await _extract(_relay(status=200, body=page, content_type="text/html"))
        assert str(exc_info.value) == BAD_RESPONSE_MESSAGE

    async def test_non_2xx_below_400_is_failure(self):
        with pytest.raises(RecognitionError) as exc_info:
            await _extract(_relay(status=300, text="<html>choices</html>", content_type="text/html"))
        assert str(exc_info.value) == "Erreur réseau : le serveur a répondu 300."
        assert exc_info.value.status == 300

    async def test_405(self):
        with pytest.raises(RecognitionError) as exc_info:
            await _extract(_relay(status=405, text='{"error": "Méthode non autorisée"}'))
        assert str(exc_info.value) == "Méthode non autorisée"

    async def test_unreachable_relay(self):
        gateway = RecognitionGateway("http://127.0.0.1:1")
        with pytest.raises(RecognitionError) as exc_info:
            await gateway.extract("QUJD")
        assert str(exc_info.value) == CONNECTION_MESSAGE

    async def test_shared_session(self):
        async with test_utils.TestServer(_relay(text='{"vin": "ABC"}')) as server:
            async with aiohttp.ClientSession() as session:
                gateway = RecognitionGateway(str(server.make_url("/")), session=session)
                first = await gateway.extract("QUJD")
                second = await gateway.extract("QUJD")
                # the gateway must not close a session it does not own
                assert not session.closed
        assert first.vin == second.vin == "ABC"


# ── End to end with the real relay ────────────────────────────────────────────

@pytest.mark.asyncio
class TestAgainstRelay:
    async def test_round_trip(self, api_key):
        raw = '{"vin": "wvw-zzz1k5xw000001", "make": "Volkswagen", "model": "Golf"}'
        with patch("providers.manager.recognise_image", new_callable=AsyncMock, return_value=raw):
            result = await _extract(relay_server.build_web_app())
        assert result.vin == "wvw-zzz1k5xw000001"
        assert result.make == "Volkswagen"

    async def test_missing_key_surfaces_relay_message(self, no_api_key):
        with pytest.raises(RecognitionError) as exc_info:
            await _extract(relay_server.build_web_app())
        assert str(exc_info.value) == relay_server.MISSING_KEY_MESSAGE

    async def test_oversized_image_surfaces_too_heavy(self, api_key, monkeypatch):
        monkeypatch.setattr(config, "RELAY_MAX_BODY_BYTES", 512)
        async with test_utils.TestServer(relay_server.build_web_app()) as server:
            gateway = RecognitionGateway(str(server.make_url("/")))
            with pytest.raises(RecognitionError) as exc_info:
                await gateway.extract("A" * 4096)
        assert str(exc_info.value) == TOO_LARGE_MESSAGE
