"""
Google Gemini vision provider — uses the google-genai SDK.

The model is asked for JSON only (response_mime_type) and constrained by a
response schema built from providers.base.RESPONSE_FIELDS, so its text output
is normally a bare JSON object ready to forward.
"""
from __future__ import annotations

import time
import logging
from typing import Optional

from google import genai
from google.genai import types as genai_types

from providers.base import (
    RESPONSE_FIELDS, SCHEMA_REQUIRED, BusinessType, ScanMode, VisionProvider,
    build_user_prompt,
)

logger = logging.getLogger(__name__)

RESPONSE_SCHEMA = genai_types.Schema(
    type=genai_types.Type.OBJECT,
    properties={
        name: genai_types.Schema(type=genai_types.Type.STRING, description=desc)
        for name, desc in RESPONSE_FIELDS.items()
    },
    required=list(SCHEMA_REQUIRED),
)


class GeminiProvider(VisionProvider):

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash"):
        self.name     = "google"
        self.model_id = model
        self._client  = genai.Client(api_key=api_key)

    async def recognise(
        self,
        image_bytes: bytes,
        mode: ScanMode,
        business_type: BusinessType,
        mime_type: str = "image/jpeg",
    ) -> Optional[str]:
        gen_config = genai_types.GenerateContentConfig(
            temperature=0,
            response_mime_type="application/json",
            response_schema=RESPONSE_SCHEMA,
        )

        t0 = time.monotonic()

        response = await self._client.aio.models.generate_content(
            model=self.model_id,
            contents=[
                genai_types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                build_user_prompt(mode, business_type),
            ],
            config=gen_config,
        )

        latency_ms = int((time.monotonic() - t0) * 1000)
        logger.info("[%s] %s scan answered in %d ms", self.full_name, mode.value, latency_ms)
        return response.text or None
