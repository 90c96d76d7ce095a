"""
Provider Manager — builds and caches the vision provider used by the relay.

The API key is passed in by the caller on every request (the relay reads it
from the environment each time), so a rotated key takes effect on the next
scan: the cache is keyed by (api_key, model).
"""
from __future__ import annotations

import logging
from typing import Optional

import config
from providers.base import BusinessType, ScanMode, VisionProvider

logger = logging.getLogger(__name__)

# Module-level cache, tests reset it to {}
_providers: dict[tuple[str, str], VisionProvider] = {}


def get_provider(api_key: str, model: Optional[str] = None) -> VisionProvider:
    model = model or config.GEMINI_MODEL
    cache_key = (api_key, model)
    provider = _providers.get(cache_key)
    if provider is None:
        from providers.gemini_provider import GeminiProvider
        provider = GeminiProvider(api_key, model)
        _providers.clear()          # only ever keep the current key's client
        _providers[cache_key] = provider
        logger.info("Loaded provider: %s", provider.full_name)
    return provider


async def recognise_image(
    api_key: str,
    image_bytes: bytes,
    mode: ScanMode,
    business_type: BusinessType,
    mime_type: str = "image/jpeg",
) -> Optional[str]:
    """Run one recognition with the configured provider. Exceptions propagate."""
    provider = get_provider(api_key)
    return await provider.recognise(image_bytes, mode, business_type, mime_type)
