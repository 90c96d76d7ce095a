"""
Tests for settings_store.py.

Covers:
  - _cast(): str / bool / list conversions
  - AppSettings.from_env(): env var → default priority chain
  - SettingsStore.load(): persisted value wins, partial blobs filled from env
  - zone editing: uppercase, no duplicates, never empty
  - company name / business type / strict mode setters persist
  - scan_modes per fleet type
"""
from __future__ import annotations

import json

import pytest
import pytest_asyncio

import config
import settings_store
from providers.base import BusinessType, ScanMode
from settings_store import AppSettings, SettingsStore
from storage import MemoryBackend


@pytest_asyncio.fixture
async def store():
    s = SettingsStore(MemoryBackend())
    await s.load()
    return s


# ── _cast ─────────────────────────────────────────────────────────────────────

class TestCast:
    def test_str(self):
        assert settings_store._cast("  hello ", "str") == "hello"

    def test_bool_true_variants(self):
        for v in ("true", "True", "TRUE", "1", "yes"):
            assert settings_store._cast(v, "bool") is True

    def test_bool_false_variants(self):
        for v in ("false", "False", "0", "no"):
            assert settings_store._cast(v, "bool") is False

    def test_list_uppercased_and_trimmed(self):
        assert settings_store._cast(" atelier, showroom ,,", "list") == ["ATELIER", "SHOWROOM"]


# ── from_env ──────────────────────────────────────────────────────────────────

class TestFromEnv:
    def test_defaults(self):
        s = AppSettings.from_env()
        assert s.company_name == "STOCK AUTO MAROC"
        assert s.allowed_locations == ["RECEPTION", "SHOWROOM", "DEPOT", "LIVRAISON"]
        assert s.strict_location_mode is False
        assert s.business_type is BusinessType.USED

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("COMPANY_NAME", "garage atlas")
        monkeypatch.setenv("ALLOWED_LOCATIONS", "parc a,parc b")
        monkeypatch.setenv("BUSINESS_TYPE", "vn")
        monkeypatch.setenv("STRICT_LOCATION_MODE", "true")
        s = AppSettings.from_env()
        assert s.company_name == "GARAGE ATLAS"
        assert s.allowed_locations == ["PARC A", "PARC B"]
        assert s.business_type is BusinessType.NEW
        assert s.strict_location_mode is True

    def test_empty_zone_list_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("ALLOWED_LOCATIONS", " , ")
        assert AppSettings.from_env().allowed_locations == ["RECEPTION", "SHOWROOM", "DEPOT", "LIVRAISON"]


# ── load ──────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestLoad:
    async def test_persisted_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("COMPANY_NAME", "FROM ENV")
        blob = json.dumps({"companyName": "FROM DB", "allowedLocations": ["A"],
                           "strictLocationMode": True, "businessType": "VN"})
        s = SettingsStore(MemoryBackend({config.SETTINGS_KEY: blob}))
        loaded = await s.load()
        assert loaded.company_name == "FROM DB"
        assert loaded.allowed_locations == ["A"]
        assert loaded.strict_location_mode is True
        assert loaded.business_type is BusinessType.NEW

    async def test_partial_blob_filled_from_env(self, monkeypatch):
        monkeypatch.setenv("BUSINESS_TYPE", "VN")
        s = SettingsStore(MemoryBackend({config.SETTINGS_KEY: '{"companyName": "X"}'}))
        loaded = await s.load()
        assert loaded.company_name == "X"
        assert loaded.business_type is BusinessType.NEW
        assert loaded.allowed_locations == ["RECEPTION", "SHOWROOM", "DEPOT", "LIVRAISON"]

    async def test_empty_zone_list_never_loaded(self):
        s = SettingsStore(MemoryBackend({config.SETTINGS_KEY: '{"allowedLocations": []}'}))
        loaded = await s.load()
        assert loaded.allowed_locations

    async def test_corrupt_blob_uses_defaults(self):
        s = SettingsStore(MemoryBackend({config.SETTINGS_KEY: "garbage"}))
        loaded = await s.load()
        assert loaded.company_name == "STOCK AUTO MAROC"


# ── Zones ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestZones:
    async def test_add_uppercases_and_persists(self):
        backend = MemoryBackend()
        s = SettingsStore(backend)
        await s.load()
        assert await s.add_location("atelier") is True
        assert s.settings.allowed_locations[-1] == "ATELIER"
        saved = json.loads(backend.data[config.SETTINGS_KEY])
        assert saved["allowedLocations"][-1] == "ATELIER"

    async def test_add_duplicate_is_noop(self, store):
        assert await store.add_location("showroom") is False
        assert store.settings.allowed_locations.count("SHOWROOM") == 1

    async def test_add_empty_raises(self, store):
        with pytest.raises(ValueError):
            await store.add_location("  ")

    async def test_remove(self, store):
        await store.remove_location("depot")
        assert "DEPOT" not in store.settings.allowed_locations

    async def test_remove_unknown_raises(self, store):
        with pytest.raises(KeyError):
            await store.remove_location("LUNE")

    async def test_last_zone_cannot_be_removed(self, store):
        for zone in ("RECEPTION", "SHOWROOM", "DEPOT"):
            await store.remove_location(zone)
        with pytest.raises(ValueError):
            await store.remove_location("LIVRAISON")
        assert store.settings.allowed_locations == ["LIVRAISON"]


# ── Other setters ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestSetters:
    async def test_company_name_uppercased(self, store):
        await store.set_company_name("garage étoile")
        assert store.settings.company_name == "GARAGE ÉTOILE"

    async def test_business_type(self, store):
        await store.set_business_type("vn")
        assert store.settings.business_type is BusinessType.NEW

    async def test_invalid_business_type_raises(self, store):
        with pytest.raises(ValueError):
            await store.set_business_type("XX")

    async def test_strict_mode_round_trip(self):
        backend = MemoryBackend()
        s = SettingsStore(backend)
        await s.set_strict_location_mode(True)
        reloaded = SettingsStore(backend)
        assert (await reloaded.load()).strict_location_mode is True


# ── Scan modes ────────────────────────────────────────────────────────────────

class TestScanModes:
    def test_used_fleet_offers_both(self):
        s = AppSettings(business_type=BusinessType.USED)
        assert s.scan_modes == [ScanMode.VIN, ScanMode.REGISTRATION_DOCUMENT]

    def test_new_fleet_offers_vin_only(self):
        s = AppSettings(business_type=BusinessType.NEW)
        assert s.scan_modes == [ScanMode.VIN]
