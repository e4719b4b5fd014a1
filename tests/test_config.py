import pytest
from pydantic import ValidationError

from delivery_engine.config import Settings
from delivery_engine.services.zones.resolver import DeliveryTimePolicy


def test_allowed_origins_accept_comma_separated_string():
    settings = Settings(frontend_allowed_origins="https://shop.example, https://admin.example")
    assert settings.frontend_allowed_origins == ("https://shop.example", "https://admin.example")


def test_allowed_origins_accept_json_list():
    settings = Settings(frontend_allowed_origins='["https://shop.example"]')
    assert settings.frontend_allowed_origins == ("https://shop.example",)


def test_country_is_normalized():
    assert Settings(geocode_country=" br ").geocode_country == "BR"
    assert Settings(geocode_country="").geocode_country is None


def test_fallback_window_must_not_be_inverted():
    with pytest.raises(ValidationError):
        Settings(fallback_min_time_minutes=50, fallback_max_time_minutes=40)


def test_time_policy_reads_settings(monkeypatch):
    from delivery_engine.services.zones import resolver

    monkeypatch.setattr(resolver.settings, "fallback_min_time_minutes", 20)
    monkeypatch.setattr(resolver.settings, "fallback_max_time_minutes", 35)
    monkeypatch.setattr(resolver.settings, "delivery_window_minutes", 10)

    policy = DeliveryTimePolicy.from_settings()
    assert policy.fallback_window == (20, 35)
    assert policy.window_minutes == 10
