from __future__ import annotations

from pomo.config import Settings


def test_tick_interval_is_clamped() -> None:
    assert Settings(tick_interval_ms=1).tick_interval_ms == 10
    assert Settings(tick_interval_ms=250).tick_seconds == 0.25


def test_event_queue_size_is_at_least_one() -> None:
    assert Settings(event_queue_size=0).event_queue_size == 1


def test_cors_origins_accept_comma_separated_string() -> None:
    settings = Settings(cors_origins="http://a.test, http://b.test,")
    assert settings.cors_origins == ["http://a.test", "http://b.test"]


def test_bare_field_names_override_prefixed_defaults(monkeypatch) -> None:
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.setenv("TIMEZONE", "Europe/Berlin")
    settings = Settings()
    assert settings.port == 9001
    assert settings.timezone == "Europe/Berlin"
