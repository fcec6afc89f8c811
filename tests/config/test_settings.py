"""Tests for environment-driven settings."""

from cadence.config.settings import Settings
from cadence.utils.calendar import LocalCalendar


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("CADENCE_TIMEZONE", "LOG_LEVEL", "CADENCE_UPCOMING_DAYS_AHEAD", "CADENCE_PLAN_DAYS_AHEAD"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.timezone == "UTC"
        assert settings.log_level == "INFO"
        assert settings.upcoming_days_ahead == 90
        assert settings.plan_days_ahead == 120

    def test_database_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
        assert Settings(_env_file=None).database_url == "sqlite:///:memory:"

    def test_invalid_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        monkeypatch.setenv("CADENCE_TIMEZONE", "Not/AZone")
        monkeypatch.setenv("CADENCE_UPCOMING_DAYS_AHEAD", "0")
        settings = Settings(_env_file=None)
        assert settings.log_level == "INFO"
        assert settings.timezone == "UTC"
        assert settings.upcoming_days_ahead == 1

    def test_log_level_is_normalized(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert Settings(_env_file=None).log_level == "DEBUG"

    def test_current_calendar_follows_settings(self, monkeypatch):
        import cadence.config.settings as settings_module

        monkeypatch.setattr(settings_module.settings, "timezone", "UTC")
        assert LocalCalendar.current() == LocalCalendar.utc()
