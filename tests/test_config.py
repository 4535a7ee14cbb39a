"""Tests for environment configuration."""

import os
import pytest
from unittest.mock import patch

from notification_engine.config import Settings
from notification_engine.db.session import normalize_database_url


def _settings(**env) -> Settings:
    values = {"DATABASE_URL": "sqlite://"}
    values.update(env)
    with patch.dict(os.environ, values):
        return Settings()


class TestSettings:
    """Tests for Settings parsing and validation."""

    def test_defaults(self):
        settings = _settings()

        assert settings.EXPIRY_THRESHOLD_DAYS == [30, 15, 7]
        assert settings.EXPIRY_GRACE_PERIOD_DAYS == 7
        assert settings.EXPIRY_DELETION_WINDOW_DAYS == 30
        assert settings.WORKER_MAX_RETRIES == 3
        settings.validate()

    def test_threshold_list_parsing(self):
        settings = _settings(EXPIRY_THRESHOLD_DAYS="14, 3,")

        assert settings.EXPIRY_THRESHOLD_DAYS == [14, 3]

    @pytest.mark.parametrize("raw,expected", [("true", True), ("1", True), ("off", False)])
    def test_expiry_toggle(self, raw, expected):
        settings = _settings(SERVICE_EXPIRY_NOTIFICATIONS_ENABLED=raw)

        assert settings.SERVICE_EXPIRY_NOTIFICATIONS_ENABLED is expected

    def test_database_url_required(self):
        settings = _settings(DATABASE_URL="")

        with pytest.raises(ValueError, match="DATABASE_URL"):
            settings.validate()

    @pytest.mark.parametrize(
        "env",
        [
            {"EXPIRY_THRESHOLD_DAYS": "7,15,30"},
            {"EXPIRY_THRESHOLD_DAYS": "30,15,7,1"},
            {"EXPIRY_THRESHOLD_DAYS": "30,0"},
            {"EXPIRY_GRACE_PERIOD_DAYS": "0"},
            {"EXPIRY_GRACE_PERIOD_DAYS": "10", "EXPIRY_DELETION_WINDOW_DAYS": "10"},
            {"WORKER_MAX_RETRIES": "0"},
        ],
    )
    def test_inconsistent_values_rejected(self, env):
        settings = _settings(**env)

        with pytest.raises(ValueError):
            settings.validate()

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("postgresql://u:p@db/notify", "postgresql+psycopg://u:p@db/notify"),
            ("postgresql+psycopg://u:p@db/notify", "postgresql+psycopg://u:p@db/notify"),
            ("sqlite://", "sqlite://"),
        ],
    )
    def test_database_url_driver(self, url, expected):
        assert normalize_database_url(url) == expected
