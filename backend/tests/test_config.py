"""Tests for configuration validation."""

import os
from unittest.mock import patch

import pytest

from crm.config import Settings


class TestConfigSecurity:
    """Test security-critical configuration validation."""

    def test_production_requires_database_url(self):
        """Production environment must have DATABASE_URL."""
        env = {
            "ENVIRONMENT": "production",
            "DATABASE_URL": "",
            "SECRET_KEY": "a" * 32,
        }
        with (
            patch.dict(os.environ, env, clear=True),
            pytest.raises(ValueError, match="DATABASE_URL is required"),
        ):
            Settings(_env_file=None)

    def test_secret_key_minimum_length(self):
        """Secret key must be at least 32 characters."""
        env = {
            "ENVIRONMENT": "development",
            "SECRET_KEY": "too-short",
        }
        with (
            patch.dict(os.environ, env, clear=True),
            pytest.raises(ValueError, match="at least 32 characters"),
        ):
            Settings(_env_file=None)

    def test_secret_key_is_generated_when_missing(self):
        """A missing secret key is replaced with a random one."""
        with patch.dict(os.environ, {"ENVIRONMENT": "development"}, clear=True):
            settings = Settings(_env_file=None)

        assert len(settings.secret_key) >= 32

    def test_development_defaults_database_url(self):
        """Development environment falls back to the local database."""
        with patch.dict(os.environ, {"ENVIRONMENT": "development"}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.database_url.startswith("postgresql+asyncpg://")
        assert settings.is_development is True


class TestSegmentationSettings:
    """Tests for contact segmentation settings."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.default_group_name == "Default Access"
        assert settings.max_distance_radius_km == 500.0
        assert settings.contact_search_limit == 100

    def test_radius_must_be_positive(self):
        with (
            patch.dict(os.environ, {"MAX_DISTANCE_RADIUS_KM": "0"}, clear=True),
            pytest.raises(ValueError, match="MAX_DISTANCE_RADIUS_KM must be positive"),
        ):
            Settings(_env_file=None)

    def test_default_group_name_is_trimmed(self):
        with patch.dict(os.environ, {"DEFAULT_GROUP_NAME": "  Everyone "}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.default_group_name == "Everyone"

    def test_blank_default_group_name_is_rejected(self):
        with (
            patch.dict(os.environ, {"DEFAULT_GROUP_NAME": "   "}, clear=True),
            pytest.raises(ValueError, match="DEFAULT_GROUP_NAME must not be empty"),
        ):
            Settings(_env_file=None)

    def test_log_level_is_uppercased(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "debug"}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.log_level == "DEBUG"
