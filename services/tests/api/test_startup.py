"""Tests for the startup settings check and its place in the lifespan."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI

from workdesk.api.app import lifespan
from workdesk.config import (
    DEFAULT_JWT_SECRET,
    AuthConfig,
    ConfigurationError,
    check_startup_settings,
    settings,
)


def _settings(secret=DEFAULT_JWT_SECRET, debug=False):
    return settings.model_copy(update={"debug": debug, "auth": AuthConfig(jwt_secret=secret)})


class TestCheckStartupSettings:
    def test_placeholder_secret_refused(self):
        with pytest.raises(ConfigurationError, match="WORKDESK_AUTH__JWT_SECRET"):
            check_startup_settings(_settings())

    def test_blank_secret_refused(self):
        with pytest.raises(ConfigurationError):
            check_startup_settings(_settings(secret="   "))

    def test_placeholder_allowed_in_debug(self):
        check_startup_settings(_settings(debug=True))

    def test_configured_secret_accepted(self):
        check_startup_settings(_settings(secret="a-real-deployment-secret"))

    def test_default_auth_config_uses_placeholder(self):
        assert AuthConfig().jwt_secret == DEFAULT_JWT_SECRET


class TestLifespan:
    @patch("workdesk.api.app.init_db", new_callable=AsyncMock)
    @patch("workdesk.api.app.configure_logging")
    async def test_refuses_to_start_with_placeholder_secret(self, mock_logging, mock_init_db):
        with patch("workdesk.api.app.settings", _settings()):
            with pytest.raises(ConfigurationError):
                async with lifespan(FastAPI()):
                    pass

        mock_init_db.assert_not_awaited()
