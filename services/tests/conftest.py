"""
Top-level test configuration for Workdesk.
"""

import os

# Ensure test-friendly defaults
os.environ.setdefault("WORKDESK_JSON_LOGS", "false")
os.environ.setdefault("WORKDESK_LOG_LEVEL", "DEBUG")
os.environ.setdefault("WORKDESK_AUTH__JWT_SECRET", "workdesk-test-secret-with-enough-length-for-hs256")
os.environ.setdefault("WORKDESK_PERMISSIONS__REFRESH_INTERVAL_SECONDS", "0")

import pytest  # noqa: E402

from workdesk.auth.default_roles import DEFAULT_ROLES  # noqa: E402
from workdesk.services.permission_cache import permission_cache  # noqa: E402


@pytest.fixture(autouse=True)
def default_permissions():
    """Load the default roles into the process-wide permission cache."""
    permission_cache.load(DEFAULT_ROLES)
    yield permission_cache
    permission_cache.reset()
