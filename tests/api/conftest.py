"""Fixtures shared by the CatchTrack API tests: limiter reset and operator auth."""

import pytest

from src.api.middleware.rate_limit import limiter
from src.api.routers.auth import create_access_token


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Clear per-client counters so write endpoints never answer 429 mid-suite."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def auth_headers():
    """Bearer header for operator 7; audit rows record this id as the trigger."""
    token = create_access_token(data={"sub": "7"})
    return {"Authorization": f"Bearer {token}"}
