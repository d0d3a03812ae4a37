"""Identity fixtures for route tests.

Each fixture installs ``app.dependency_overrides`` for the identity
providers; the ``app_client`` fixture clears them on teardown.
"""

from __future__ import annotations

import pytest

from echo_garden.api.dependencies import get_current_profile, get_viewer, require_admin
from echo_garden.api.main import app
from echo_garden.core.models.profiles import Profile
from tests.factories.profiles import ProfileFactory


@pytest.fixture
def member() -> Profile:
    """A registered, non-admin caller."""
    profile = Profile(**ProfileFactory.build())
    app.dependency_overrides[get_viewer] = lambda: profile
    app.dependency_overrides[get_current_profile] = lambda: profile
    return profile


@pytest.fixture
def admin(member: Profile) -> Profile:
    """A registered caller that passes the admin check."""
    app.dependency_overrides[require_admin] = lambda: member
    return member
