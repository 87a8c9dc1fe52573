from __future__ import annotations

import pytest

from gdprkv.core.privacy.models import Policy
from gdprkv.core.service import GdprKvService

from .helpers.fakes import ManualClock


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def policies():
    return [
        Policy(purpose="FULFILLMENT", retention_days=30, description="Order fulfilment"),
        Policy(purpose="MARKETING", retention_days=7, description="Marketing"),
    ]


@pytest.fixture
def service(clock, policies):
    """
    In-memory service with a manual clock and two seeded policies.
    """
    return GdprKvService.in_memory(policies=policies, clock=clock)
