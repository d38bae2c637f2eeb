from __future__ import annotations

import pytest
from django.core.cache import cache
from django.test import Client


@pytest.fixture
def api_client() -> Client:
    return Client()


@pytest.fixture(autouse=True)
def clear_route_cache() -> None:
    cache.clear()
