from __future__ import annotations

from typing import Callable

import pytest

from gallery_builder.config import Settings
from gallery_builder.definitions import ItemDefinition
from helpers import FakeFetcher, make_definition


@pytest.fixture
def settings() -> Settings:
    cfg = Settings()
    cfg.fetch.max_concurrency = 4
    return cfg


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def definition_factory() -> Callable[..., ItemDefinition]:
    return make_definition
