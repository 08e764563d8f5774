import pytest

from market_dashboard.services.cache_service import TieredCacheService
from market_dashboard.services.golden_dataset import GoldenDatasetService
from market_dashboard.services.synthetic import SyntheticMarketData
from market_dashboard.utils.cache import KeyValueStore
from tests.helpers.fakes import FakeClock, make_settings


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def store(settings, clock):
    return KeyValueStore(settings, clock=clock)


@pytest.fixture
def golden(settings, clock):
    return GoldenDatasetService(settings, clock=clock)


@pytest.fixture
def cache(store, settings, golden):
    return TieredCacheService(store, settings, golden=golden)


@pytest.fixture
def synthetic(clock):
    return SyntheticMarketData(seed=7, clock=clock)
