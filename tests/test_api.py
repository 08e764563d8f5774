from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from market_dashboard.api.dependencies import build_container
from market_dashboard.main import create_app
from market_dashboard.services.leverage import derive_leverage
from market_dashboard.services.orchestrator import SYNTHETIC_WARNING
from tests.helpers.fakes import T0, FakeClock, FakeRedis, make_settings, offline_transport


@pytest.fixture
def client(tmp_path):
    container = build_container(
        make_settings(tmp_path),
        clock=FakeClock(),
        transport=offline_transport(),
        redis_client=FakeRedis(down=True),
    )
    with TestClient(create_app(container=container)) as test_client:
        yield test_client


def golden_leverage_entry():
    timestamp = datetime.fromtimestamp(T0, tz=timezone.utc)
    payload = derive_leverage(
        [{"exchange": "okx", "oi_usd": 5e9, "change_24h": 0.5, "change_7d": 2.0}],
        [{"exchange": "okx", "funding_rate": 0.0001}],
        market_cap_billions=1900, coverage_share=0.6,
        data_source="live", providers=["okx"], calculated_at=timestamp.isoformat(),
    )
    return {
        "dataType": "leverage_btc",
        "data": payload.model_dump(mode="json", by_alias=True),
        "timestamp": timestamp.isoformat(),
        "tier": "fresh",
        "expiresAt": datetime.fromtimestamp(T0 + 300, tz=timezone.utc).isoformat(),
        "dataPoints": 12,
    }


# ===========================
# Service info and health
# ===========================

def test_root_lists_endpoints(client):
    body = client.get("/").json()
    assert body["status"] == "ready"
    assert "/api/rsi/bulk" in body["endpoints"]


def test_health_is_degraded_without_redis(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["cache"]["type"] == "memory"
    assert body["golden"]["entries"] == 0
    assert body["timestamp"] == datetime.fromtimestamp(T0, tz=timezone.utc).isoformat()


# ===========================
# Market endpoints
# ===========================

@pytest.mark.parametrize("path", [
    "/api/market/leverage",
    "/api/market/funding?exchange=bybit",
    "/api/market/etf-flows?range=7D",
    "/api/market/liquidity?timeframe=90D",
    "/api/market/treasury?series=DGS30&timeframe=7D",
    "/api/rsi?symbol=eth&period=21&timeframe=30D",
])
def test_market_endpoints_fall_back_to_synthetic(client, path):
    response = client.get(path)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["metadata"]["dataSource"] == "synthetic"
    assert body["metadata"]["fresh"] is False
    assert body["warning"] == SYNTHETIC_WARNING


def test_rsi_symbol_is_normalized(client):
    body = client.get("/api/rsi?symbol=eth").json()
    assert body["data"]["symbol"] == "ETH"


def test_rsi_bulk_defaults(client):
    body = client.get("/api/rsi/bulk").json()
    assert set(body["data"]["results"]) == {"BTC", "ETH", "SOL"}
    assert set(body["data"]["results"]["BTC"]) == {"14"}
    assert body["data"]["timeframe"] == "7D"


def test_rsi_bulk_and_summary(client):
    bulk = client.get("/api/rsi/bulk?symbols=BTC,ETH&periods=14,21").json()
    assert bulk["success"] is True
    assert set(bulk["data"]["results"]) == {"BTC", "ETH"}

    summary = client.get("/api/rsi/summary").json()
    assert set(summary["data"]["symbols"]) == {"BTC", "ETH", "SOL"}


@pytest.mark.parametrize("path,fragment", [
    ("/api/market/liquidity?timeframe=2W", "Invalid timeframe '2W'"),
    ("/api/market/etf-flows?range=5Y", "Invalid range '5Y'"),
    ("/api/market/funding?exchange=kraken", "Invalid exchange 'kraken'"),
    ("/api/market/treasury?series=DGS5", "Invalid series 'DGS5'"),
    ("/api/rsi?symbol=BTC&period=1", "Invalid period 1"),
    ("/api/rsi?symbol=B$C", "Invalid symbol"),
    ("/api/rsi/bulk?periods=14,abc", "Invalid period 'abc'"),
])
def test_invalid_parameters_are_rejected(client, path, fragment):
    response = client.get(path)
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert fragment in body["message"]


def test_non_integer_period_uses_error_shape(client):
    response = client.get("/api/rsi?period=fourteen")
    assert response.status_code == 400
    assert response.json()["success"] is False


# ===========================
# Cache and golden dataset
# ===========================

def test_cache_stats_include_rate_limits(client):
    client.get("/api/market/leverage")
    body = client.get("/cache/stats").json()
    assert body["status"] == "success"
    assert body["stats"]["tiers"]["realtime"] == 60
    assert "rateLimits" in body["stats"]

    assert client.post("/cache/metrics/reset").json()["status"] == "success"
    assert client.delete("/cache").json()["removed"] >= 1


def test_golden_import_is_served_and_exported(client):
    imported = client.post("/golden/import", json={"version": "1.0.0", "dataset": {"leverage_btc": golden_leverage_entry()}})
    assert imported.status_code == 200
    assert imported.json()["entries"] == 1

    body = client.get("/api/market/leverage").json()
    assert body["metadata"]["servedFrom"] == "golden"
    assert body["metadata"]["goldenTier"] == "fresh"
    assert "warning" not in body

    exported = client.get("/golden/export").json()
    assert set(exported["dataset"]) == {"leverage_btc"}
    assert exported["stats"]["totalEntries"] == 1
    assert client.get("/golden/stats").json()["stats"]["tierBreakdown"]["fresh"] == 1
    assert client.post("/golden/cleanup").json()["changed"] == 0


def test_golden_import_requires_dataset(client):
    response = client.post("/golden/import", json={"version": "1.0.0"})
    assert response.status_code == 400
    assert response.json()["success"] is False


# ===========================
# Provider circuits
# ===========================

def test_circuit_endpoints(client):
    client.get("/api/market/funding?exchange=okx")
    circuits = client.get("/providers/circuits").json()["circuits"]
    assert "okx" in circuits

    assert client.post("/providers/circuits/okx/reset").status_code == 200
    missing = client.post("/providers/circuits/nowhere/reset")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "No circuit for provider 'nowhere'"}


def test_cache_stats_timestamp_uses_service_clock(client):
    body = client.get("/cache/stats").json()
    assert body["timestamp"] == "2025-10-09T08:53:20+00:00"
