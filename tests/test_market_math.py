import pytest

from market_dashboard.models.payloads import LeverageState
from market_dashboard.services.etf_flows import build_etf_payload, estimate_flow, flow_performance
from market_dashboard.services.funding import build_funding_payload, filter_by_symbol
from market_dashboard.services.leverage import classify_leverage, derive_leverage, leverage_scores
from market_dashboard.services.liquidity import build_treasury_payload, calculate_liquidity_pulse
from market_dashboard.services.rsi import analyze_rsi, calculate_rsi, history_days, recommend, rsi_signals

NOW = "2025-10-09T08:53:20+00:00"


# ===========================
# Leverage
# ===========================

@pytest.mark.parametrize("funding_rate,score,oi_mcap,delta,expected", [
    (-0.015, 55, 0.0, 0.0, LeverageState.SHORTS_CROWDED),
    (0.025, 50, 3.0, 0.0, LeverageState.LONGS_CROWDED),
    (0.025, 50, 1.0, 12.0, LeverageState.LONGS_CROWDED),
    (0.001, 50, 0.0, 0.0, LeverageState.BALANCED),
    (-0.015, 65, 0.0, 0.0, LeverageState.BALANCED),
    (0.025, 50, 1.0, 5.0, LeverageState.BALANCED),
])
def test_classify_leverage(funding_rate, score, oi_mcap, delta, expected):
    assert classify_leverage(funding_rate, score, oi_mcap, delta) == expected


def test_leverage_scores_are_clamped():
    score = leverage_scores(oi_mcap_ratio=10.0, funding_rate=-0.05, oi_delta_7d=4.0)
    assert score.oi == 100
    assert score.funding == 0
    assert score.momentum == 60
    assert score.overall == round(0.4 * 100 + 0.35 * 0 + 0.25 * 60)


def test_derive_leverage_from_one_exchange():
    payload = derive_leverage(
        [{"exchange": "bybit", "oi_usd": 6e9, "change_24h": 2.0, "change_7d": None}],
        [{"exchange": "bybit", "funding_rate": 0.0001}],
        market_cap_billions=2000, coverage_share=0.6,
        data_source="live", providers=["bybit"], calculated_at=NOW,
    )
    assert payload.open_interest.total == 10.0
    assert payload.oi_mcap_ratio == 0.5
    # 7d change estimated from the 24h change
    assert payload.oi_delta_7d == 7.0
    assert payload.funding_rate.annualized == round(0.01 * 1095, 2)
    assert payload.state == LeverageState.BALANCED
    assert payload.color == "yellow"


def test_derive_leverage_defaults_without_data():
    payload = derive_leverage([], [], market_cap_billions=1900, coverage_share=0.6,
                              data_source="synthetic", providers=[], calculated_at=NOW)
    assert payload.open_interest.total == 15.0
    assert payload.funding_rate_8h == 0.01


# ===========================
# Funding
# ===========================

def funding_records():
    return [
        {"exchange": "binance", "symbol": "BTCUSDT", "asset": "BTC", "funding_rate": 0.0001},
        {"exchange": "okx", "symbol": "ETH-USDT-SWAP", "asset": "ETH", "funding_rate": -0.0002},
        {"exchange": "bybit", "symbol": "BTCUSDT", "asset": "BTC", "funding_rate": 0.0003},
    ]


def test_funding_payload_sorted_with_statistics():
    payload = build_funding_payload(funding_records(), exchange="all", data_source="live",
                                    providers=["binance", "bybit", "okx"], calculated_at=NOW)
    assert [r.funding_rate for r in payload.rates] == [0.0003, 0.0001, -0.0002]
    assert payload.statistics.total_pairs == 3
    assert payload.statistics.positive_rates == 2
    assert payload.statistics.negative_rates == 1
    assert payload.averages["BTC"] == pytest.approx(0.0002)


def test_funding_symbol_filter_recomputes_statistics():
    payload = build_funding_payload(funding_records(), exchange="all", data_source="live",
                                    providers=[], calculated_at=NOW)
    eth = filter_by_symbol(payload, "eth")
    assert [r.asset for r in eth.rates] == ["ETH"]
    assert eth.statistics.total_pairs == 1
    assert eth.statistics.highest_rate == -0.0002
    assert set(eth.averages) == {"ETH"}


# ===========================
# ETF flows
# ===========================

def test_estimate_flow_multipliers():
    up_small = {"open": 100.0, "close": 101.0, "volume": 1_000_000}
    up_big = {"open": 100.0, "close": 106.0, "volume": 1_000_000}
    down = {"open": 100.0, "close": 97.0, "volume": 1_000_000}

    assert estimate_flow(up_small, "polygon") == pytest.approx(1_000_000 * 101 * 0.10 / 1e6)
    assert estimate_flow(up_big, "polygon") == pytest.approx(1_000_000 * 106 * 0.20 / 1e6)
    assert estimate_flow(down, "polygon") == pytest.approx(-1_000_000 * 97 * 0.15 / 1e6)
    assert estimate_flow(down, "alpha_vantage") == pytest.approx(-1_000_000 * 97 * 0.12 / 1e6)


def test_flow_performance_thresholds():
    assert flow_performance(150) == "strong_inflow"
    assert flow_performance(10) == "inflow"
    assert flow_performance(-10) == "outflow"
    assert flow_performance(-150) == "strong_outflow"


def test_etf_payload_summary():
    bars = {
        "IBIT": [{"date": "2025-10-07", "open": 60.0, "close": 61.0, "volume": 50_000_000},
                 {"date": "2025-10-08", "open": 61.0, "close": 60.5, "volume": 40_000_000}],
        "FBTC": [{"date": "2025-10-08", "open": 90.0, "close": 91.0, "volume": 2_000_000}],
    }
    payload = build_etf_payload(bars, source="polygon", date_range="7D", etf_filter=None,
                                data_source="live", calculated_at=NOW)

    assert payload.data_points == 3
    assert payload.unique_etfs == 2
    assert payload.summary.net_flow == pytest.approx(
        payload.summary.total_inflows - payload.summary.total_outflows, abs=0.01)
    assert payload.summary.etf_breakdown[0].total_flow >= payload.summary.etf_breakdown[1].total_flow
    ibit = next(b for b in payload.summary.etf_breakdown if b.etf == "IBIT")
    assert ibit.provider == "BlackRock"
    assert ibit.current_price == 60.5


# ===========================
# Liquidity
# ===========================

def observations(values):
    return [{"date": f"2025-09-{i + 1:02d}", "yield": v} for i, v in enumerate(values)]


def test_liquidity_pulse_needs_seven_points():
    pulse = calculate_liquidity_pulse(observations([4.0] * 6))
    assert pulse.score == 50
    assert pulse.level == "neutral"
    assert pulse.signals == ["insufficient_data"]


def test_liquidity_pulse_flat_moderate_yields():
    pulse = calculate_liquidity_pulse(observations([3.5] * 30))
    assert pulse.score == 60
    assert pulse.level == "adequate"
    assert pulse.analysis.trend_7_day == 0.0


def test_liquidity_pulse_rising_high_yields_is_constrained():
    values = [5.0] * 29 + [5.8]
    pulse = calculate_liquidity_pulse(observations(values))
    # 50 - 25 (level) - 15 (7d trend) - 10 (30d trend)
    assert pulse.score == 0
    assert pulse.level == "constrained"
    assert "high_yields" in pulse.signals
    assert "rapid_tightening" in pulse.signals


def test_liquidity_pulse_falling_low_yields_is_abundant():
    values = [3.2] * 29 + [2.8]
    pulse = calculate_liquidity_pulse(observations(values))
    assert pulse.score == 95
    assert pulse.level == "abundant"


def test_treasury_change_in_basis_points():
    payload = build_treasury_payload("DGS10", "7D", observations([4.10, 4.05, 4.22]),
                                     data_source="live", provider="fred", calculated_at=NOW)
    assert payload.name == "10-Year Treasury Constant Maturity Rate"
    assert payload.change == 12.0
    assert payload.current.rate == 4.22
    assert payload.model_dump(by_alias=True)["observations"][0]["yield"] == 4.10


# ===========================
# RSI
# ===========================

def test_rsi_all_gains_is_100_and_all_losses_is_0():
    assert calculate_rsi([float(i) for i in range(1, 20)], 14)[-1] == 100.0
    assert calculate_rsi([float(i) for i in range(20, 1, -1)], 14)[-1] == 0.0


def test_rsi_wilder_reference_value():
    # Wilder's 14-period worked example
    closes = [44.34, 44.09, 44.15, 43.61, 44.33, 44.83, 45.10, 45.42, 45.84, 46.08,
              45.89, 46.03, 45.61, 46.28, 46.28, 46.00, 46.03, 46.41, 46.22, 45.64]
    values = calculate_rsi(closes, 14)
    assert len(values) == len(closes) - 14
    assert values[0] == pytest.approx(70.46, abs=0.05)
    assert values[-1] == pytest.approx(57.92, abs=0.3)


def test_rsi_requires_enough_closes():
    with pytest.raises(ValueError):
        calculate_rsi([1.0, 2.0, 3.0], 14)


@pytest.mark.parametrize("values,expected", [
    ([50, 60, 85], ("overbought", "strong")),
    ([50, 60, 77], ("overbought", "moderate")),
    ([50, 60, 71], ("overbought", "weak")),
    ([50, 40, 18], ("oversold", "strong")),
    ([50, 40, 24], ("oversold", "moderate")),
    ([50, 40, 29], ("oversold", "weak")),
    ([40, 40, 40, 40, 55], ("bullish_momentum", "weak")),
    ([60, 60, 60, 60, 45], ("bearish_momentum", "weak")),
    ([50, 51, 49, 50, 50], ("neutral", "neutral")),
])
def test_analyze_rsi(values, expected):
    assert analyze_rsi(values) == expected


def test_rsi_signal_counts_and_recommendation():
    signals = rsi_signals([85, 72, 50, 28, 15])
    assert (signals.overbought, signals.oversold, signals.neutral) == (2, 2, 1)
    assert (signals.extreme_overbought, signals.extreme_oversold) == (1, 1)

    assert recommend("oversold", "strong").action == "buy"
    assert recommend("overbought", "strong").confidence == "high"
    assert recommend("neutral", "neutral").action == "hold"


def test_history_days():
    assert history_days(14, "7D") == 42 + 15
    assert history_days(14, "90D") == 90 + 15
    assert history_days(200, "90D") == 801
