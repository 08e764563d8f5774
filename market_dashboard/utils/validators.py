import re
from typing import List, Optional

SYMBOL_PATTERN = re.compile(r'^[A-Za-z0-9]{2,10}$')

RSI_TIMEFRAMES = ("1D", "7D", "30D", "90D")
LIQUIDITY_TIMEFRAMES = ("7D", "30D", "90D", "1Y")
ETF_RANGES = ("7D", "30D", "90D", "1Y")
TREASURY_SERIES = ("DGS2", "DGS10", "DGS30", "DFF")
FUNDING_EXCHANGES = ("all", "binance", "bybit", "okx")
ETF_TICKERS = ("IBIT", "FBTC", "BITB", "ARKB", "BTCO", "EZBC", "BRRR", "HODL", "BTCW")

MIN_RSI_PERIOD = 2
MAX_RSI_PERIOD = 200
MAX_BULK_SYMBOLS = 10
MAX_BULK_PERIODS = 5
DEFAULT_RSI_SYMBOLS = ("BTC", "ETH", "SOL")
DEFAULT_RSI_PERIODS = (14,)

def _choice(value: str, allowed, label: str, normalize=str.upper) -> str:
    normalized = normalize(value.strip()) if value else value
    if normalized not in allowed:
        raise ValueError(f"Invalid {label} '{value}'. Valid options: {', '.join(allowed)}")
    return normalized

def validate_symbol(symbol: Optional[str]) -> str:
    """Ticker symbols are 2-10 alphanumerics, returned upper-case"""
    if not symbol:
        raise ValueError("Symbol is required")
    if not SYMBOL_PATTERN.match(symbol.strip()):
        raise ValueError(f"Invalid symbol '{symbol}': expected 2-10 letters or digits")
    return symbol.strip().upper()

def validate_rsi_period(period: int) -> int:
    if not MIN_RSI_PERIOD <= period <= MAX_RSI_PERIOD:
        raise ValueError(f"Invalid period {period}: must be between {MIN_RSI_PERIOD} and {MAX_RSI_PERIOD}")
    return period

def validate_rsi_timeframe(timeframe: str) -> str:
    return _choice(timeframe, RSI_TIMEFRAMES, "timeframe")

def validate_liquidity_timeframe(timeframe: str) -> str:
    return _choice(timeframe, LIQUIDITY_TIMEFRAMES, "timeframe")

def validate_etf_range(date_range: str) -> str:
    return _choice(date_range, ETF_RANGES, "range")

def validate_treasury_series(series_id: str) -> str:
    return _choice(series_id, TREASURY_SERIES, "series")

def validate_exchange(exchange: str) -> str:
    return _choice(exchange or "all", FUNDING_EXCHANGES, "exchange", normalize=str.lower)

def validate_etf_ticker(ticker: str) -> str:
    return _choice(ticker, ETF_TICKERS, "ETF")

def parse_symbol_list(raw: Optional[str], default: List[str]) -> List[str]:
    """Comma separated symbols, de-duplicated in order"""
    if not raw:
        return list(default)
    symbols: List[str] = []
    for part in raw.split(","):
        if part.strip():
            symbol = validate_symbol(part)
            if symbol not in symbols:
                symbols.append(symbol)
    if not symbols:
        raise ValueError("At least one symbol is required")
    if len(symbols) > MAX_BULK_SYMBOLS:
        raise ValueError(f"Too many symbols: at most {MAX_BULK_SYMBOLS} per request")
    return symbols

def parse_period_list(raw: Optional[str], default: List[int]) -> List[int]:
    if not raw:
        return list(default)
    periods: List[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            raise ValueError(f"Invalid period '{part}': must be an integer")
        period = validate_rsi_period(int(part))
        if period not in periods:
            periods.append(period)
    if not periods:
        raise ValueError("At least one period is required")
    if len(periods) > MAX_BULK_PERIODS:
        raise ValueError(f"Too many periods: at most {MAX_BULK_PERIODS} per request")
    return periods
