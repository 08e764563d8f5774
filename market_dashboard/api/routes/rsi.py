"""
RSI routes
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from market_dashboard.api.dependencies import get_rsi
from market_dashboard.api.errors import bad_request
from market_dashboard.models.requests import RsiBulkRequest, RsiRequest
from market_dashboard.services.rsi import RsiOrchestrator
from market_dashboard.utils import validators

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rsi")

DEFAULT_SYMBOLS = list(validators.DEFAULT_RSI_SYMBOLS)


@router.get("")
async def rsi(
    orchestrator: Annotated[RsiOrchestrator, Depends(get_rsi)],
    symbol: str = "BTC",
    period: int = 14,
    timeframe: str = "7D",
):
    """RSI for one symbol"""
    try:
        params = RsiRequest(symbol=symbol, period=period, timeframe=timeframe)
    except ValidationError as e:
        raise bad_request(e)

    try:
        response = await orchestrator.get_rsi(params.symbol, params.period, params.timeframe)
        return response.to_response()
    except Exception as e:
        logger.error(f"RSI failed for {params.symbol}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/bulk")
async def rsi_bulk(
    orchestrator: Annotated[RsiOrchestrator, Depends(get_rsi)],
    symbols: Optional[str] = None,
    periods: Optional[str] = None,
    timeframe: str = "7D",
):
    """RSI for comma separated symbols x periods"""
    try:
        params = RsiBulkRequest(symbols=symbols, periods=periods, timeframe=timeframe)
    except ValidationError as e:
        raise bad_request(e)

    try:
        response = await orchestrator.get_bulk(params.symbols, params.periods, params.timeframe)
        return response.to_response()
    except Exception as e:
        logger.error(f"Bulk RSI failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/summary")
async def rsi_summary(
    orchestrator: Annotated[RsiOrchestrator, Depends(get_rsi)],
    symbols: Optional[str] = None,
):
    """Dashboard summary: 14-period RSI over 7 days"""
    try:
        symbol_list = validators.parse_symbol_list(symbols, default=DEFAULT_SYMBOLS)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        response = await orchestrator.get_summary(symbol_list)
        return response.to_response()
    except Exception as e:
        logger.error(f"RSI summary failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
