"""
Market data routes: leverage, funding, ETF flows, liquidity and treasury
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from market_dashboard.api.dependencies import get_etf_flows, get_funding, get_leverage, get_liquidity
from market_dashboard.api.errors import bad_request
from market_dashboard.models.requests import EtfFlowsRequest, FundingRequest, TreasuryRequest
from market_dashboard.services.etf_flows import EtfFlowsOrchestrator
from market_dashboard.services.funding import FundingOrchestrator
from market_dashboard.services.leverage import LeverageOrchestrator
from market_dashboard.services.liquidity import LiquidityOrchestrator
from market_dashboard.utils import validators

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/market")


@router.get("/leverage")
async def leverage_state(
    leverage: Annotated[LeverageOrchestrator, Depends(get_leverage)]
):
    """BTC leverage regime from open interest and funding"""
    try:
        response = await leverage.get_leverage_state()
        return response.to_response()
    except Exception as e:
        logger.error(f"Leverage state failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/funding")
async def funding_rates(
    funding: Annotated[FundingOrchestrator, Depends(get_funding)],
    exchange: str = "all",
    symbol: Optional[str] = None,
):
    """Perpetual funding rates, optionally for one exchange and/or asset"""
    try:
        params = FundingRequest(exchange=exchange, symbol=symbol)
    except ValidationError as e:
        raise bad_request(e)

    try:
        response = await funding.get_funding_rates(params.exchange, params.symbol)
        return response.to_response()
    except Exception as e:
        logger.error(f"Funding rates failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/etf-flows")
async def etf_flows(
    flows: Annotated[EtfFlowsOrchestrator, Depends(get_etf_flows)],
    date_range: Annotated[str, Query(alias="range")] = "30D",
    etf: Optional[str] = None,
):
    """Estimated spot BTC ETF flows"""
    try:
        params = EtfFlowsRequest(date_range=date_range, etf=etf)
    except ValidationError as e:
        raise bad_request(e)

    try:
        response = await flows.get_etf_flows(params.date_range, params.etf)
        return response.to_response()
    except Exception as e:
        logger.error(f"ETF flows failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/liquidity")
async def liquidity_pulse(
    liquidity: Annotated[LiquidityOrchestrator, Depends(get_liquidity)],
    timeframe: str = "30D",
):
    """Liquidity pulse from the 2-year treasury yield"""
    try:
        timeframe = validators.validate_liquidity_timeframe(timeframe)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        response = await liquidity.get_liquidity_pulse(timeframe)
        return response.to_response()
    except Exception as e:
        logger.error(f"Liquidity pulse failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/treasury")
async def treasury_yields(
    liquidity: Annotated[LiquidityOrchestrator, Depends(get_liquidity)],
    series: str = "DGS2",
    timeframe: str = "30D",
):
    """Treasury yield observations for one FRED series"""
    try:
        params = TreasuryRequest(series_id=series, timeframe=timeframe)
    except ValidationError as e:
        raise bad_request(e)

    try:
        response = await liquidity.get_treasury_yields(params.series_id, params.timeframe)
        return response.to_response()
    except Exception as e:
        logger.error(f"Treasury yields failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
