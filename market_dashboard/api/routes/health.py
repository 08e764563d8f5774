"""
Health, cache, golden dataset and provider circuit routes
"""

from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException

from market_dashboard.api.dependencies import Container, get_cache_service, get_golden_dataset
from market_dashboard.models.requests import GoldenImportRequest
from market_dashboard.services.cache_service import TieredCacheService
from market_dashboard.services.golden_dataset import GoldenDatasetService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
async def root(container: Container):
    """API information"""
    settings = container.settings
    prefix = settings.api_prefix
    return {
        "service": settings.app_name,
        "version": settings.version,
        "status": "ready",
        "endpoints": [
            f"{prefix}/market/leverage",
            f"{prefix}/market/funding",
            f"{prefix}/market/etf-flows",
            f"{prefix}/market/liquidity",
            f"{prefix}/market/treasury",
            f"{prefix}/rsi",
            f"{prefix}/rsi/bulk",
            f"{prefix}/rsi/summary",
        ],
    }

@router.get("/health")
async def health_check(container: Container):
    """Health check endpoint; a missing Redis degrades but never fails it"""
    cache_health = await container.cache.health_check()
    golden_stats = await container.golden.get_stats()
    circuits = container.breakers.get_status()
    open_circuits = [name for name, status in circuits.items() if status["state"] != "closed"]

    return {
        "status": "healthy" if cache_health["status"] == "healthy" and not open_circuits else "degraded",
        "cache": cache_health,
        "golden": {
            "entries": golden_stats["totalEntries"],
            "tiers": golden_stats["tierBreakdown"],
        },
        "openCircuits": open_circuits,
        "timestamp": container.now_iso()
    }

# ===========================
# Cache
# ===========================

@router.get("/cache/stats")
async def cache_stats(container: Container):
    """Cache, golden dataset and rate limiter statistics"""
    try:
        stats = await container.cache.get_comprehensive_stats()
    except Exception as e:
        logger.error(f"Cache stats failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    stats["rateLimits"] = container.limiters.get_stats()
    return {
        "status": "success",
        "stats": stats,
        "timestamp": container.now_iso()
    }

@router.post("/cache/metrics/reset")
async def reset_cache_metrics(
    cache: Annotated[TieredCacheService, Depends(get_cache_service)]
):
    cache.reset_metrics()
    return {"status": "success", "message": "Cache metrics reset"}

@router.delete("/cache")
async def flush_cache(
    cache: Annotated[TieredCacheService, Depends(get_cache_service)],
    pattern: str = "*"
):
    """Delete cache keys matching a glob pattern (default: everything)"""
    removed = await cache.flush(pattern)
    return {"status": "success", "pattern": pattern, "removed": removed}

# ===========================
# Golden dataset
# ===========================

@router.get("/golden")
async def golden_entries(
    golden: Annotated[GoldenDatasetService, Depends(get_golden_dataset)]
):
    return {"status": "success", "entries": await golden.get_all()}

@router.get("/golden/stats")
async def golden_stats(
    golden: Annotated[GoldenDatasetService, Depends(get_golden_dataset)]
):
    return {"status": "success", "stats": await golden.get_stats()}

@router.post("/golden/cleanup")
async def golden_cleanup(
    golden: Annotated[GoldenDatasetService, Depends(get_golden_dataset)]
):
    """Demote or remove expired entries now instead of waiting for the sweep"""
    changed = await golden.cleanup()
    return {"status": "success", "changed": changed, "stats": await golden.get_stats()}

@router.get("/golden/export")
async def golden_export(
    golden: Annotated[GoldenDatasetService, Depends(get_golden_dataset)]
):
    return await golden.export()

@router.post("/golden/import")
async def golden_import(
    request: GoldenImportRequest,
    golden: Annotated[GoldenDatasetService, Depends(get_golden_dataset)]
):
    """Replace the golden dataset with a previous export"""
    imported = await golden.import_dataset(request.model_dump())
    if not imported:
        raise HTTPException(status_code=400, detail="Golden dataset import failed")
    return {"status": "success", "entries": len(request.dataset)}

# ===========================
# Provider circuits
# ===========================

@router.get("/providers/circuits")
async def provider_circuits(container: Container):
    return {"status": "success", "circuits": container.breakers.get_status()}

@router.post("/providers/circuits/{name}/reset")
async def reset_provider_circuit(name: str, container: Container):
    if not container.breakers.reset(name):
        raise HTTPException(status_code=404, detail=f"No circuit for provider '{name}'")
    logger.info(f"Circuit for {name} reset manually")
    return {"status": "success", "provider": name}
