from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from core.cache import InMemoryCache
from schemas.cache import CacheStatsResponse, CacheValueResponse, SetValueRequest, SweepResponse

router = APIRouter(prefix="/v1/cache", tags=["cache"])


def get_cache(request: Request) -> InMemoryCache:
    """Cache instance owned by the running application."""
    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        raise HTTPException(status_code=500, detail="Cache não inicializado.")
    return cache


@router.get("/stats", response_model=CacheStatsResponse)
async def cache_stats(request: Request):
    cache = get_cache(request)
    return CacheStatsResponse(
        size=len(cache),
        default_ttl_seconds=cache.default_ttl,
        cleanup_interval_seconds=cache.cleanup_interval,
        sweeper_running=cache.sweeper_running,
    )


@router.post("/flush")
async def flush_cache(request: Request):
    get_cache(request).flush()
    return {"ok": True}


@router.post("/sweep", response_model=SweepResponse)
async def sweep_cache(request: Request):
    """Força um ciclo de varredura e retorna quantas entradas foram removidas."""
    return SweepResponse(evicted=get_cache(request).sweep())


@router.get("/keys/{key:path}", response_model=CacheValueResponse)
async def read_value(key: str, request: Request):
    value, found = get_cache(request).get(key)
    if not found:
        raise HTTPException(status_code=404, detail=f"key: '{key}' not found")
    return CacheValueResponse(key=key, value=value)


@router.put("/keys/{key:path}", response_model=CacheValueResponse)
async def write_value(key: str, body: SetValueRequest, request: Request):
    get_cache(request).set(key, body.value, body.ttl_seconds)
    return CacheValueResponse(key=key, value=body.value)


@router.delete("/keys/{key:path}")
async def delete_value(key: str, request: Request):
    # KeyNotFoundError is mapped to 404 by the app-level handler
    get_cache(request).delete(key)
    return {"ok": True, "key": key}
