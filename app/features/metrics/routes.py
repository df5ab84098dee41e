"""
Operational metrics.
"""
from typing import Annotated
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.features.auth.dependencies import get_guard, require_permission
from app.features.auth.guard import AuthorizationGuard, InboundIdentity


router = APIRouter(tags=["metrics"])


class SessionStatsResponse(BaseModel):
    hits: int
    misses: int
    evictions: int
    issued: int
    invalidations: int
    size: int
    hit_rate: float


@router.get("/sessions", response_model=SessionStatsResponse)
async def session_stats(
    identity: Annotated[InboundIdentity, Depends(require_permission("M_S"))],
    authorization: Annotated[AuthorizationGuard, Depends(get_guard)],
):
    """Counters of the bearer session store."""
    stats = authorization.store.stats()
    return SessionStatsResponse(
        hits=stats.hits,
        misses=stats.misses,
        evictions=stats.evictions,
        issued=stats.issued,
        invalidations=stats.invalidations,
        size=stats.size,
        hit_rate=stats.hit_rate,
    )
