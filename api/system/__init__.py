"""System health endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Request

from database import get_store
from listings.models import ListingStatus
from pricing import utcnow
from ..errors import internal_error

router = APIRouter(
    tags=["System"]
)

@router.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    """Check that the record store answers queries."""
    try:
        store = await get_store()
        active = await store.listings.count({'status': ListingStatus.ACTIVE.value})
    except Exception as e:
        raise internal_error("check store health", e)
    return {
        'status': 'ok',
        'store': 'postgres' if store.pool else 'memory',
        'active_listings': active,
        'settlement_enabled': getattr(request.app.state, 'settlement', None) is not None,
        'time': utcnow().isoformat()
    }
