"""Domain indexer (subgraph) API endpoints."""

import asyncio
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from errors import ValidationError
from listings.validation import normalize_address, is_chain_id
from subgraph import SubgraphError
from ..dependencies import get_subgraph
from ..errors import internal_error

router = APIRouter(
    prefix="/subgraph",
    tags=["Subgraph"]
)

@router.get("/domains")
async def owned_domains(
    owner: Optional[str] = Query(None),
    chain_id: Optional[str] = Query(None),
    subgraph=Depends(get_subgraph)
) -> Dict[str, Any]:
    """Domain tokens a wallet owns on one chain, for picking what to list."""
    details = []
    if not owner:
        details.append({'field': 'owner', 'message': 'Owner is required'})
    elif not normalize_address(owner):
        details.append({'field': 'owner', 'message': 'Invalid owner address format'})
    if not chain_id:
        details.append({'field': 'chain_id', 'message': 'Chain id is required'})
    elif not is_chain_id(chain_id):
        details.append({'field': 'chain_id', 'message': 'Invalid chain id format'})
    if details:
        raise ValidationError("Invalid domain lookup", details=details)

    if subgraph is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Domain lookups are not configured"
        )

    try:
        domains = await asyncio.to_thread(
            subgraph.fetch_owned_domains, normalize_address(owner), chain_id
        )
        return {'domains': domains}
    except SubgraphError as e:
        raise internal_error("fetch domains", e)
    except Exception as e:
        raise internal_error("look up domains", e)
