"""Offers API endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Security, status
from pydantic import BaseModel

from auth import get_current_user
from errors import MarketError, ForbiddenError
from listings.models import Price
from listings.validation import same_address
from offers import OfferManager
from offers.acceptance import AcceptanceManager
from ..dependencies import get_settlement
from ..errors import internal_error

router = APIRouter(
    prefix="/offers",
    tags=["Offers"]
)

class PlaceOfferRequest(BaseModel):
    """Request model for placing an offer."""
    listing_id: str
    bidder: Optional[str] = None
    username: Optional[str] = None
    price: Price

class AcceptRequest(BaseModel):
    """Request model for accepting an offer."""
    listing_id: str

@router.get("")
async def search_offers(
    listing_id: Optional[str] = Query(None),
    bidder: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50),
    offset: int = Query(0)
) -> Dict[str, Any]:
    """Search offers, highest price first."""
    try:
        result = await OfferManager().search_offers(
            listing_id=listing_id,
            bidder=bidder,
            status=status,
            limit=limit,
            offset=offset
        )
        return {
            'offers': [offer.to_dict() for offer in result['offers']],
            'pagination': result['pagination']
        }
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("search offers", e)

@router.get("/{offer_id}")
async def get_offer(offer_id: str) -> Dict[str, Any]:
    """Get a single offer."""
    try:
        offer = await OfferManager().get_offer(offer_id)
        return offer.to_dict()
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("get offer", e)

@router.post("", status_code=status.HTTP_201_CREATED)
async def place_offer(
    request: PlaceOfferRequest,
    current_user: str = Security(get_current_user),
    settlement=Depends(get_settlement)
) -> Dict[str, Any]:
    """Place an offer as the authenticated bidder."""
    if request.bidder and not same_address(request.bidder, current_user):
        raise ForbiddenError("Bidder does not match the authenticated address")
    try:
        offer = await OfferManager(settlement=settlement).place_offer(
            request.listing_id,
            current_user,
            request.price,
            username=request.username
        )
        return offer.to_dict()
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("place offer", e)

@router.post("/{offer_id}/cancel")
async def cancel_offer(
    offer_id: str,
    current_user: str = Security(get_current_user),
    settlement=Depends(get_settlement)
) -> Dict[str, Any]:
    """Cancel one of the authenticated bidder's active offers."""
    try:
        offer = await OfferManager(settlement=settlement).cancel_offer(offer_id, current_user)
        return offer.to_dict()
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("cancel offer", e)

@router.post("/{offer_id}/accept")
async def accept_offer(
    offer_id: str,
    request: AcceptRequest,
    current_user: str = Security(get_current_user),
    settlement=Depends(get_settlement)
) -> Dict[str, Any]:
    """Accept an offer on one of the seller's listings."""
    try:
        result = await AcceptanceManager(settlement=settlement).accept_offer(
            request.listing_id, offer_id, current_user
        )
        return result.to_dict()
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("accept offer", e)
