"""Listings API endpoints."""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Security, status
from pydantic import BaseModel

from auth import get_current_user
from errors import MarketError, ForbiddenError
from listings import ListingManager
from listings.leaderboard import get_leaderboard
from listings.models import AssetRef, Price
from listings.validation import same_address
from offers import OfferManager
from offers.acceptance import AcceptanceManager
from pricing import price_curve, utcnow
from ..dependencies import get_settlement
from ..errors import internal_error

router = APIRouter(
    prefix="/listings",
    tags=["Listings"]
)

# Model definitions
class CreateListingRequest(BaseModel):
    """Request model for creating a listing."""
    seller: Optional[str] = None
    domain: Optional[str] = None
    chain_id: str
    token_contract: str
    token_id: str
    start_price: Price
    reserve_price: Price
    start_at: Optional[datetime] = None
    end_at: datetime
    order_id: Optional[str] = None

class AcceptOfferRequest(BaseModel):
    """Request model for accepting an offer on a listing."""
    offer_id: str

""" Public Endpoints - No Authentication Required """
@router.get("")
async def search_listings(
    status: Optional[str] = Query(None),
    seller: Optional[str] = Query(None),
    limit: int = Query(20),
    offset: int = Query(0),
    include_offers: bool = Query(False)
) -> Dict[str, Any]:
    """Search listings, newest first."""
    try:
        now = utcnow()
        result = await ListingManager().search_listings(
            status=status,
            seller=seller,
            limit=limit,
            offset=offset
        )
        listings = []
        offers = OfferManager()
        for listing in result['listings']:
            entry = listing.to_dict(now)
            if include_offers:
                found = await offers.listing_offers(listing.id)
                entry['offers'] = [offer.to_dict() for offer in found]
            listings.append(entry)
        return {'listings': listings, 'pagination': result['pagination']}
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("search listings", e)

@router.get("/{listing_id}")
async def get_listing(listing_id: str) -> Dict[str, Any]:
    """Get a listing with its current price and phase."""
    try:
        listing = await ListingManager().get_listing(listing_id)
        return listing.to_dict()
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("get listing", e)

@router.get("/{listing_id}/price-curve")
async def get_price_curve(
    listing_id: str,
    points: int = Query(21, ge=2, le=200)
) -> Dict[str, Any]:
    """Sampled Dutch price schedule of a listing."""
    try:
        listing = await ListingManager().get_listing(listing_id)
        samples = price_curve(
            listing.start_price.amount,
            listing.reserve_price.amount,
            listing.start_at,
            listing.end_at,
            points
        )
        return {
            'listing_id': listing.id,
            'currency': listing.currency,
            'points': [
                {
                    'progress': sample['progress'],
                    'at': sample['at'].isoformat(),
                    'price': str(sample['price'])
                }
                for sample in samples
            ]
        }
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("build price curve", e)

@router.get("/{listing_id}/leaderboard")
async def leaderboard(
    listing_id: str,
    limit: Optional[int] = Query(None, ge=1)
) -> Dict[str, Any]:
    """Active offers on a listing ranked by price."""
    try:
        return await get_leaderboard(listing_id, limit=limit)
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("build leaderboard", e)

""" Protected Endpoints - Authentication Required """
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_listing(
    request: CreateListingRequest,
    current_user: str = Security(get_current_user)
) -> Dict[str, Any]:
    """Create a Dutch auction listing for the authenticated seller."""
    if request.seller and not same_address(request.seller, current_user):
        raise ForbiddenError("Seller does not match the authenticated address")
    try:
        listing = await ListingManager().create_listing(
            seller=current_user,
            asset=AssetRef(
                chain_id=request.chain_id,
                token_contract=request.token_contract,
                token_id=request.token_id
            ),
            start_price=request.start_price,
            reserve_price=request.reserve_price,
            start_at=request.start_at or utcnow(),
            end_at=request.end_at,
            domain=request.domain,
            order_id=request.order_id
        )
        return listing.to_dict()
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("create listing", e)

@router.post("/{listing_id}/delist")
async def delist(
    listing_id: str,
    current_user: str = Security(get_current_user)
) -> Dict[str, Any]:
    """Cancel an active listing."""
    try:
        listing = await ListingManager().delist(listing_id, current_user)
        return listing.to_dict()
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("delist listing", e)

@router.post("/{listing_id}/accept")
async def accept_offer(
    listing_id: str,
    request: AcceptOfferRequest,
    current_user: str = Security(get_current_user),
    settlement=Depends(get_settlement)
) -> Dict[str, Any]:
    """Accept an offer on one of the seller's listings."""
    try:
        result = await AcceptanceManager(settlement=settlement).accept_offer(
            listing_id, request.offer_id, current_user
        )
        return result.to_dict()
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("accept offer", e)
