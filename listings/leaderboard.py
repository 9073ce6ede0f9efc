"""Ranked view of the active offers on a listing."""
from datetime import datetime
from typing import Any, Dict, Optional

from database import ASCENDING, DESCENDING
from offers.models import Offer, OfferStatus
from . import ListingManager
from .models import Price

async def get_leaderboard(
    listing_id: str,
    store=None,
    settings: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Rank a listing's active offers by price, earliest first on ties.

    Args:
        listing_id: Listing to rank offers for
        store: Optional record store
        settings: Optional settings dict, defaults to settings.conf
        limit: Maximum entries, capped at the configured leaderboard size
        now: Instant used for the listing's current price

    Returns:
        Dict containing:
            - listing_id
            - leaderboard: entries with 1-based ``rank`` and ``is_top_offer``
            - total_offers: number of active offers on the listing
            - highest_offer: the rank 1 entry or None
            - current_price: the listing's Dutch price at ``now``

    Raises:
        NotFoundError: If the listing does not exist
    """
    manager = ListingManager(store, settings)
    listing = await manager.get_listing(listing_id)

    size = manager.settings['leaderboard_size']
    limit = size if limit is None else max(1, min(limit, size))

    filter = {'listing_id': listing_id, 'status': OfferStatus.ACTIVE.value}
    records = await manager.store.offers.find(
        filter,
        sort=[('price_amount', DESCENDING), ('created_at', ASCENDING)],
        limit=limit
    )
    total = await manager.store.offers.count(filter)

    entries = []
    for rank, record in enumerate(records, start=1):
        offer = Offer.from_record(record)
        entries.append({
            'rank': rank,
            'offer_id': offer.id,
            'bidder': offer.bidder,
            'username': offer.username,
            'price': offer.price.model_dump(mode='json'),
            'created_at': offer.created_at.isoformat(),
            'is_top_offer': rank == 1
        })

    return {
        'listing_id': listing_id,
        'leaderboard': entries,
        'total_offers': total,
        'highest_offer': entries[0] if entries else None,
        'current_price': Price(
            amount=listing.current_price(now),
            currency=listing.currency
        ).model_dump(mode='json')
    }
