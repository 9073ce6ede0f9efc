"""Seller acceptance of an offer.

Acceptance touches three kinds of record and the store only guarantees atomic
single-statement updates, so the writes happen in a fixed order, each guarded
on the expected prior status:

1. the chosen offer ACTIVE -> ACCEPTED
2. every other active offer on the listing ACTIVE -> REJECTED
3. the listing ACTIVE -> SOLD

If step 3 loses a race (another acceptance, a delist or the sweeper got there
first) the offer from step 1 is moved off ACCEPTED again before the error is
raised. Settlement runs only after all three writes succeeded.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from config import settings_conf
from database import get_store
from errors import ForbiddenError, InvalidStateError, NotFoundError, WindowError
from listings import ListingManager
from listings.models import ListingStatus
from listings.validation import same_address
from pricing import utcnow, ensure_utc
from settlement import best_effort
from . import OfferManager
from .models import OfferStatus, AcceptanceResult

logger = logging.getLogger(__name__)

class AcceptanceManager:
    """Runs the accept-offer protocol."""

    def __init__(
        self,
        store=None,
        settlement=None,
        settings: Optional[Dict[str, Any]] = None
    ) -> None:
        self.store = store
        self.settlement = settlement
        self.settings = settings or settings_conf
        self.listings = ListingManager(store, self.settings)
        self.offers = OfferManager(store, settlement, self.settings)

    async def ensure_store(self):
        """Ensure we have a record store."""
        if not self.store:
            self.store = await get_store()
        self.listings.store = self.store
        await self.offers.ensure_store()

    async def accept_offer(
        self,
        listing_id: str,
        offer_id: str,
        requester: str,
        now: Optional[datetime] = None
    ) -> AcceptanceResult:
        """Accept ``offer_id`` on ``listing_id`` on behalf of the seller.

        Returns:
            The accepted offer, the sold listing and the settlement transaction
            hash when settlement succeeded

        Raises:
            NotFoundError: If the listing or offer does not exist, or the offer
                belongs to another listing
            ForbiddenError: If requester is not the seller
            InvalidStateError: If the listing or offer is not active, or a
                concurrent change won the race
            WindowError: If the auction has ended
        """
        await self.ensure_store()
        now = ensure_utc(now) if now else utcnow()

        listing = await self.listings.get_listing(listing_id)
        if not same_address(listing.seller, requester):
            raise ForbiddenError("Only the seller can accept offers")
        if listing.status != ListingStatus.ACTIVE:
            raise InvalidStateError("Listing is not active")
        if now >= listing.end_at:
            raise WindowError("Auction has expired")

        offer = await self.offers.get_offer(offer_id)
        if offer.listing_id != listing.id:
            raise NotFoundError("Offer not found for this listing")
        if offer.status != OfferStatus.ACTIVE:
            raise InvalidStateError("Offer is not active")

        if not await self.offers.mark_accepted(offer.id, now):
            raise InvalidStateError("Offer is no longer active")

        rejected = await self.offers.reject_others(listing.id, offer.id, now)

        if not await self.listings.mark_sold(listing.id, offer.bidder, offer.price, now):
            current = await self.listings.get_listing(listing.id)
            fallback = (
                OfferStatus.EXPIRED if current.status == ListingStatus.EXPIRED
                else OfferStatus.REJECTED
            )
            await self.offers.revoke_acceptance(offer.id, fallback, now)
            logger.warning(
                f"Listing {listing.id} became {current.status.value} while accepting "
                f"offer {offer.id}, offer moved to {fallback.value}"
            )
            raise InvalidStateError("Listing is not active")

        logger.info(
            f"Accepted offer {offer.id} on listing {listing.id} from {offer.bidder}, "
            f"rejected {rejected} other offer(s)"
        )

        transaction_hash = None
        if self.settlement and offer.settlement_offer_id:
            result = await best_effort(
                f"Settlement accept for offer {offer.id}",
                self.settlement.accept_offer,
                offer.settlement_offer_id,
                timeout=self.settings['settlement_timeout_seconds']
            )
            if result and result.get('transaction_hash'):
                transaction_hash = result['transaction_hash']
                await self.offers.record_settlement(offer.id, transaction_hash)

        return AcceptanceResult(
            accepted_offer=await self.offers.get_offer(offer.id),
            listing=await self.listings.get_listing(listing.id),
            transaction_hash=transaction_hash
        )
