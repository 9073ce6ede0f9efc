"""Offers module for managing bids on Dutch auction listings.

This module handles offer placement, validation against the listing's reserve
floor and auction window, cancellation and searching. Each bidder may hold at
most one active offer per listing.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import settings_conf
from database import get_store, ASCENDING, DESCENDING, DatabaseError, DuplicateRecordError
from errors import (
    ValidationError, ForbiddenError, ConflictError, InvalidStateError, WindowError, NotFoundError
)
from listings import ListingManager
from listings.models import ListingStatus, Price
from listings.search import page_bounds, pagination
from listings.validation import normalize_address, same_address, is_username
from pricing import utcnow, ensure_utc
from settlement import best_effort
from .models import Offer, OfferStatus, AcceptanceResult

logger = logging.getLogger(__name__)

DUPLICATE_OFFER_MESSAGE = (
    "You already have an active offer for this listing. Cancel it first to place a new one."
)

class OfferManager:
    """Manages offer operations and state transitions."""

    def __init__(
        self,
        store=None,
        settlement=None,
        settings: Optional[Dict[str, Any]] = None
    ) -> None:
        """Initialize offer manager.

        Args:
            store: Optional record store. If not provided, will get from database module.
            settlement: Optional orderbook client, settlement calls are skipped without one
            settings: Optional settings dict, defaults to settings.conf
        """
        self.store = store
        self.settlement = settlement
        self.settings = settings or settings_conf
        self.listings = ListingManager(store, self.settings)

    async def ensure_store(self):
        """Ensure we have a record store."""
        if not self.store:
            self.store = await get_store()
        self.listings.store = self.store

    async def place_offer(
        self,
        listing_id: str,
        bidder: str,
        price: Price,
        username: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Offer:
        """Place an offer on a listing.

        Args:
            listing_id: Listing to bid on
            bidder: Bidder's address
            price: Offered price, in the listing's currency and at least the reserve
            username: Optional display name snapshot
            now: Optional current time, defaults to the wall clock

        Returns:
            The stored offer, with ``settlement_offer_id`` set when the
            orderbook API confirmed it

        Raises:
            ValidationError: If bidder, username, currency or amount is invalid
            NotFoundError: If the listing does not exist
            InvalidStateError: If the listing is not active
            WindowError: If the auction has not started or has ended
            ConflictError: If the bidder already has an active offer on the listing
        """
        await self.ensure_store()
        now = ensure_utc(now) if now else utcnow()

        errors = []
        if not normalize_address(bidder):
            errors.append({'field': 'bidder', 'message': 'Invalid bidder address format'})
        if username is not None and not is_username(username):
            errors.append({
                'field': 'username',
                'message': 'Username must be 1-32 letters, numbers, underscores or hyphens'
            })
        if errors:
            raise ValidationError("Invalid offer", details=errors)
        bidder = normalize_address(bidder)

        listing = await self.listings.get_listing(listing_id)
        if listing.status != ListingStatus.ACTIVE:
            raise InvalidStateError("Listing is not active")
        if now < listing.start_at:
            raise WindowError("Auction has not started yet")
        if now >= listing.end_at:
            raise WindowError("Auction has expired")

        if price.currency != listing.currency:
            raise ValidationError(
                "Offer currency must match the listing currency",
                details=[{
                    'field': 'price.currency',
                    'message': f"Expected {listing.currency}, got {price.currency}"
                }]
            )
        if price.amount < listing.reserve_price.amount:
            raise ValidationError(
                "Offer must be at least the reserve price",
                details=[{
                    'field': 'price.amount',
                    'message': f"Minimum offer is {listing.reserve_price.amount} {listing.currency}"
                }]
            )

        existing = await self.store.offers.find_one({
            'listing_id': listing_id,
            'bidder': bidder,
            'status': OfferStatus.ACTIVE.value
        })
        if existing:
            raise ConflictError(DUPLICATE_OFFER_MESSAGE)

        offer = Offer(
            id=str(uuid.uuid4()),
            listing_id=listing_id,
            bidder=bidder,
            username=username,
            price=price,
            status=OfferStatus.ACTIVE,
            created_at=now,
            updated_at=now
        )

        try:
            await self.store.offers.insert_one(offer.to_record())
        except DuplicateRecordError:
            raise ConflictError(DUPLICATE_OFFER_MESSAGE)
        except DatabaseError as e:
            logger.error(f"Error creating offer on listing {listing_id}: {e}")
            raise

        logger.info(f"Created offer {offer.id} on listing {listing_id} by {bidder}")

        if self.settlement:
            result = await best_effort(
                f"Settlement create for offer {offer.id}",
                self.settlement.create_offer,
                listing.token_contract,
                listing.token_id,
                listing.chain_id,
                price,
                timeout=self.settings['settlement_timeout_seconds']
            )
            if result and result.get('offer_id'):
                await self.store.offers.update_one(
                    {'id': offer.id},
                    {'$set': {'settlement_offer_id': result['offer_id']}}
                )

        return await self.get_offer(offer.id)

    async def get_offer(self, offer_id: str) -> Offer:
        """Get an offer by id.

        Raises:
            NotFoundError: If the offer does not exist
        """
        await self.ensure_store()
        record = await self.store.offers.find_one({'id': offer_id})
        if not record:
            raise NotFoundError("Offer not found")
        return Offer.from_record(record)

    async def cancel_offer(
        self,
        offer_id: str,
        requester: str,
        now: Optional[datetime] = None
    ) -> Offer:
        """Withdraw an active offer on behalf of its bidder.

        Raises:
            NotFoundError: If the offer does not exist
            ForbiddenError: If requester is not the bidder
            InvalidStateError: If the offer is not active
        """
        offer = await self.get_offer(offer_id)
        if not same_address(offer.bidder, requester):
            raise ForbiddenError("Only the offer owner can cancel their offer")
        if offer.status != OfferStatus.ACTIVE:
            raise InvalidStateError("Only active offers can be cancelled")

        now = ensure_utc(now) if now else utcnow()
        if not await self._transition(offer_id, OfferStatus.CANCELLED, now, cancelled_at=now):
            raise InvalidStateError("Offer is no longer active")

        logger.info(f"Offer {offer_id} cancelled by {offer.bidder}")

        if self.settlement and offer.settlement_offer_id:
            await best_effort(
                f"Settlement cancel for offer {offer_id}",
                self.settlement.cancel_offer,
                offer.settlement_offer_id,
                timeout=self.settings['settlement_timeout_seconds']
            )

        return await self.get_offer(offer_id)

    async def search_offers(
        self,
        listing_id: Optional[str] = None,
        bidder: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Dict[str, Any]:
        """Search offers, highest price first then earliest.

        Returns:
            Dict containing ``offers`` and a ``pagination`` block
        """
        await self.ensure_store()
        limit, offset = page_bounds(limit, offset, self.settings['max_page_size'])

        filter: Dict[str, Any] = {}
        if listing_id:
            filter['listing_id'] = listing_id
        if bidder:
            filter['bidder'] = bidder.strip().lower()
        if status:
            try:
                filter['status'] = OfferStatus(status.upper()).value
            except ValueError:
                raise ValidationError(
                    "Invalid offer status",
                    details=[{'field': 'status', 'message': f"Unknown status: {status}"}]
                )

        total = await self.store.offers.count(filter)
        records = await self.store.offers.find(
            filter,
            sort=[('price_amount', DESCENDING), ('created_at', ASCENDING)],
            skip=offset,
            limit=limit
        )
        return {
            'offers': [Offer.from_record(r) for r in records],
            'pagination': pagination(total, limit, offset)
        }

    async def listing_offers(self, listing_id: str) -> List[Offer]:
        """Every offer on a listing in any status, highest price first then earliest."""
        await self.ensure_store()
        records = await self.store.offers.find(
            {'listing_id': listing_id},
            sort=[('price_amount', DESCENDING), ('created_at', ASCENDING)]
        )
        return [Offer.from_record(r) for r in records]

    async def _transition(
        self,
        offer_id: str,
        status: OfferStatus,
        now: datetime,
        expected: OfferStatus = OfferStatus.ACTIVE,
        **fields: Any
    ) -> bool:
        await self.ensure_store()
        changed = await self.store.offers.update_one(
            {'id': offer_id, 'status': expected.value},
            {'$set': dict(fields, status=status.value, updated_at=now)}
        )
        return changed == 1

    async def mark_accepted(self, offer_id: str, now: datetime) -> bool:
        """Guarded ACTIVE -> ACCEPTED transition."""
        return await self._transition(offer_id, OfferStatus.ACCEPTED, now, accepted_at=now)

    async def reject_others(self, listing_id: str, winner_id: str, now: datetime) -> int:
        """Reject every other active offer on a listing; returns how many changed."""
        await self.ensure_store()
        return await self.store.offers.update_many(
            {
                'listing_id': listing_id,
                'id': {'$ne': winner_id},
                'status': OfferStatus.ACTIVE.value
            },
            {'$set': {
                'status': OfferStatus.REJECTED.value,
                'rejected_at': now,
                'updated_at': now
            }}
        )

    async def revoke_acceptance(self, offer_id: str, status: OfferStatus, now: datetime) -> bool:
        """Move an ACCEPTED offer whose listing could not be sold to ``status``."""
        stamp = 'expired_at' if status == OfferStatus.EXPIRED else 'rejected_at'
        return await self._transition(
            offer_id, status, now, expected=OfferStatus.ACCEPTED, **{stamp: now}
        )

    async def record_settlement(self, offer_id: str, transaction_hash: str) -> None:
        await self.ensure_store()
        await self.store.offers.update_one(
            {'id': offer_id},
            {'$set': {'settlement_tx_hash': transaction_hash}}
        )

__all__ = [
    'OfferManager',
    'Offer',
    'OfferStatus',
    'AcceptanceResult'
]
