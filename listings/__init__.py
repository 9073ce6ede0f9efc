"""Listings module for managing Dutch auction listings.

This module provides functionality for:
- Validating and creating listings
- Enforcing one active listing per token
- Delisting by the seller
- Searching listings
- Guarded status transitions used by acceptance and reconciliation
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from config import settings_conf
from database import get_store, DESCENDING, DatabaseError, DuplicateRecordError
from errors import (
    ValidationError, NotFoundError, ForbiddenError, ConflictError, InvalidStateError
)
from pricing import utcnow, ensure_utc
from .models import Price, Listing, ListingStatus, AssetRef, price_fields
from .search import page_bounds, pagination
from .validation import normalize_address, same_address, is_chain_id

logger = logging.getLogger(__name__)

class ListingManager:
    """Manager class for handling listing operations."""

    def __init__(self, store=None, settings: Optional[Dict[str, Any]] = None):
        """Initialize the listing manager.

        Args:
            store: Optional record store. If not provided, will get from database module.
            settings: Optional settings dict, defaults to settings.conf
        """
        self.store = store
        self.settings = settings or settings_conf

    async def ensure_store(self):
        """Ensure we have a record store."""
        if not self.store:
            self.store = await get_store()

    def _validate(
        self,
        seller: str,
        asset: AssetRef,
        start_price: Price,
        reserve_price: Price,
        start_at: datetime,
        end_at: datetime
    ) -> List[Dict[str, str]]:
        errors = []

        def fail(field, message):
            errors.append({'field': field, 'message': message})

        if not normalize_address(seller):
            fail('seller', 'Invalid seller address format')

        supported_chains = self.settings['supported_chains']
        if not is_chain_id(asset.chain_id):
            fail('chain_id', 'Invalid chain id format, expected namespace:reference')
        elif supported_chains and asset.chain_id not in supported_chains:
            fail('chain_id', f"Unsupported chain: {asset.chain_id}")

        if not normalize_address(asset.token_contract):
            fail('token_contract', 'Invalid token contract address format')
        if not asset.token_id or not asset.token_id.strip():
            fail('token_id', 'Token id is required')

        supported = [c.upper() for c in self.settings['supported_currencies']]
        for field, price in (('start_price', start_price), ('reserve_price', reserve_price)):
            if price.currency not in supported:
                fail(f'{field}.currency', f"Unsupported currency: {price.currency}")

        if start_price.currency != reserve_price.currency:
            fail('reserve_price.currency', 'Start price and reserve price must use the same currency')
        elif reserve_price.amount > start_price.amount:
            fail('reserve_price', 'Reserve price must be less than or equal to start price')

        if end_at <= start_at:
            fail('end_at', 'End time must be after start time')
        else:
            min_hours = self.settings['min_duration_hours']
            max_hours = self.settings['max_duration_hours']
            duration = end_at - start_at
            if duration < timedelta(hours=min_hours):
                fail('end_at', f"Auction duration must be at least {min_hours} hour(s)")
            elif duration > timedelta(hours=max_hours):
                fail('end_at', f"Auction duration cannot exceed {max_hours} hours")

        return errors

    async def create_listing(
        self,
        seller: str,
        asset: AssetRef,
        start_price: Price,
        reserve_price: Price,
        start_at: datetime,
        end_at: datetime,
        domain: Optional[str] = None,
        order_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Listing:
        """Create a new listing.

        Args:
            seller: The seller's address
            asset: Chain, token contract and token id being auctioned
            start_price: Price at the start of the auction
            reserve_price: Floor price reached at the end of the auction
            start_at: Auction start, clamped to now if in the past
            end_at: Auction end
            domain: Optional display name of the domain
            order_id: Optional external orderbook order reference
            now: Optional current time, defaults to the wall clock

        Returns:
            The stored listing

        Raises:
            ValidationError: If any field is invalid (all problems are listed in details)
            ConflictError: If the token already has an active listing
        """
        await self.ensure_store()

        now = ensure_utc(now) if now else utcnow()
        start_at = ensure_utc(start_at)
        end_at = ensure_utc(end_at)
        if start_at < now:
            start_at = now

        errors = self._validate(seller, asset, start_price, reserve_price, start_at, end_at)
        if errors:
            raise ValidationError("Invalid listing", details=errors)

        asset = AssetRef(
            chain_id=asset.chain_id,
            token_contract=normalize_address(asset.token_contract),
            token_id=asset.token_id.strip()
        )

        existing = await self.store.listings.find_one({
            'chain_id': asset.chain_id,
            'token_contract': asset.token_contract,
            'token_id': asset.token_id,
            'status': ListingStatus.ACTIVE.value
        })
        if existing:
            raise ConflictError("An active listing already exists for this token")

        listing = Listing(
            id=str(uuid.uuid4()),
            domain=domain,
            chain_id=asset.chain_id,
            token_contract=asset.token_contract,
            token_id=asset.token_id,
            seller=normalize_address(seller),
            start_price=start_price,
            reserve_price=reserve_price,
            start_at=start_at,
            end_at=end_at,
            status=ListingStatus.ACTIVE,
            order_id=order_id,
            created_at=now,
            updated_at=now
        )

        try:
            record = await self.store.listings.insert_one(listing.to_record())
        except DuplicateRecordError:
            # Lost a race with a concurrent create for the same token
            raise ConflictError("An active listing already exists for this token")
        except DatabaseError as e:
            logger.error(f"Error creating listing for {asset.token_contract}/{asset.token_id}: {e}")
            raise

        logger.info(
            f"Created listing {listing.id} for {asset.chain_id}/{asset.token_contract}/"
            f"{asset.token_id} by {listing.seller}"
        )
        return Listing.from_record(record)

    async def get_listing(self, listing_id: str) -> Listing:
        """Get a listing by id.

        Raises:
            NotFoundError: If the listing does not exist
        """
        await self.ensure_store()
        record = await self.store.listings.find_one({'id': listing_id})
        if not record:
            raise NotFoundError("Listing not found")
        return Listing.from_record(record)

    async def delist(
        self,
        listing_id: str,
        requester: str,
        now: Optional[datetime] = None
    ) -> Listing:
        """Cancel an active listing on behalf of its seller.

        Raises:
            NotFoundError: If the listing does not exist
            ForbiddenError: If requester is not the seller
            InvalidStateError: If the listing is not active
        """
        listing = await self.get_listing(listing_id)
        if not same_address(listing.seller, requester):
            raise ForbiddenError("Only the listing owner can delist")
        if listing.status != ListingStatus.ACTIVE:
            raise InvalidStateError("Only active listings can be delisted")

        now = ensure_utc(now) if now else utcnow()
        updated = await self._transition(
            listing_id, ListingStatus.CANCELLED, now, cancelled_at=now
        )
        if not updated:
            raise InvalidStateError("Listing is no longer active")

        logger.info(f"Listing {listing_id} delisted by {listing.seller}")
        return await self.get_listing(listing_id)

    async def search_listings(
        self,
        status: Optional[str] = None,
        seller: Optional[str] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Dict[str, Any]:
        """Search listings, newest first.

        Returns:
            Dict containing ``listings`` and a ``pagination`` block
        """
        await self.ensure_store()
        limit, offset = page_bounds(limit, offset, self.settings['max_page_size'])

        filter: Dict[str, Any] = {}
        if status:
            try:
                filter['status'] = ListingStatus(status.upper()).value
            except ValueError:
                raise ValidationError(
                    "Invalid listing status",
                    details=[{'field': 'status', 'message': f"Unknown status: {status}"}]
                )
        if seller:
            filter['seller'] = seller.strip().lower()

        total = await self.store.listings.count(filter)
        records = await self.store.listings.find(
            filter, sort=[('created_at', DESCENDING)], skip=offset, limit=limit
        )
        return {
            'listings': [Listing.from_record(r) for r in records],
            'pagination': pagination(total, limit, offset)
        }

    async def _transition(
        self,
        listing_id: str,
        status: ListingStatus,
        now: datetime,
        **fields: Any
    ) -> bool:
        """Move an ACTIVE listing to ``status``; False if it was no longer active."""
        await self.ensure_store()
        changed = await self.store.listings.update_one(
            {'id': listing_id, 'status': ListingStatus.ACTIVE.value},
            {'$set': dict(fields, status=status.value, updated_at=now)}
        )
        return changed == 1

    async def mark_sold(
        self,
        listing_id: str,
        buyer: str,
        price: Price,
        now: Optional[datetime] = None
    ) -> bool:
        """Guarded ACTIVE -> SOLD transition recording the winning offer."""
        now = ensure_utc(now) if now else utcnow()
        return await self._transition(
            listing_id,
            ListingStatus.SOLD,
            now,
            sold_to=buyer,
            sold_at=now,
            **price_fields('sold_price', price)
        )

    async def mark_expired(self, listing_id: str, now: Optional[datetime] = None) -> bool:
        """Guarded ACTIVE -> EXPIRED transition for a single listing."""
        now = ensure_utc(now) if now else utcnow()
        return await self._transition(listing_id, ListingStatus.EXPIRED, now, expired_at=now)

__all__ = [
    'ListingManager',
    'Listing',
    'ListingStatus',
    'AssetRef',
    'Price'
]
