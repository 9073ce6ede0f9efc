"""Reconciliation of auctions past their end time.

Expired listings are only ever detected by a sweep: nothing else changes a
listing's status when its end time passes. The sweeper moves ACTIVE listings
whose ``end_at`` is in the past to EXPIRED, then expires the ACTIVE offers on
any listing that has ended, including listings a previous partial run already
expired. Both steps are guarded bulk updates so repeated or concurrent sweeps
are harmless.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from database import get_store, DatabaseError
from listings.models import Listing, ListingStatus
from offers.models import Offer, OfferStatus
from pricing import utcnow, ensure_utc

logger = logging.getLogger(__name__)

# Well under asyncpg's 32767 bind parameter limit
CHUNK_SIZE = 500

class ReconcileError(Exception):
    """Raised when a sweep step fails; earlier steps stay applied."""
    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"Reconcile step '{step}' failed: {message}")

class ReconciliationSweeper:
    """Expires listings and offers whose auctions have ended."""

    def __init__(self, store=None, chunk_size: int = CHUNK_SIZE):
        """Initialize the sweeper.

        Args:
            store: Optional record store. If not provided, will get from database module.
            chunk_size: Maximum listing ids sent in one statement
        """
        self.store = store
        self.chunk_size = chunk_size
        self._stop_requested = False

    async def ensure_store(self):
        """Ensure we have a record store."""
        if not self.store:
            self.store = await get_store()

    def stop(self):
        """Signal run_forever to stop after the current sweep."""
        self._stop_requested = True

    async def _ended_listing_batches(self, now: datetime) -> AsyncIterator[List[str]]:
        """Yield ids of ended listings that still have active offers.

        Candidate ids are checked ``chunk_size`` at a time so no single
        statement carries more than ``chunk_size`` bind parameters.
        """
        listing_ids = await self.store.offers.distinct(
            'listing_id', {'status': OfferStatus.ACTIVE.value}
        )
        for start in range(0, len(listing_ids), self.chunk_size):
            records = await self.store.listings.find({
                'id': {'$in': listing_ids[start:start + self.chunk_size]},
                'end_at': {'$lt': now}
            })
            if records:
                yield [record['id'] for record in records]

    async def reconcile(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Run one sweep.

        Returns:
            Dict with ``expired_listings_count``, ``expired_offers_count`` and
            ``processed_at``

        Raises:
            ReconcileError: If a bulk update fails
        """
        await self.ensure_store()
        now = ensure_utc(now) if now else utcnow()

        try:
            expired_listings = await self.store.listings.update_many(
                {'status': ListingStatus.ACTIVE.value, 'end_at': {'$lt': now}},
                {'$set': {
                    'status': ListingStatus.EXPIRED.value,
                    'expired_at': now,
                    'updated_at': now
                }}
            )
        except DatabaseError as e:
            logger.error(f"Failed to expire listings: {e}")
            raise ReconcileError('listings', str(e))

        expired_offers = 0
        try:
            async for ended in self._ended_listing_batches(now):
                expired_offers += await self.store.offers.update_many(
                    {'listing_id': {'$in': ended}, 'status': OfferStatus.ACTIVE.value},
                    {'$set': {
                        'status': OfferStatus.EXPIRED.value,
                        'expired_at': now,
                        'updated_at': now
                    }}
                )
        except DatabaseError as e:
            logger.error(f"Failed to expire offers: {e}")
            raise ReconcileError('offers', str(e))

        if expired_listings or expired_offers:
            logger.info(f"Expired {expired_listings} listing(s) and {expired_offers} offer(s)")

        return {
            'expired_listings_count': expired_listings,
            'expired_offers_count': expired_offers,
            'processed_at': now.isoformat()
        }

    async def preview(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Report what a sweep at ``now`` would expire without changing anything."""
        await self.ensure_store()
        now = ensure_utc(now) if now else utcnow()

        listings = [
            Listing.from_record(record) for record in await self.store.listings.find(
                {'status': ListingStatus.ACTIVE.value, 'end_at': {'$lt': now}}
            )
        ]
        offers = []
        async for ended in self._ended_listing_batches(now):
            offers.extend(
                Offer.from_record(record) for record in await self.store.offers.find(
                    {'listing_id': {'$in': ended}, 'status': OfferStatus.ACTIVE.value}
                )
            )

        return {
            'expired_listings_count': len(listings),
            'expired_offers_count': len(offers),
            'checked_at': now.isoformat(),
            'expired_listings': [
                {
                    'id': listing.id,
                    'token_contract': listing.token_contract,
                    'token_id': listing.token_id,
                    'end_at': listing.end_at.isoformat()
                }
                for listing in listings
            ],
            'expired_offers': [
                {
                    'id': offer.id,
                    'listing_id': offer.listing_id,
                    'bidder': offer.bidder,
                    'price': offer.price.model_dump(mode='json')
                }
                for offer in offers
            ]
        }

    async def run_forever(self, interval: float) -> None:
        """Sweep every ``interval`` seconds until stop() is called or cancelled."""
        logger.info(f"Starting reconciliation sweeper (every {interval} seconds)")
        while not self._stop_requested:
            try:
                await self.reconcile()
            except Exception as e:
                # Partial progress is kept, the next sweep retries the rest
                logger.error(f"Error in reconciliation sweep: {e}")
            await asyncio.sleep(interval)

__all__ = ['ReconciliationSweeper', 'ReconcileError']
