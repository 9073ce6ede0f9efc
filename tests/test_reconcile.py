"""Tests for the reconciliation sweeper."""

from datetime import timedelta

import pytest

from database import DatabaseError
from listings.models import ListingStatus
from offers import OfferStatus
from reconcile import ReconciliationSweeper, ReconcileError
from tests.conftest import SELLER, BIDDER_A, BIDDER_B, NOW, ONE_ETH, eth, asset

@pytest.fixture
def sweeper(store):
    return ReconciliationSweeper(store)

async def place_two(offer_manager, listing):
    return [
        await offer_manager.place_offer(listing.id, BIDDER_A, eth(ONE_ETH // 5), now=NOW),
        await offer_manager.place_offer(listing.id, BIDDER_B, eth(ONE_ETH // 4), now=NOW),
    ]

@pytest.mark.asyncio
async def test_reconcile_expires_ended_auction(sweeper, listing_manager, offer_manager, listing):
    await place_two(offer_manager, listing)
    after = listing.end_at + timedelta(seconds=1)

    result = await sweeper.reconcile(now=after)
    assert result == {
        'expired_listings_count': 1,
        'expired_offers_count': 2,
        'processed_at': after.isoformat()
    }

    expired = await listing_manager.get_listing(listing.id)
    assert expired.status == ListingStatus.EXPIRED
    assert expired.expired_at == after

    offers = await offer_manager.search_offers(listing_id=listing.id)
    assert {o.status for o in offers['offers']} == {OfferStatus.EXPIRED}

@pytest.mark.asyncio
async def test_reconcile_is_idempotent(sweeper, offer_manager, listing):
    await place_two(offer_manager, listing)
    after = listing.end_at + timedelta(seconds=1)

    await sweeper.reconcile(now=after)
    again = await sweeper.reconcile(now=after)
    assert (again['expired_listings_count'], again['expired_offers_count']) == (0, 0)

@pytest.mark.asyncio
async def test_live_auctions_untouched(sweeper, listing_manager, offer_manager, listing):
    await place_two(offer_manager, listing)

    # end_at itself is not yet past
    result = await sweeper.reconcile(now=listing.end_at)
    assert (result['expired_listings_count'], result['expired_offers_count']) == (0, 0)
    assert (await listing_manager.get_listing(listing.id)).status == ListingStatus.ACTIVE

@pytest.mark.asyncio
async def test_offers_left_by_partial_run_are_expired(sweeper, store, offer_manager, listing):
    await place_two(offer_manager, listing)
    # A previous sweep expired the listing but stopped before the offers
    await store.listings.update_one(
        {'id': listing.id},
        {'$set': {'status': ListingStatus.EXPIRED.value}}
    )

    result = await sweeper.reconcile(now=listing.end_at + timedelta(minutes=1))
    assert (result['expired_listings_count'], result['expired_offers_count']) == (0, 2)

@pytest.mark.asyncio
async def test_sold_auction_keeps_accepted_offer(sweeper, acceptance_manager, offer_manager, listing):
    offers = await place_two(offer_manager, listing)
    await acceptance_manager.accept_offer(listing.id, offers[0].id, SELLER, now=NOW + timedelta(hours=1))

    result = await sweeper.reconcile(now=listing.end_at + timedelta(days=1))
    assert (result['expired_listings_count'], result['expired_offers_count']) == (0, 0)
    assert (await offer_manager.get_offer(offers[0].id)).status == OfferStatus.ACCEPTED

@pytest.mark.asyncio
async def test_preview_does_not_mutate(sweeper, listing_manager, offer_manager, listing):
    offers = await place_two(offer_manager, listing)
    after = listing.end_at + timedelta(seconds=1)

    preview = await sweeper.preview(now=after)
    assert preview['expired_listings_count'] == 1
    assert preview['expired_offers_count'] == 2
    assert preview['checked_at'] == after.isoformat()
    assert preview['expired_listings'][0] == {
        'id': listing.id,
        'token_contract': listing.token_contract,
        'token_id': listing.token_id,
        'end_at': listing.end_at.isoformat()
    }
    assert {o['id'] for o in preview['expired_offers']} == {o.id for o in offers}

    assert (await listing_manager.get_listing(listing.id)).status == ListingStatus.ACTIVE

    result = await sweeper.reconcile(now=after)
    assert (result['expired_listings_count'], result['expired_offers_count']) == (1, 2)

@pytest.mark.asyncio
async def test_failed_step_is_reported(sweeper, store, listing, monkeypatch):
    async def broken(filter, update):
        raise DatabaseError("connection reset")

    monkeypatch.setattr(store.listings, 'update_many', broken)
    with pytest.raises(ReconcileError) as exc:
        await sweeper.reconcile(now=listing.end_at + timedelta(seconds=1))
    assert exc.value.step == 'listings'

@pytest.mark.asyncio
async def test_many_listings(sweeper, listing_manager):
    for i in range(3):
        await listing_manager.create_listing(
            SELLER, asset(str(i)), eth(ONE_ETH), eth(1),
            NOW, NOW + timedelta(hours=1 + i), now=NOW
        )

    result = await sweeper.reconcile(now=NOW + timedelta(hours=2, minutes=30))
    assert result['expired_listings_count'] == 2

@pytest.mark.asyncio
async def test_offers_expired_in_bounded_batches(store, listing_manager, offer_manager, monkeypatch):
    for i in range(5):
        ended = await listing_manager.create_listing(
            SELLER, asset(f"ended-{i}"), eth(ONE_ETH), eth(1),
            NOW, NOW + timedelta(hours=1), now=NOW
        )
        await offer_manager.place_offer(ended.id, BIDDER_A, eth(ONE_ETH // 2), now=NOW)
    live = await listing_manager.create_listing(
        SELLER, asset("live"), eth(ONE_ETH), eth(1),
        NOW, NOW + timedelta(hours=24), now=NOW
    )
    live_offer = await offer_manager.place_offer(live.id, BIDDER_B, eth(ONE_ETH // 2), now=NOW)

    batch_sizes = []
    update_many = store.offers.update_many
    find = store.listings.find

    async def recording_update_many(filter, update):
        batch_sizes.append(len(filter['listing_id']['$in']))
        return await update_many(filter, update)

    async def recording_find(filter, *args, **kwargs):
        if isinstance(filter.get('id'), dict):
            batch_sizes.append(len(filter['id']['$in']))
        return await find(filter, *args, **kwargs)

    monkeypatch.setattr(store.offers, 'update_many', recording_update_many)
    monkeypatch.setattr(store.listings, 'find', recording_find)

    sweeper = ReconciliationSweeper(store, chunk_size=2)
    after = NOW + timedelta(hours=2)
    preview = await sweeper.preview(now=after)
    assert preview['expired_offers_count'] == 5

    result = await sweeper.reconcile(now=after)
    assert (result['expired_listings_count'], result['expired_offers_count']) == (5, 5)
    assert batch_sizes and max(batch_sizes) <= 2
    assert (await offer_manager.get_offer(live_offer.id)).status == OfferStatus.ACTIVE
