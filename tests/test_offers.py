"""Tests for the offers module."""

import time
from datetime import timedelta

import pytest

from errors import (
    ValidationError, ConflictError, ForbiddenError, InvalidStateError, NotFoundError, WindowError
)
from listings.models import Price
from offers import OfferManager, OfferStatus
from settlement import SettlementError
from tests.conftest import (
    SELLER, BIDDER_A, BIDDER_B, BIDDER_C, NOW, ONE_ETH, eth, asset
)

RESERVE = ONE_ETH // 10

class FakeSettlement:
    """Records orderbook calls and answers with canned results."""

    def __init__(self, fail=False, delay=0):
        self.fail = fail
        self.delay = delay
        self.calls = []

    def _answer(self, name, *args):
        self.calls.append((name,) + args)
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise SettlementError("orderbook unavailable", 503, name)

    def create_offer(self, token_contract, token_id, chain_id, price):
        self._answer('create_offer', token_contract, token_id, chain_id, price)
        return {'offer_id': 'ob-1', 'transaction_hash': '0xcreate'}

    def accept_offer(self, offer_id):
        self._answer('accept_offer', offer_id)
        return {'transaction_hash': '0xaccept'}

    def cancel_offer(self, offer_id):
        self._answer('cancel_offer', offer_id)
        return {'transaction_hash': '0xcancel'}

@pytest.mark.asyncio
async def test_place_offer(offer_manager, listing):
    """Test placing an offer at the reserve price."""
    later = NOW + timedelta(hours=1)
    offer = await offer_manager.place_offer(
        listing.id, BIDDER_A.upper().replace('0X', '0x'), eth(RESERVE), username="alice_1", now=later
    )

    assert offer.listing_id == listing.id
    assert offer.bidder == BIDDER_A
    assert offer.username == "alice_1"
    assert offer.price == eth(RESERVE)
    assert offer.status == OfferStatus.ACTIVE
    assert offer.created_at == later
    assert offer.settlement_offer_id is None

@pytest.mark.asyncio
async def test_floor_is_reserve_not_current_price(offer_manager, listing):
    # An hour in, the Dutch price is far above the reserve
    later = NOW + timedelta(hours=1)
    assert listing.current_price(later) > RESERVE
    offer = await offer_manager.place_offer(listing.id, BIDDER_A, eth(RESERVE), now=later)
    assert offer.status == OfferStatus.ACTIVE

@pytest.mark.asyncio
async def test_offer_below_reserve_rejected(offer_manager, listing):
    with pytest.raises(ValidationError) as exc:
        await offer_manager.place_offer(listing.id, BIDDER_A, eth(RESERVE - 1), now=NOW)
    assert exc.value.details[0]['field'] == 'price.amount'

@pytest.mark.asyncio
async def test_offer_currency_must_match(offer_manager, listing):
    with pytest.raises(ValidationError) as exc:
        await offer_manager.place_offer(
            listing.id, BIDDER_A, Price(amount=ONE_ETH, currency="USDC"), now=NOW
        )
    assert exc.value.details[0]['field'] == 'price.currency'

@pytest.mark.asyncio
async def test_invalid_bidder_and_username(offer_manager, listing):
    with pytest.raises(ValidationError) as exc:
        await offer_manager.place_offer(listing.id, "0xnope", eth(RESERVE), username="bad name!", now=NOW)
    assert [d['field'] for d in exc.value.details] == ['bidder', 'username']

@pytest.mark.asyncio
async def test_offer_on_unknown_listing(offer_manager, store):
    with pytest.raises(NotFoundError):
        await offer_manager.place_offer("missing", BIDDER_A, eth(RESERVE), now=NOW)

@pytest.mark.asyncio
async def test_offer_on_inactive_listing(offer_manager, listing_manager, listing):
    await listing_manager.delist(listing.id, SELLER, now=NOW)
    with pytest.raises(InvalidStateError):
        await offer_manager.place_offer(listing.id, BIDDER_A, eth(RESERVE), now=NOW)

@pytest.mark.asyncio
async def test_offer_before_start(offer_manager, listing_manager):
    listing = await listing_manager.create_listing(
        SELLER, asset("future"), eth(ONE_ETH), eth(RESERVE),
        NOW + timedelta(hours=1), NOW + timedelta(hours=5), now=NOW
    )
    with pytest.raises(WindowError) as exc:
        await offer_manager.place_offer(listing.id, BIDDER_A, eth(RESERVE), now=NOW)
    assert exc.value.message == "Auction has not started yet"

@pytest.mark.asyncio
async def test_offer_after_end(offer_manager, listing):
    with pytest.raises(WindowError) as exc:
        await offer_manager.place_offer(listing.id, BIDDER_A, eth(RESERVE), now=listing.end_at)
    assert exc.value.message == "Auction has expired"

@pytest.mark.asyncio
async def test_one_active_offer_per_bidder(offer_manager, listing):
    first = await offer_manager.place_offer(listing.id, BIDDER_A, eth(RESERVE), now=NOW)

    with pytest.raises(ConflictError):
        await offer_manager.place_offer(listing.id, BIDDER_A, eth(2 * RESERVE), now=NOW)

    # Other bidders are unaffected
    await offer_manager.place_offer(listing.id, BIDDER_B, eth(2 * RESERVE), now=NOW)

    cancelled = await offer_manager.cancel_offer(first.id, BIDDER_A, now=NOW)
    assert cancelled.status == OfferStatus.CANCELLED
    assert cancelled.cancelled_at == NOW

    second = await offer_manager.place_offer(listing.id, BIDDER_A, eth(2 * RESERVE), now=NOW)
    assert second.id != first.id

@pytest.mark.asyncio
async def test_racing_offer_maps_to_conflict(offer_manager, listing, store, monkeypatch):
    await offer_manager.place_offer(listing.id, BIDDER_A, eth(RESERVE), now=NOW)
    original = store.offers.find_one

    async def no_existing_offer(filter):
        if 'bidder' in filter:
            return None
        return await original(filter)

    monkeypatch.setattr(store.offers, 'find_one', no_existing_offer)
    with pytest.raises(ConflictError):
        await offer_manager.place_offer(listing.id, BIDDER_A, eth(RESERVE), now=NOW)

@pytest.mark.asyncio
async def test_cancel_offer_rules(offer_manager, listing):
    offer = await offer_manager.place_offer(listing.id, BIDDER_A, eth(RESERVE), now=NOW)

    with pytest.raises(ForbiddenError):
        await offer_manager.cancel_offer(offer.id, BIDDER_B)

    await offer_manager.cancel_offer(offer.id, BIDDER_A)
    with pytest.raises(InvalidStateError):
        await offer_manager.cancel_offer(offer.id, BIDDER_A)

    with pytest.raises(NotFoundError):
        await offer_manager.cancel_offer("missing", BIDDER_A)

@pytest.mark.asyncio
async def test_search_offers_ranked(offer_manager, listing):
    await offer_manager.place_offer(listing.id, BIDDER_A, eth(3 * RESERVE), now=NOW)
    await offer_manager.place_offer(listing.id, BIDDER_B, eth(5 * RESERVE), now=NOW + timedelta(minutes=1))
    await offer_manager.place_offer(listing.id, BIDDER_C, eth(3 * RESERVE), now=NOW + timedelta(minutes=2))

    result = await offer_manager.search_offers(listing_id=listing.id)
    assert [o.bidder for o in result['offers']] == [BIDDER_B, BIDDER_A, BIDDER_C]
    assert result['pagination'] == {'total': 3, 'limit': 50, 'offset': 0, 'has_more': False}

    by_bidder = await offer_manager.search_offers(bidder=BIDDER_C.upper().replace('0X', '0x'))
    assert len(by_bidder['offers']) == 1

    cancelled = await offer_manager.search_offers(status="cancelled")
    assert cancelled['offers'] == []

    with pytest.raises(ValidationError):
        await offer_manager.search_offers(status="won")

@pytest.mark.asyncio
async def test_settlement_id_recorded(store, settings, listing):
    settlement = FakeSettlement()
    manager = OfferManager(store, settlement, settings)

    offer = await manager.place_offer(listing.id, BIDDER_A, eth(RESERVE), now=NOW)
    assert offer.settlement_offer_id == 'ob-1'
    assert settlement.calls[0][:4] == ('create_offer', listing.token_contract, listing.token_id, listing.chain_id)

    await manager.cancel_offer(offer.id, BIDDER_A)
    assert settlement.calls[-1] == ('cancel_offer', 'ob-1')

@pytest.mark.asyncio
async def test_settlement_failure_does_not_block_offer(store, settings, listing):
    manager = OfferManager(store, FakeSettlement(fail=True), settings)

    offer = await manager.place_offer(listing.id, BIDDER_A, eth(RESERVE), now=NOW)
    assert offer.status == OfferStatus.ACTIVE
    assert offer.settlement_offer_id is None

@pytest.mark.asyncio
async def test_settlement_timeout_does_not_block_offer(store, settings, listing):
    settings['settlement_timeout_seconds'] = 0.05
    manager = OfferManager(store, FakeSettlement(delay=0.5), settings)

    offer = await manager.place_offer(listing.id, BIDDER_A, eth(RESERVE), now=NOW)
    assert offer.status == OfferStatus.ACTIVE
    assert offer.settlement_offer_id is None
