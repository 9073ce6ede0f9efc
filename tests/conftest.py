"""Shared fixtures: an in-memory store and managers bound to it."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from config import settings_conf
from database import Store, set_store
from listings import ListingManager
from listings.models import AssetRef, Price
from offers import OfferManager
from offers.acceptance import AcceptanceManager

SELLER = "0x" + "a1" * 20
BIDDER_A = "0x" + "b2" * 20
BIDDER_B = "0x" + "c3" * 20
BIDDER_C = "0x" + "d4" * 20
TOKEN_CONTRACT = "0x" + "e5" * 20
CHAIN_ID = "eip155:97476"

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
ONE_ETH = 10 ** 18

def eth(amount: int) -> Price:
    return Price(amount=amount, currency="ETH")

def asset(token_id: str = "1001") -> AssetRef:
    return AssetRef(chain_id=CHAIN_ID, token_contract=TOKEN_CONTRACT, token_id=token_id)

@pytest.fixture
def store():
    """Fresh in-memory store installed as the process-wide store."""
    store = Store.memory()
    set_store(store)
    yield store
    set_store(None)

@pytest.fixture
def settings():
    return dict(settings_conf)

@pytest.fixture
def listing_manager(store, settings):
    return ListingManager(store, settings)

@pytest.fixture
def offer_manager(store, settings):
    return OfferManager(store, settings=settings)

@pytest.fixture
def acceptance_manager(store, settings):
    return AcceptanceManager(store, settings=settings)

@pytest_asyncio.fixture
async def listing(listing_manager):
    """A 24 hour auction from 1 ETH down to 0.1 ETH starting at NOW."""
    return await listing_manager.create_listing(
        SELLER,
        asset(),
        eth(ONE_ETH),
        eth(ONE_ETH // 10),
        NOW,
        NOW + timedelta(hours=24),
        domain="example.eth",
        now=NOW
    )
