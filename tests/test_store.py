"""Tests for the record store filters and the in-memory backend."""

from datetime import timedelta
from decimal import Decimal

import pytest

from database import Store, ASCENDING, DESCENDING, DatabaseError, DuplicateRecordError
from database.lib.filters import build_where, build_order_by, matches
from tests.conftest import NOW

def test_matches_operators():
    record = {'status': 'ACTIVE', 'end_at': NOW, 'price': 5, 'note': None}
    assert matches(record, {'status': 'ACTIVE', 'end_at': {'$lt': NOW + timedelta(seconds=1)}})
    assert not matches(record, {'end_at': {'$lt': NOW}})
    assert matches(record, {'end_at': {'$lte': NOW}})
    assert matches(record, {'price': {'$gt': 4, '$lte': 5}})
    assert matches(record, {'status': {'$in': ['ACTIVE', 'SOLD']}})
    assert matches(record, {'status': {'$ne': 'SOLD'}})
    assert matches(record, {'note': None})
    assert not matches(record, {'note': {'$gt': 1}})
    with pytest.raises(DatabaseError):
        matches(record, {'status': {'$regex': 'A.*'}})

def test_build_where():
    params = []
    where = build_where(
        {'id': 'x', 'status': {'$in': ['ACTIVE', 'SOLD']}, 'end_at': {'$lt': 3}, 'sold_to': None},
        params,
        lambda v: Decimal(v) if isinstance(v, int) else v
    )
    assert where == "id = $1 AND status IN ($2, $3) AND end_at < $4 AND sold_to IS NULL"
    assert params == ['x', 'ACTIVE', 'SOLD', Decimal(3)]

def test_build_where_edge_cases():
    assert build_where({}, [], lambda v: v) == 'TRUE'
    assert build_where({'id': {'$in': []}}, [], lambda v: v) == 'FALSE'
    with pytest.raises(DatabaseError):
        build_where({'id; DROP TABLE listings': 1}, [], lambda v: v)

def test_build_order_by():
    assert build_order_by([('price_amount', DESCENDING), ('created_at', ASCENDING)]) == \
        " ORDER BY price_amount DESC, created_at ASC"
    assert build_order_by([]) == ''

@pytest.mark.asyncio
async def test_memory_collection_crud():
    store = Store.memory()
    offers = store.offers
    for i, (amount, minute) in enumerate([(10, 1), (30, 2), (10, 0)]):
        await offers.insert_one({
            'id': str(i), 'listing_id': 'l1', 'bidder': f'b{i}', 'status': 'ACTIVE',
            'price_amount': amount, 'created_at': NOW + timedelta(minutes=minute)
        })

    ranked = await offers.find(
        {'listing_id': 'l1'}, sort=[('price_amount', DESCENDING), ('created_at', ASCENDING)]
    )
    assert [r['id'] for r in ranked] == ['1', '2', '0']
    assert [r['id'] for r in await offers.find({}, sort=[('id', ASCENDING)], skip=1, limit=1)] == ['1']
    assert await offers.count({'price_amount': {'$gte': 10}}) == 3
    assert await offers.distinct('listing_id', {}) == ['l1']

    # Guarded updates only touch matching records
    assert await offers.update_one({'id': '0', 'status': 'ACTIVE'}, {'$set': {'status': 'CANCELLED'}}) == 1
    assert await offers.update_one({'id': '0', 'status': 'ACTIVE'}, {'$set': {'status': 'CANCELLED'}}) == 0
    assert await offers.update_many({'status': 'ACTIVE'}, {'$set': {'status': 'EXPIRED'}}) == 2

@pytest.mark.asyncio
async def test_memory_collection_returns_copies():
    store = Store.memory()
    record = await store.listings.insert_one({'id': 'a', 'status': 'ACTIVE'})
    record['status'] = 'SOLD'
    assert (await store.listings.find_one({'id': 'a'}))['status'] == 'ACTIVE'

@pytest.mark.asyncio
async def test_partial_unique_index():
    store = Store.memory()
    offer = {'listing_id': 'l1', 'bidder': 'b1', 'status': 'ACTIVE'}
    await store.offers.insert_one(dict(offer, id='1'))

    with pytest.raises(DuplicateRecordError):
        await store.offers.insert_one(dict(offer, id='2'))
    with pytest.raises(DuplicateRecordError):
        await store.offers.insert_one(dict(offer, id='1', status='CANCELLED'))

    # Only ACTIVE offers take part in the index
    await store.offers.update_one({'id': '1'}, {'$set': {'status': 'CANCELLED'}})
    await store.offers.insert_one(dict(offer, id='2'))
    await store.offers.insert_one(dict(offer, id='3', status='CANCELLED'))

    with pytest.raises(DuplicateRecordError):
        await store.offers.update_one({'id': '3'}, {'$set': {'status': 'ACTIVE'}})

@pytest.mark.asyncio
async def test_updates_must_use_set():
    store = Store.memory()
    with pytest.raises(DatabaseError):
        await store.listings.update_one({'id': 'a'}, {'status': 'SOLD'})
    with pytest.raises(DatabaseError):
        await store.listings.update_many({}, {'$set': {'bad-field': 1}})
