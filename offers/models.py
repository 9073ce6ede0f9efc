"""Offer data models."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

from listings.models import Listing, Price, price_fields, price_from
from pricing import ensure_utc

class OfferStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    ACCEPTED = 'ACCEPTED'
    REJECTED = 'REJECTED'
    CANCELLED = 'CANCELLED'
    EXPIRED = 'EXPIRED'

class Offer(BaseModel):
    """A bidder's standing offer on a listing."""
    id: str
    listing_id: str
    bidder: str
    username: Optional[str] = None
    price: Price
    settlement_offer_id: Optional[str] = None
    settlement_tx_hash: Optional[str] = None
    status: OfferStatus
    created_at: datetime
    updated_at: datetime
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        record = self.model_dump(exclude={'price'})
        record['status'] = self.status.value
        record.update(price_fields('price', self.price))
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Offer':
        data = {
            key: value for key, value in record.items()
            if key in cls.model_fields
        }
        for key in ('created_at', 'updated_at', 'accepted_at', 'rejected_at',
                    'cancelled_at', 'expired_at'):
            if data.get(key) is not None:
                data[key] = ensure_utc(data[key])
        data['price'] = price_from(record, 'price')
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json')

class AcceptanceResult(BaseModel):
    """Outcome of a seller accepting an offer."""
    accepted_offer: Offer
    listing: Listing
    transaction_hash: Optional[str] = None

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            'accepted_offer': self.accepted_offer.to_dict(),
            'listing': self.listing.to_dict(now),
            'transaction_hash': self.transaction_hash
        }
