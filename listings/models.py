"""Listing data models.

Records are stored flat (``start_price_amount``, ``start_price_currency``...)
and exposed as pydantic models with structured ``Price`` values.
"""
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator

from pricing import current_price, auction_phase, time_remaining, ensure_utc

AMOUNT_RE = re.compile(r'^[0-9]+$')

class Price(BaseModel):
    """Token amount in minor units (e.g. wei) with its currency symbol."""
    model_config = ConfigDict(frozen=True)

    amount: int
    currency: str

    @field_validator('amount', mode='before')
    @classmethod
    def parse_amount(cls, value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError("amount must be an integer string in minor units")
        if isinstance(value, int):
            if value < 0:
                raise ValueError("amount must not be negative")
            return value
        if isinstance(value, str) and AMOUNT_RE.match(value.strip()):
            return int(value.strip())
        raise ValueError("amount must be an integer string in minor units")

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("currency is required")
        return value

    @field_serializer('amount')
    def serialize_amount(self, amount: int) -> str:
        return str(amount)

def price_fields(prefix: str, price: Optional[Price]) -> Dict[str, Any]:
    """Flatten a Price into ``<prefix>_amount``/``<prefix>_currency`` columns."""
    return {
        f'{prefix}_amount': price.amount if price else None,
        f'{prefix}_currency': price.currency if price else None
    }

def price_from(record: Dict[str, Any], prefix: str) -> Optional[Price]:
    """Rebuild a Price from flattened columns, None when unset."""
    amount = record.get(f'{prefix}_amount')
    if amount is None:
        return None
    return Price(amount=amount, currency=record[f'{prefix}_currency'])

class ListingStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    SOLD = 'SOLD'
    CANCELLED = 'CANCELLED'
    EXPIRED = 'EXPIRED'

class AssetRef(BaseModel):
    """Identifies a domain token within a chain."""
    chain_id: str
    token_contract: str
    token_id: str

class Listing(BaseModel):
    """A seller's Dutch auction for one domain token."""
    id: str
    domain: Optional[str] = None
    chain_id: str
    token_contract: str
    token_id: str
    seller: str
    start_price: Price
    reserve_price: Price
    start_at: datetime
    end_at: datetime
    status: ListingStatus
    order_id: Optional[str] = None
    sold_to: Optional[str] = None
    sold_price: Optional[Price] = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: Optional[datetime] = None
    sold_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None

    @property
    def currency(self) -> str:
        return self.start_price.currency

    @property
    def asset(self) -> AssetRef:
        return AssetRef(
            chain_id=self.chain_id,
            token_contract=self.token_contract,
            token_id=self.token_id
        )

    def current_price(self, now: Optional[datetime] = None) -> int:
        return current_price(
            self.start_price.amount,
            self.reserve_price.amount,
            self.start_at,
            self.end_at,
            now
        )

    def to_record(self) -> Dict[str, Any]:
        record = self.model_dump(exclude={'start_price', 'reserve_price', 'sold_price'})
        record['status'] = self.status.value
        record.update(price_fields('start_price', self.start_price))
        record.update(price_fields('reserve_price', self.reserve_price))
        record.update(price_fields('sold_price', self.sold_price))
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Listing':
        data = {
            key: value for key, value in record.items()
            if key in cls.model_fields
        }
        for key in ('start_at', 'end_at', 'created_at', 'updated_at',
                    'cancelled_at', 'sold_at', 'expired_at'):
            if data.get(key) is not None:
                data[key] = ensure_utc(data[key])
        data['start_price'] = price_from(record, 'start_price')
        data['reserve_price'] = price_from(record, 'reserve_price')
        data['sold_price'] = price_from(record, 'sold_price')
        return cls(**data)

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """JSON-ready view including the live price and auction phase."""
        result = self.model_dump(mode='json')
        result['current_price'] = Price(
            amount=self.current_price(now),
            currency=self.currency
        ).model_dump(mode='json')
        result['phase'] = auction_phase(self.start_at, self.end_at, now)
        result['time_remaining'] = time_remaining(self.end_at, now)
        return result
