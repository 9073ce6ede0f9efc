"""Schema v1 - Initial marketplace schema.

This version includes tables for:
- Dutch auction listings
- Offers against listings
- Authentication challenges and sessions

Token amounts are NUMERIC(78, 0) so 256-bit integers fit without rounding.
Partial unique indexes carry a ``match`` filter mirroring their ``where``
clause for the in-memory store.
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'listings',
            'columns': [
                {'name': 'id', 'type': 'TEXT', 'primary_key': True},
                {'name': 'domain', 'type': 'TEXT'},
                {'name': 'chain_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'token_contract', 'type': 'TEXT', 'nullable': False},
                {'name': 'token_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'seller', 'type': 'TEXT', 'nullable': False},
                {'name': 'start_price_amount', 'type': 'NUMERIC(78, 0)', 'nullable': False},
                {'name': 'start_price_currency', 'type': 'TEXT', 'nullable': False},
                {'name': 'reserve_price_amount', 'type': 'NUMERIC(78, 0)', 'nullable': False},
                {'name': 'reserve_price_currency', 'type': 'TEXT', 'nullable': False},
                {'name': 'start_at', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'end_at', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'ACTIVE'"},
                {'name': 'order_id', 'type': 'TEXT'},
                {'name': 'sold_to', 'type': 'TEXT'},
                {'name': 'sold_price_amount', 'type': 'NUMERIC(78, 0)'},
                {'name': 'sold_price_currency', 'type': 'TEXT'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'cancelled_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'sold_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'expired_at', 'type': 'TIMESTAMPTZ'}
            ],
            'indexes': [
                {'name': 'idx_listings_seller', 'columns': ['seller']},
                {'name': 'idx_listings_created', 'columns': ['created_at']},
                {'name': 'idx_listings_status_end', 'columns': ['status', 'end_at']},
                {
                    'name': 'idx_listings_active_asset',
                    'columns': ['chain_id', 'token_contract', 'token_id'],
                    'unique': True,
                    'where': "status = 'ACTIVE'",
                    'match': {'status': 'ACTIVE'}
                }
            ]
        },
        {
            'name': 'offers',
            'columns': [
                {'name': 'id', 'type': 'TEXT', 'primary_key': True},
                {'name': 'listing_id', 'type': 'TEXT', 'nullable': False},
                {'name': 'bidder', 'type': 'TEXT', 'nullable': False},
                {'name': 'username', 'type': 'TEXT'},
                {'name': 'price_amount', 'type': 'NUMERIC(78, 0)', 'nullable': False},
                {'name': 'price_currency', 'type': 'TEXT', 'nullable': False},
                {'name': 'settlement_offer_id', 'type': 'TEXT'},
                {'name': 'settlement_tx_hash', 'type': 'TEXT'},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'ACTIVE'"},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'accepted_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'rejected_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'cancelled_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'expired_at', 'type': 'TIMESTAMPTZ'}
            ],
            'foreign_keys': [
                {'columns': ['listing_id'], 'references': 'listings(id)'}
            ],
            'indexes': [
                {'name': 'idx_offers_listing_status', 'columns': ['listing_id', 'status']},
                {'name': 'idx_offers_bidder', 'columns': ['bidder']},
                {
                    'name': 'idx_offers_active_bidder',
                    'columns': ['listing_id', 'bidder'],
                    'unique': True,
                    'where': "status = 'ACTIVE'",
                    'match': {'status': 'ACTIVE'}
                }
            ]
        },
        {
            'name': 'auth_challenges',
            'columns': [
                {'name': 'id', 'type': 'TEXT', 'primary_key': True},
                {'name': 'address', 'type': 'TEXT', 'nullable': False},
                {'name': 'message', 'type': 'TEXT', 'nullable': False},
                {'name': 'expires_at', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'used', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_auth_challenges_address', 'columns': ['address']}
            ]
        },
        {
            'name': 'auth_sessions',
            'columns': [
                {'name': 'id', 'type': 'TEXT', 'primary_key': True},
                {'name': 'address', 'type': 'TEXT', 'nullable': False},
                {'name': 'token', 'type': 'TEXT', 'nullable': False},
                {'name': 'expires_at', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'revoked', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'revoked_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'last_used_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'user_agent', 'type': 'TEXT'},
                {'name': 'ip_address', 'type': 'TEXT'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_auth_sessions_address', 'columns': ['address']},
                {'name': 'idx_auth_sessions_token', 'columns': ['token']}
            ]
        }
    ],
    'migrations': []
}
