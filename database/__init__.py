"""Database module for the marketplace record store.

This module handles:
- Connection pool initialization for PostgreSQL/CockroachDB
- Schema management
- The in-memory store used with ``memory://`` URLs
- Connection lifecycle

Managers talk to a ``Store``: named record collections (listings, offers,
auth_challenges, auth_sessions) supporting insert, filtered find/count/distinct
and filter-guarded updates.
"""

import logging
import ssl
from typing import Optional, Dict, Any
from urllib.parse import urlparse, parse_qs

import asyncpg
import backoff

from .exceptions import DatabaseError, DatabaseSchemaError, DuplicateRecordError
from .lib.filters import ASCENDING, DESCENDING
from .lib.memory_store import MemoryCollection
from .lib.postgres_store import PostgresCollection
from .lib.schema_manager import SchemaManager, latest_schema

logger = logging.getLogger(__name__)

COLLECTIONS = ('listings', 'offers', 'auth_challenges', 'auth_sessions')

class Store:
    """Named record collections backing the marketplace."""

    def __init__(self, collections: Dict[str, Any], pool: Optional[asyncpg.Pool] = None) -> None:
        self.pool = pool
        self.listings = collections['listings']
        self.offers = collections['offers']
        self.auth_challenges = collections['auth_challenges']
        self.auth_sessions = collections['auth_sessions']

    @classmethod
    def memory(cls) -> 'Store':
        """Create an in-process store honouring the schema's unique indexes."""
        tables = {table['name']: table for table in latest_schema()['tables']}
        collections = {}
        for name in COLLECTIONS:
            unique = [
                {'columns': idx['columns'], 'match': idx.get('match', {})}
                for idx in tables[name].get('indexes', [])
                if idx.get('unique')
            ]
            collections[name] = MemoryCollection(name, unique=unique)
        return cls(collections)

    @classmethod
    def postgres(cls, pool: asyncpg.Pool) -> 'Store':
        """Create a store over an asyncpg pool."""
        return cls({name: PostgresCollection(pool, name) for name in COLLECTIONS}, pool=pool)

_store: Optional[Store] = None

def _get_ssl_context() -> ssl.SSLContext:
    """Create SSL context for CockroachDB Cloud connections."""
    ssl_context = ssl.create_default_context()
    ssl_context.verify_mode = ssl.CERT_REQUIRED
    ssl_context.check_hostname = True
    return ssl_context

def _get_connection_kwargs(db_url: str) -> Dict[str, Any]:
    """Get connection kwargs from database URL.

    Args:
        db_url: Database connection URL

    Returns:
        Dict of connection parameters
    """
    params = parse_qs(urlparse(db_url).query)
    sslmode = params.get('sslmode', ['require'])[0]

    kwargs: Dict[str, Any] = {
        'server_settings': {
            'statement_timeout': '300000',  # 5 minutes
        }
    }
    if sslmode != 'disable':
        kwargs['ssl'] = _get_ssl_context()
    return kwargs

@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError, OSError),
    max_tries=5
)
async def _create_pool(url: str) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        url,
        min_size=2,          # Minimum idle connections
        max_size=20,         # Maximum connections
        max_queries=10000,   # Reset connection after this many queries
        max_inactive_connection_lifetime=300.0,  # 5 minutes
        command_timeout=60.0,  # 1 minute command timeout
        **_get_connection_kwargs(url)
    )

async def init_db(db_url: Optional[str] = None) -> Store:
    """Initialize the record store.

    Args:
        db_url: Optional database URL. If not provided, will use settings.

    Returns:
        The initialized store

    Raises:
        ValueError: If database URL is not provided
        DatabaseError: If initialization fails after retries
    """
    global _store

    # Import here to avoid circular imports
    from config import settings_conf

    url = db_url or settings_conf.get('db_url')
    if not url:
        raise ValueError("Database URL not provided")

    if url.startswith('memory://'):
        logger.info("Using in-memory record store")
        _store = Store.memory()
        return _store

    try:
        pool = await _create_pool(url)
        await SchemaManager(pool).initialize()
    except DatabaseSchemaError:
        raise
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise DatabaseError(f"Database initialization failed: {e}")

    _store = Store.postgres(pool)
    logger.info("Database pool initialized")
    return _store

def set_store(store: Optional[Store]) -> None:
    """Install an already-built store as the process-wide store."""
    global _store
    _store = store

async def get_store() -> Store:
    """Get the record store, initializing it from settings if needed.

    Raises:
        RuntimeError: If the store cannot be initialized
    """
    if not _store:
        await init_db()
    if not _store:
        raise RuntimeError("Failed to initialize record store")
    return _store

async def close() -> None:
    """Close the database connection pool."""
    global _store

    if _store and _store.pool:
        await _store.pool.close()
    _store = None

# Export public interface
__all__ = [
    'Store',
    'init_db',
    'get_store',
    'set_store',
    'close',
    'ASCENDING',
    'DESCENDING',
    'DatabaseError',
    'DuplicateRecordError'
]
