"""Shared FastAPI dependencies."""
from typing import Optional

from fastapi import Request

from settlement import OrderbookClient
from subgraph import SubgraphClient

def get_settlement(request: Request) -> Optional[OrderbookClient]:
    """The orderbook client built at startup, None when settlement is disabled."""
    return getattr(request.app.state, 'settlement', None)

def get_subgraph(request: Request) -> Optional[SubgraphClient]:
    """The indexer client built at startup, None when lookups are disabled."""
    return getattr(request.app.state, 'subgraph', None)
