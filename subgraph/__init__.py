"""Subgraph module for querying the domain indexer.

The indexer exposes a GraphQL endpoint listing the names an account owns and
the tokens backing each name. It is read-only: lookups feed the listing form
and never change local state.
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from config import settings_conf

logger = logging.getLogger(__name__)

DOMAINS_QUERY = """
  query GetUserDomains($ownedBy: [AddressCAIP10!]!, $take: Int = 50) {
    names(
      ownedBy: $ownedBy
      take: $take
      sortOrder: DESC
    ) {
      items {
        name
        tokens {
          tokenId
          tokenAddress
          networkId
          ownerAddress
        }
      }
    }
  }
"""

class SubgraphError(Exception):
    """Raised when an indexer query fails."""
    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(f"Subgraph Error [{code}]: {message}" if code else message)

class SubgraphClient:
    """Blocking GraphQL client for the domain indexer."""

    def __init__(self, api_url: str, api_key: str = '', timeout: float = 10.0):
        """Initialize the client.

        Args:
            api_url: Base URL of the indexer API, ``/graphql`` is appended
            api_key: Key sent in the ``Api-Key`` header
            timeout: Per-request timeout in seconds
        """
        self.url = f"{api_url.rstrip('/')}/graphql"
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers['content-type'] = 'application/json'
        if api_key:
            self.session.headers['Api-Key'] = api_key

    def query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Run a GraphQL query and return its ``data`` member.

        Raises:
            SubgraphError: On connection failures, timeouts, HTTP errors,
                GraphQL errors or malformed responses
        """
        try:
            response = self.session.post(
                self.url,
                json={'query': query, 'variables': variables},
                timeout=self.timeout
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.Timeout as e:
            raise SubgraphError(f"Request timed out after {self.timeout} seconds") from e
        except requests.exceptions.ConnectionError as e:
            raise SubgraphError(f"Failed to connect to indexer at {self.url}") from e
        except requests.exceptions.HTTPError as e:
            raise SubgraphError(f"Request failed: {e}", e.response.status_code if e.response is not None else None) from e
        except requests.exceptions.RequestException as e:
            raise SubgraphError(f"Request failed: {e}") from e
        except ValueError as e:
            raise SubgraphError(f"Invalid response format: {e}") from e

        if not isinstance(result, dict):
            raise SubgraphError("Invalid response format: expected an object")
        if result.get('errors'):
            messages = [
                error.get('message', 'Unknown error') if isinstance(error, dict) else str(error)
                for error in result['errors']
            ]
            raise SubgraphError('; '.join(messages))
        if not isinstance(result.get('data'), dict):
            raise SubgraphError("Invalid response format: missing data")
        return result['data']

    def fetch_owned_domains(self, owner: str, chain_id: str, take: int = 50) -> List[Dict[str, Any]]:
        """Domain tokens held by ``owner`` on ``chain_id``.

        Args:
            owner: Owner address, matched case-insensitively
            chain_id: CAIP-2 chain id; tokens on other chains are dropped
            take: Maximum names requested from the indexer

        Returns:
            List of dicts with ``token_id``, ``token_contract``, ``chain_id``
            and ``name``
        """
        data = self.query(DOMAINS_QUERY, {
            'ownedBy': [f"{chain_id}:{owner.lower()}"],
            'take': take
        })

        domains = []
        try:
            for item in data['names']['items']:
                for token in item['tokens']:
                    if token['networkId'] != chain_id:
                        continue
                    domains.append({
                        'token_id': str(token['tokenId']),
                        'token_contract': token['tokenAddress'].lower(),
                        'chain_id': chain_id,
                        'name': item['name']
                    })
        except (KeyError, TypeError, AttributeError) as e:
            raise SubgraphError(f"Invalid response format: {e}") from e

        logger.debug(f"Indexer returned {len(domains)} domain(s) for {owner} on {chain_id}")
        return domains

def create_client(settings: Optional[Dict[str, Any]] = None) -> Optional[SubgraphClient]:
    """Build the indexer client from settings, None when no API URL is set."""
    settings = settings or settings_conf
    if not settings.get('subgraph_api_url'):
        logger.info("No subgraph_api_url configured, domain lookups disabled")
        return None
    return SubgraphClient(
        settings['subgraph_api_url'],
        settings.get('subgraph_api_key', ''),
        timeout=settings['subgraph_timeout_seconds']
    )

__all__ = [
    'SubgraphClient',
    'SubgraphError',
    'create_client'
]
