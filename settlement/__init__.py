"""Settlement module for talking to the on-chain orderbook API.

The orderbook API mirrors offers on chain. Calls are side effects of local
state changes: managers invoke them through ``best_effort`` which bounds them by
a timeout and turns any failure into ``None``.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import requests

from config import settings_conf

logger = logging.getLogger(__name__)

class SettlementError(Exception):
    """Raised when an orderbook API call fails."""
    def __init__(self, message: str, code: Optional[int] = None, method: Optional[str] = None):
        self.code = code
        self.method = method
        super().__init__(f"Settlement Error [{code}] in {method}: {message}" if code else message)

class OrderbookClient:
    """Blocking HTTP client for the orderbook API."""

    def __init__(self, api_url: str, api_key: str = '', timeout: float = 10.0):
        """Initialize the client.

        Args:
            api_url: Base URL of the orderbook API
            api_key: Key sent in the ``Api-Key`` header
            timeout: Per-request timeout in seconds
        """
        self.url = api_url.rstrip('/')
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers['content-type'] = 'application/json'
        if api_key:
            self.session.headers['Api-Key'] = api_key

    def _call(self, method: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST ``payload`` to ``path`` and return the decoded JSON body.

        Raises:
            SettlementError: On connection failures, timeouts, HTTP errors or
                malformed responses
        """
        try:
            response = self.session.post(f"{self.url}{path}", json=payload, timeout=self.timeout)

            if response.status_code in (401, 403):
                raise SettlementError(
                    "Authentication failed - check orderbook_api_key",
                    response.status_code,
                    method
                )

            result = response.json()
            if isinstance(result, dict) and result.get('error'):
                error = result['error']
                message = error.get('message', 'Unknown error') if isinstance(error, dict) else str(error)
                raise SettlementError(message, response.status_code, method)

            response.raise_for_status()
            return result

        except requests.exceptions.Timeout as e:
            raise SettlementError(f"Request timed out after {self.timeout} seconds", method=method) from e
        except requests.exceptions.ConnectionError as e:
            raise SettlementError(f"Failed to connect to orderbook API at {self.url}", method=method) from e
        except requests.exceptions.RequestException as e:
            raise SettlementError(f"Request failed: {e}", method=method) from e
        except ValueError as e:
            raise SettlementError(f"Invalid response format: {e}", method=method) from e

    def create_offer(self, token_contract: str, token_id: str, chain_id: str, price: Any) -> Dict[str, Any]:
        """Register an offer on chain.

        Returns:
            Dict with ``offer_id`` and ``transaction_hash``
        """
        result = self._call('create_offer', '/v1/orderbook/offer', {
            'tokenContract': token_contract,
            'tokenId': token_id,
            'chainId': chain_id,
            'price': str(price.amount),
            'currency': price.currency
        })
        try:
            return {
                'offer_id': result['offerId'],
                'transaction_hash': result.get('transactionHash')
            }
        except (KeyError, TypeError) as e:
            raise SettlementError(f"Invalid response format: {e}", method='create_offer') from e

    def accept_offer(self, offer_id: str) -> Dict[str, Any]:
        """Accept an on-chain offer; returns ``transaction_hash``."""
        return self._transaction('accept_offer', '/v1/orderbook/accept', offer_id)

    def cancel_offer(self, offer_id: str) -> Dict[str, Any]:
        """Cancel an on-chain offer; returns ``transaction_hash``."""
        return self._transaction('cancel_offer', '/v1/orderbook/offer/cancel', offer_id)

    def _transaction(self, method: str, path: str, offer_id: str) -> Dict[str, Any]:
        result = self._call(method, path, {'offerId': offer_id})
        try:
            return {'transaction_hash': result['transactionHash']}
        except (KeyError, TypeError) as e:
            raise SettlementError(f"Invalid response format: {e}", method=method) from e

def create_client(settings: Optional[Dict[str, Any]] = None) -> Optional[OrderbookClient]:
    """Build the orderbook client from settings, None when no API URL is set."""
    settings = settings or settings_conf
    if not settings.get('orderbook_api_url'):
        logger.info("No orderbook_api_url configured, settlement calls disabled")
        return None
    return OrderbookClient(
        settings['orderbook_api_url'],
        settings.get('orderbook_api_key', ''),
        timeout=settings['settlement_timeout_seconds']
    )

async def best_effort(
    description: str,
    call: Callable[..., Dict[str, Any]],
    *args: Any,
    timeout: float
) -> Optional[Dict[str, Any]]:
    """Run a blocking settlement call in a worker thread.

    Returns the call's result, or None if it raised SettlementError or did not
    finish within ``timeout`` seconds. Local state is never rolled back.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(call, *args), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{description} timed out after {timeout} seconds")
    except SettlementError as e:
        logger.warning(f"{description} failed: {e}")
    return None

__all__ = [
    'OrderbookClient',
    'SettlementError',
    'create_client',
    'best_effort'
]
