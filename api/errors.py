"""Error responses for the API.

Every error body has the shape ``{"error": {"kind", "message", "details"?}}``.
"""
import logging
from typing import Any, Dict

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from errors import MarketError

logger = logging.getLogger(__name__)

HTTP_KINDS = {
    401: 'unauthorized',
    403: 'forbidden',
    404: 'not_found',
    405: 'method_not_allowed',
    500: 'internal',
    503: 'unavailable'
}

def internal_error(action: str, e: Exception) -> HTTPException:
    """Log an unexpected failure and build a generic 500 for it."""
    logger.error(f"Failed to {action}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={'kind': 'internal', 'message': f"Failed to {action}"}
    )

async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={'error': exc.to_dict()})

async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        body: Dict[str, Any] = exc.detail
    else:
        body = {'kind': HTTP_KINDS.get(exc.status_code, 'http'), 'message': str(exc.detail)}
    return JSONResponse(
        status_code=exc.status_code,
        content={'error': body},
        headers=getattr(exc, 'headers', None)
    )

async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for error in exc.errors():
        # Drop the leading 'body'/'query' location
        location = [str(part) for part in error.get('loc', ())[1:]]
        details.append({'field': '.'.join(location), 'message': error.get('msg', '')})
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'error': {'kind': 'validation', 'message': 'Invalid request', 'details': details}}
    )
