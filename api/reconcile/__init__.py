"""Reconciliation API endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, status

from reconcile import ReconciliationSweeper, ReconcileError
from ..errors import internal_error

router = APIRouter(
    prefix="/reconcile",
    tags=["Reconciliation"]
)

@router.post("")
async def reconcile() -> Dict[str, Any]:
    """Expire ended listings and their active offers now."""
    try:
        result = await ReconciliationSweeper().reconcile()
        return dict(result, success=True)
    except ReconcileError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={'kind': 'reconcile', 'message': f"Reconciliation failed at step '{e.step}'"}
        )
    except Exception as e:
        raise internal_error("reconcile", e)

@router.get("")
async def preview() -> Dict[str, Any]:
    """Report what a reconciliation would expire, without changing anything."""
    try:
        return await ReconciliationSweeper().preview()
    except Exception as e:
        raise internal_error("preview reconciliation", e)
