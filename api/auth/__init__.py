"""Authentication API endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request, status, Security
from pydantic import BaseModel

from auth import (
    manager, get_current_user, AuthError, ChallengeExpiredError,
    ChallengeUsedError, InvalidSignatureError
)
from errors import MarketError
from ..errors import internal_error

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)

class ChallengeRequest(BaseModel):
    """Request model for creating a challenge."""
    address: str

class ChallengeResponse(BaseModel):
    """Response model for challenge creation."""
    challenge_id: str
    message: str
    expires_at: str

class VerifyRequest(BaseModel):
    """Request model for verifying a challenge."""
    challenge_id: str
    address: str
    signature: str

class LoginResponse(BaseModel):
    """Response model for login."""
    token: str
    address: str
    expires_at: str

@router.post("/challenge", response_model=ChallengeResponse)
async def create_challenge(request: ChallengeRequest):
    """Create a new sign-in challenge for a wallet address."""
    try:
        return await manager.create_challenge(request.address)
    except MarketError:
        raise
    except Exception as e:
        raise internal_error("create challenge", e)

@router.post("/login", response_model=LoginResponse)
async def login(request: VerifyRequest, fastapi_request: Request):
    """Verify a challenge signature and create session."""
    try:
        return await manager.verify_challenge(
            request.challenge_id,
            request.address,
            request.signature,
            fastapi_request
        )
    except (ChallengeExpiredError, ChallengeUsedError, InvalidSignatureError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={'kind': 'validation', 'message': str(e)}
        )
    except Exception as e:
        raise internal_error("log in", e)

@router.post("/logout")
async def logout(current_user: str = Security(get_current_user)) -> Dict[str, Any]:
    """Log out by revoking the current session."""
    try:
        await manager.logout(current_user)
        return {"success": True}
    except Exception as e:
        raise internal_error("log out", e)

@router.get("/me")
async def me(current_user: str = Security(get_current_user)) -> Dict[str, Any]:
    """Get the authenticated address."""
    return {"address": current_user}
