"""Authentication module using wallet-signed challenges.

This module provides:
1. Sign-in challenges verified by recovering the EIP-191 signer
2. Single active session per address, issued as an HS256 JWT
3. A FastAPI dependency for protecting routes
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from eth_account import Account
from eth_account.messages import encode_defunct
from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError

from config import settings_conf
from database import get_store
from errors import ValidationError
from listings.validation import normalize_address, same_address
from pricing import utcnow, ensure_utc

# Configure logging
logger = logging.getLogger(__name__)

# Constants
CHALLENGE_EXPIRY_MINUTES = settings_conf['challenge_expiry_minutes']
SESSION_EXPIRY_HOURS = settings_conf['session_expiry_hours']
JWT_SECRET = settings_conf['session_secret'] or secrets.token_urlsafe(32)
JWT_ALGORITHM = "HS256"

class AuthError(Exception):
    """Base exception for authentication errors."""
    pass

class ChallengeExpiredError(AuthError):
    """Raised when a challenge has expired."""
    pass

class ChallengeUsedError(AuthError):
    """Raised when a challenge has already been used."""
    pass

class InvalidSignatureError(AuthError):
    """Raised when message signature verification fails."""
    pass

class SessionExpiredError(AuthError):
    """Raised when a session has expired."""
    pass

def build_message(address: str, nonce: str, issued_at: datetime, expires_at: datetime) -> str:
    """Sign-in message shown in the wallet."""
    domain = settings_conf['siwe_domain']
    return (
        f"{domain} wants you to sign in with your Ethereum account:\n"
        f"{address}\n\n"
        f"Sign in to the domain auction marketplace.\n\n"
        f"URI: https://{domain}\n"
        f"Version: 1\n"
        f"Nonce: {nonce}\n"
        f"Issued At: {issued_at.isoformat()}\n"
        f"Expiration Time: {expires_at.isoformat()}"
    )

def recover_signer(message: str, signature: str) -> str:
    """Lowercased address that produced an EIP-191 ``personal_sign`` signature.

    Raises:
        InvalidSignatureError: If the signature is malformed
    """
    try:
        signer = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:
        raise InvalidSignatureError(f"Malformed signature: {e}")
    return signer.lower()

class AuthManager:
    """Manages authentication challenges and sessions."""

    def __init__(self, store=None):
        """Initialize auth manager.

        Args:
            store: Optional record store. If not provided, will get from database module.
        """
        self.store = store

    async def ensure_store(self):
        """Ensure the record store is available."""
        if not self.store:
            self.store = await get_store()

    async def create_challenge(self, address: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Create a new authentication challenge.

        Args:
            address: The wallet address to authenticate

        Returns:
            Dict containing:
                - challenge_id: id of challenge
                - message: Message to sign
                - expires_at: Challenge expiration timestamp

        Raises:
            ValidationError: If the address is malformed
        """
        await self.ensure_store()

        normalized = normalize_address(address)
        if not normalized:
            raise ValidationError(
                "Invalid address",
                details=[{'field': 'address', 'message': 'Invalid address format'}]
            )

        now = ensure_utc(now) if now else utcnow()
        expires_at = now + timedelta(minutes=CHALLENGE_EXPIRY_MINUTES)
        challenge_id = str(uuid.uuid4())
        message = build_message(address, secrets.token_hex(16), now, expires_at)

        await self.store.auth_challenges.insert_one({
            'id': challenge_id,
            'address': normalized,
            'message': message,
            'expires_at': expires_at,
            'used': False,
            'created_at': now
        })

        return {
            'challenge_id': challenge_id,
            'message': message,
            'expires_at': expires_at.isoformat()
        }

    async def verify_challenge(
        self,
        challenge_id: str,
        address: str,
        signature: str,
        request: Optional[Request] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Verify a challenge signature and create session.

        Args:
            challenge_id: id of the challenge
            address: The address that signed
            signature: Hex signature over the challenge message
            request: Optional request object for session metadata

        Returns:
            Dict containing:
                - token: Session token for future requests
                - address: The authenticated address
                - expires_at: Session expiration timestamp

        Raises:
            ChallengeExpiredError: If challenge has expired
            ChallengeUsedError: If challenge was already used
            InvalidSignatureError: If signature verification fails
            AuthError: If the challenge does not exist
        """
        await self.ensure_store()
        now = ensure_utc(now) if now else utcnow()
        address = (address or '').lower()

        challenge = await self.store.auth_challenges.find_one(
            {'id': challenge_id, 'address': address}
        )
        if not challenge:
            raise AuthError("Challenge not found")
        if ensure_utc(challenge['expires_at']) < now:
            raise ChallengeExpiredError("Challenge has expired")
        if challenge['used']:
            raise ChallengeUsedError("Challenge has already been used")

        if not same_address(recover_signer(challenge['message'], signature), address):
            raise InvalidSignatureError("Invalid signature")

        # Guarded so a challenge can only ever be redeemed once
        redeemed = await self.store.auth_challenges.update_one(
            {'id': challenge_id, 'used': False},
            {'$set': {'used': True}}
        )
        if not redeemed:
            raise ChallengeUsedError("Challenge has already been used")

        expires_at = now + timedelta(hours=SESSION_EXPIRY_HOURS)
        token = jwt.encode(
            {
                'sub': address,
                'iat': int(now.timestamp()),
                'exp': int(expires_at.timestamp()),
                'jti': secrets.token_hex(8)
            },
            JWT_SECRET,
            algorithm=JWT_ALGORITHM
        )

        await self.clear_all_sessions(address, now)

        await self.store.auth_sessions.insert_one({
            'id': str(uuid.uuid4()),
            'address': address,
            'token': token,
            'expires_at': expires_at,
            'revoked': False,
            'revoked_at': None,
            'last_used_at': None,
            'user_agent': request.headers.get('user-agent') if request else None,
            'ip_address': request.client.host if request and request.client else None,
            'created_at': now
        })

        logger.info(f"Session created for {address}")
        return {
            'token': token,
            'address': address,
            'expires_at': expires_at.isoformat()
        }

    async def verify_session(
        self,
        token: str,
        request: Optional[Request] = None,
        now: Optional[datetime] = None
    ) -> str:
        """Verify a session token.

        Returns:
            The authenticated lowercase address

        Raises:
            SessionExpiredError: If session has expired
            AuthError: For other verification errors
        """
        await self.ensure_store()
        now = ensure_utc(now) if now else utcnow()

        try:
            payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
            address = payload['sub']
        except ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except (JWTError, KeyError) as e:
            raise AuthError(f"Invalid token: {e}")

        session = await self.store.auth_sessions.find_one(
            {'address': address, 'token': token, 'revoked': False}
        )
        if not session:
            raise AuthError("Session not found or revoked")
        if ensure_utc(session['expires_at']) < now:
            raise SessionExpiredError("Session has expired")

        if request:
            await self.store.auth_sessions.update_one(
                {'id': session['id']},
                {'$set': {
                    'last_used_at': now,
                    'user_agent': request.headers.get('user-agent'),
                    'ip_address': request.client.host if request.client else None
                }}
            )

        return address

    async def logout(self, address: str, now: Optional[datetime] = None):
        """Log out by revoking the active session."""
        await self.clear_all_sessions(address, now)
        logger.info(f"Logged out {address}")

    async def clear_all_sessions(self, address: str, now: Optional[datetime] = None) -> int:
        """Revoke every live session for an address."""
        await self.ensure_store()
        now = ensure_utc(now) if now else utcnow()
        return await self.store.auth_sessions.update_many(
            {'address': address.lower(), 'revoked': False},
            {'$set': {'revoked': True, 'revoked_at': now}}
        )

# Create global instance
manager = AuthManager()

# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=True,  # Return 401 automatically if token is missing
    description="JWT Bearer token required"
)

async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)
) -> str:
    """FastAPI dependency for getting the authenticated address.

    Raises:
        HTTPException: 401 if authentication fails
    """
    try:
        return await manager.verify_session(credentials.credentials, request)
    except SessionExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired"
        )
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

# Export public interface
__all__ = [
    'manager',
    'AuthManager',
    'AuthError',
    'ChallengeExpiredError',
    'ChallengeUsedError',
    'InvalidSignatureError',
    'SessionExpiredError',
    'auth_scheme',
    'get_current_user',
    'recover_signer'
]
