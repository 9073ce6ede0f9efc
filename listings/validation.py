"""Input format checks shared by listings, offers and auth."""
import re
from typing import Optional

ADDRESS_RE = re.compile(r'^0x[0-9a-fA-F]{40}$')
# CAIP-2: namespace:reference
CHAIN_ID_RE = re.compile(r'^[-a-z0-9]{3,8}:[-_a-zA-Z0-9]{1,32}$')
USERNAME_RE = re.compile(r'^[a-zA-Z0-9_-]{1,32}$')

def normalize_address(value: Optional[str]) -> Optional[str]:
    """Lowercased address, or None if ``value`` is not a 20-byte hex address."""
    if not isinstance(value, str) or not ADDRESS_RE.match(value.strip()):
        return None
    return value.strip().lower()

def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive address comparison; missing values never match."""
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()

def is_chain_id(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(CHAIN_ID_RE.match(value))

def is_username(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(USERNAME_RE.match(value))
