import re
import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.config import settings


SOLANA_ADDRESS_REGEX = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def is_solana_wallet_address(wallet_address: str) -> bool:
    """Return True when wallet address format is Solana (base58, 32-44 chars)."""
    return SOLANA_ADDRESS_REGEX.fullmatch(wallet_address.strip()) is not None


def require_wallet(wallet_address: str) -> str:
    address = wallet_address.strip()
    if not is_solana_wallet_address(address):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported wallet_address format. Expected a Solana address.",
        )
    return address


async def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    """Guard for admin endpoints: X-Admin-Token must match ADMIN_API_TOKEN."""
    if not settings.admin_api_token:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin endpoints are disabled",
        )
    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.admin_api_token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
        )
