"""Header-based auth dependencies for the CoffeeCoin API.

Identity is established upstream (wallet login); this module only reads the
result of that step and guards admin routes with a shared key.
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from .config import Config, get_config
from .utils import is_valid_ethereum_address

logger = logging.getLogger(__name__)


def require_wallet(x_wallet_address: Optional[str] = Header(None)) -> str:
    """Return the authenticated user's wallet address.

    Raises:
        HTTPException: 401 when the header is missing or not an address.
    """
    if not x_wallet_address or not is_valid_ethereum_address(x_wallet_address):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User or wallet not authenticated/found.",
        )
    return x_wallet_address


def require_admin(
    x_api_key: Optional[str] = Header(None),
    config: Config = Depends(get_config),
) -> None:
    """Check the admin key header when ADMIN_API_KEY is configured."""
    if not config.admin_api_key:
        logger.warning("ADMIN_API_KEY is not set; admin routes are unprotected.")
        return
    if not x_api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-API-KEY")
    if not hmac.compare_digest(x_api_key, config.admin_api_key):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API key")
