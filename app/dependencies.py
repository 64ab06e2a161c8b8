"""
Async Dependencies for Authentication and external collaborators
"""
import logging

import jwt
from fastapi import Header, HTTPException, Request, status

import config
from app.services.change_feed import get_change_feed as _get_change_feed
from app.services.midtrans_service import MidtransGateway

logger = logging.getLogger(__name__)


async def get_current_streamer(request: Request) -> str:
    """
    Validates the operator's bearer JWT and returns the streamer id (`sub`).
    """
    auth_header = request.headers.get('authorization') or request.headers.get('Authorization')
    if not auth_header or not auth_header.lower().startswith('bearer '):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization token missing."
        )
    if not config.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY not set - rejecting operator request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Operator authentication is not configured."
        )

    token = auth_header.split(' ', 1)[1].strip()
    try:
        claims = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired."
        )
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected operator token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token."
        )

    streamer_id = claims.get("sub")
    if not streamer_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject."
        )
    return str(streamer_id)


def get_payment_gateway():
    return MidtransGateway()


def get_change_feed():
    return _get_change_feed()


async def verify_internal_secret(
    secret: str = Header(..., alias="X-Secret", description="Secret key for internal calls"),
) -> None:
    if not config.INTERNAL_CRON_SECRET or secret != config.INTERNAL_CRON_SECRET:
        logger.error("UNAUTHORIZED internal call: invalid secret key")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid secret key")
