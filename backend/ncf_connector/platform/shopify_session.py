"""
Shopify session authentication for the embedded app.

Shopify embedded apps use session tokens (JWTs) signed by Shopify with the
app's API secret. A verified token names the shop; the shop's offline access
token is then loaded from the `shopify_sessions` table to build an Admin API
client for the request.

This is the only step allowed to fail a request outright.

Documentation: https://shopify.dev/docs/apps/auth/oauth/session-tokens
"""

import logging
from typing import AsyncGenerator, Optional
from dataclasses import dataclass

import jwt
from fastapi import Depends, Request, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ncf_connector.config.settings import get_settings
from ncf_connector.database.session import get_db_session
from ncf_connector.integrations.shopify.admin_client import ShopifyAdminClient, get_admin_client
from ncf_connector.models.shopify_session import ShopifySession

logger = logging.getLogger(__name__)

# Security scheme for extracting Bearer token
security = HTTPBearer(auto_error=False)


def normalize_shop_domain(value: str) -> str:
    return value.replace("https://", "").replace("http://", "").rstrip("/").lower()


@dataclass
class AuthenticatedSession:
    """
    Per-request Shopify context.

    SECURITY: access_token must never be logged or returned to the client.
    """
    shop_domain: str
    access_token: str
    admin: ShopifyAdminClient
    user_id: Optional[str] = None


class ShopifySessionTokenVerifier:
    """
    Verifies Shopify session tokens (JWTs).

    Session tokens are signed with HS256 using the app's API secret.
    """

    def __init__(self, api_key: str, api_secret: str):
        if not api_key:
            raise ValueError("SHOPIFY_API_KEY environment variable is required")
        if not api_secret:
            raise ValueError("SHOPIFY_API_SECRET environment variable is required")

        self.api_key = api_key
        self.api_secret = api_secret

    def verify_session_token(self, token: str) -> tuple[str, Optional[str]]:
        """
        Verify a Shopify session token.

        Args:
            token: JWT session token from Shopify

        Returns:
            (shop_domain, user_id) from the 'dest' and 'sub' claims

        Raises:
            HTTPException: If token is invalid, expired, or verification fails
        """
        try:
            # Shopify signs with HS256 using API secret; 'aud' is the API key
            payload = jwt.decode(
                token,
                self.api_secret,
                algorithms=["HS256"],
                audience=self.api_key,
                options={"verify_iat": False},
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Session token expired")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session token has expired"
            )
        except jwt.InvalidAudienceError:
            logger.warning("Session token invalid audience")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session token has invalid audience"
            )
        except jwt.InvalidSignatureError:
            logger.warning("Session token invalid signature")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session token signature is invalid"
            )
        except jwt.InvalidTokenError as e:
            logger.warning("Session token rejected", extra={"error": str(e)})
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session token is malformed"
            )

        # 'dest' contains the shop URL (e.g., "https://mystore.myshopify.com")
        dest = payload.get("dest")
        if not dest:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session token missing 'dest' claim"
            )

        shop_domain = normalize_shop_domain(dest)
        logger.debug("Session token verified", extra={"shop_domain": shop_domain})
        return shop_domain, payload.get("sub")


def get_session_token_verifier() -> ShopifySessionTokenVerifier:
    """
    Build the verifier from settings.

    Raises:
        HTTPException: 503 if Shopify API credentials are not configured
    """
    settings = get_settings()
    try:
        return ShopifySessionTokenVerifier(settings.shopify_api_key, settings.shopify_api_secret)
    except ValueError as e:
        logger.error("Shopify authentication not configured", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Shopify authentication not configured"
        )


def load_offline_access_token(db: Session, shop_domain: str) -> Optional[str]:
    """Get the stored offline access token for a shop, if any."""
    session = db.query(ShopifySession).filter(
        ShopifySession.shop == shop_domain,
        ShopifySession.is_online == False,  # noqa: E712
        ShopifySession.access_token.isnot(None)
    ).order_by(ShopifySession.updated_at.desc()).first()
    return session.access_token if session else None


async def get_authenticated_session(
    request: Request,
    db: Session = Depends(get_db_session),
) -> AsyncGenerator[AuthenticatedSession, None]:
    """
    FastAPI dependency yielding the authenticated Shopify context.

    The session token is read from the Authorization header, falling back to
    the `id_token` query parameter Shopify appends on document loads.

    Raises:
        HTTPException: 401 if the token is missing/invalid or the shop has no stored session
    """
    credentials: Optional[HTTPAuthorizationCredentials] = await security(request)
    token = credentials.credentials if credentials else request.query_params.get("id_token")

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization token"
        )

    verifier = get_session_token_verifier()
    shop_domain, user_id = verifier.verify_session_token(token)

    access_token = load_offline_access_token(db, shop_domain)
    if not access_token:
        logger.warning("No stored access session for shop", extra={"shop_domain": shop_domain})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Shop has not completed installation"
        )

    admin = get_admin_client(shop_domain, access_token)
    try:
        yield AuthenticatedSession(
            shop_domain=shop_domain,
            access_token=access_token,
            admin=admin,
            user_id=user_id,
        )
    finally:
        await admin.close()
