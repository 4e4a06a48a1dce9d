# app/core/security.py
"""
Bearer-token authentication against the configured identity provider.

Provides functionality for:
- JWKS (JSON Web Key Set) fetching, located through OIDC discovery, with a time-based in-memory cache.
- JWT validation (signature, expiry, issuer, audience) with python-jose.
- Header credentials for the Testing environment.
- FastAPI dependencies returning the caller's claim set and resolved Identity.

Only claims are interpreted here; which provider issued the token is a
matter of OIDC_AUTHORITY / OIDC_AUDIENCE / OIDC_JWKS_URL configuration.

Example Usage in Endpoints:
    ```python
    from fastapi import APIRouter, Depends
    from app.core.identity import Identity
    from app.core.security import get_current_identity

    router = APIRouter()

    @router.get("/whoami")
    async def whoami(identity: Identity = Depends(get_current_identity)):
        return {"externalId": identity.external_id, "isAdmin": identity.is_admin}
    ```
"""

import logging
import httpx
from typing import Dict, Any, Optional
from datetime import datetime, timedelta, timezone

from jose import jwt, exceptions as jose_exceptions

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .config import settings
from .identity import Identity, resolve_identity

logger = logging.getLogger(__name__)

# --- Custom Exceptions ---
class SecurityError(Exception):
    """Base class for security-related exceptions."""
    pass

class JWKSFetchError(SecurityError):
    """Raised when there is an error fetching or parsing the JWKS."""
    pass

class TokenValidationError(SecurityError):
    """Raised when token validation fails (expiry, signature, claims, etc.)."""
    pass

# --- Header credentials (Testing environment only) ---
TEST_USER_ID_HEADER = "X-Test-User-Id"
TEST_USER_NAME_HEADER = "X-Test-User-Name"
TEST_USER_EMAIL_HEADER = "X-Test-User-Email"
TEST_USER_ROLES_HEADER = "X-Test-User-Roles"
DEFAULT_TEST_USER_NAME = "Test User"
DEFAULT_TEST_USER_EMAIL = "test.user@contoso.com"

# --- JWKS Handling ---
_jwks_cache: Optional[Dict[str, Any]] = None
_jwks_cache_timestamp: Optional[datetime] = None
_jwks_uri: Optional[str] = None
JWKS_CACHE_TTL = timedelta(hours=1)
DISCOVERY_PATH = "/.well-known/openid-configuration"


def get_discovery_url() -> Optional[str]:
    """OpenID Connect discovery document of the configured authority."""
    if settings.OIDC_AUTHORITY:
        return f"{settings.OIDC_AUTHORITY.rstrip('/')}{DISCOVERY_PATH}"
    return None


async def get_jwks_url(client: httpx.AsyncClient) -> str:
    """
    JWKS location: the OIDC_JWKS_URL override, else the `jwks_uri` advertised
    by the authority's discovery document (cached with the keys).
    """
    global _jwks_uri

    if settings.OIDC_JWKS_URL:
        return settings.OIDC_JWKS_URL
    if _jwks_uri:
        return _jwks_uri

    discovery_url = get_discovery_url()
    if not discovery_url:
        raise JWKSFetchError("Cannot fetch JWKS: neither OIDC_JWKS_URL nor OIDC_AUTHORITY is configured.")

    logger.info(f"Fetching OpenID configuration from {discovery_url}...")
    response = await client.get(discovery_url)
    response.raise_for_status()

    document = response.json()
    jwks_uri = document.get("jwks_uri") if isinstance(document, dict) else None
    if not jwks_uri:
        raise JWKSFetchError(f"OpenID configuration at {discovery_url} has no 'jwks_uri'.")

    _jwks_uri = jwks_uri
    return jwks_uri


async def get_jwks() -> Dict[str, Any]:
    """
    Fetches the JWKS keys from the identity provider.
    Uses a simple time-based in-memory cache. Raises JWKSFetchError on failure.
    """
    global _jwks_cache, _jwks_cache_timestamp

    if _jwks_cache and _jwks_cache_timestamp and \
       (datetime.now(timezone.utc) - _jwks_cache_timestamp < JWKS_CACHE_TTL):
        logger.debug(f"Returning JWKS from cache (timestamp: {_jwks_cache_timestamp}).")
        return _jwks_cache

    if not settings.OIDC_JWKS_URL and not settings.OIDC_AUTHORITY:
        err_msg = "Cannot fetch JWKS: neither OIDC_JWKS_URL nor OIDC_AUTHORITY is configured."
        logger.error(err_msg)
        raise JWKSFetchError(err_msg)

    source = settings.OIDC_JWKS_URL or get_discovery_url()
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            jwks_url = await get_jwks_url(client)
            source = jwks_url

            logger.info(f"Fetching JWKS keys from {jwks_url}...")
            response = await client.get(jwks_url)
            response.raise_for_status()

            jwks = response.json()
            if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
                raise JWKSFetchError("Invalid JWKS format received: 'keys' array not found.")

            logger.info(f"Fetched {len(jwks['keys'])} JWKS keys. Updating cache.")
            _jwks_cache = jwks
            _jwks_cache_timestamp = datetime.now(timezone.utc)
            return jwks

    except httpx.TimeoutException as e:
        raise JWKSFetchError(f"Timeout while trying to fetch JWKS from {source}: {e}")
    except httpx.HTTPError as e:
        raise JWKSFetchError(f"HTTP error fetching JWKS from {source}: {e}")
    except ValueError as e:
        raise JWKSFetchError(f"Error parsing JSON response from {source}: {e}")


def clear_jwks_cache():
    """Clears the cached keys and discovered JWKS location, forcing a fresh fetch on the next call to get_jwks."""
    global _jwks_cache, _jwks_cache_timestamp, _jwks_uri
    _jwks_cache = None
    _jwks_cache_timestamp = None
    _jwks_uri = None
    logger.info("Cleared JWKS cache.")


# --- JWT Validation Function ---

async def validate_token(token: str) -> Dict[str, Any]:
    """
    Decodes and validates a JWT using the provider's public keys.

    Args:
        token: The encoded JWT string (access token).

    Returns:
        The decoded token payload (dictionary) if validation is successful.

    Raises:
        TokenValidationError: If provider config is missing or validation fails.
        JWKSFetchError: If fetching the JWKS keys fails.
    """
    if not settings.OIDC_AUTHORITY or not settings.OIDC_AUDIENCE:
        raise TokenValidationError("OIDC authority or audience not configured.")

    jwks = await get_jwks()

    try:
        unverified_header = jwt.get_unverified_header(token)
    except jose_exceptions.JWTError as e:
        raise TokenValidationError(f"Error getting unverified header from token: {e}")
    if "kid" not in unverified_header:
        raise TokenValidationError("JWT header does not contain 'kid' (Key ID).")
    key_id = unverified_header["kid"]

    key_found = next((key for key in jwks["keys"] if key.get("kid") == key_id), None)
    if not key_found:
        # Keys may have rotated; the next request refetches
        clear_jwks_cache()
        raise TokenValidationError(f"Public key with kid '{key_id}' not found in JWKS (cache cleared).")

    try:
        payload = jwt.decode(
            token,
            key_found,
            algorithms=["RS256"],
            audience=settings.OIDC_AUDIENCE,
            issuer=settings.OIDC_AUTHORITY,
        )
        logger.debug("Token successfully validated.")
        return payload
    except jose_exceptions.ExpiredSignatureError:
        raise TokenValidationError("Token validation failed: Expired signature.")
    except jose_exceptions.JWTClaimsError as e:
        raise TokenValidationError(f"Token validation failed: Invalid claims - {e}")
    except jose_exceptions.JWTError as e:
        raise TokenValidationError(f"Token validation failed: Invalid token - {e}")


def claims_from_test_headers(request: Request) -> Optional[Dict[str, Any]]:
    """Builds a claim set from X-Test-User-* headers, or None without a user id."""
    user_id = request.headers.get(TEST_USER_ID_HEADER, "").strip()
    if not user_id:
        return None

    roles_header = request.headers.get(TEST_USER_ROLES_HEADER, "")
    return {
        "oid": user_id,
        "name": request.headers.get(TEST_USER_NAME_HEADER, DEFAULT_TEST_USER_NAME),
        "preferred_username": request.headers.get(TEST_USER_EMAIL_HEADER, DEFAULT_TEST_USER_EMAIL),
        "roles": [role.strip() for role in roles_header.split(",") if role.strip()],
    }


# --- FastAPI Dependencies ---

bearer_scheme = HTTPBearer(auto_error=False)

async def get_current_user_payload(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Dict[str, Any]:
    """
    Returns the authenticated caller's claim set.

    Raises:
        HTTPException(401): If credentials are missing, invalid or expired.
        HTTPException(500): If the provider's keys cannot be retrieved.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if settings.is_testing:
        claims = claims_from_test_headers(request)
        if claims is None:
            logger.warning("Authentication attempt failed: missing test user id header.")
            raise credentials_exception
        return claims

    if credentials is None:
        logger.warning("Authentication attempt failed: No token provided.")
        raise credentials_exception

    try:
        return await validate_token(credentials.credentials)
    except TokenValidationError as e:
        logger.warning(f"Authentication failed: {e}")
        raise credentials_exception from e
    except JWKSFetchError as e:
        logger.error(f"Authentication failed due to JWKS fetch error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred during authentication.",
        ) from e


async def get_current_identity(
    payload: Dict[str, Any] = Depends(get_current_user_payload),
) -> Identity:
    """Resolves the caller's Identity from the authenticated claim set."""
    return resolve_identity(payload)
