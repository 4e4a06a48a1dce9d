# app/core/identity.py
"""
Identity resolution from an authenticated credential assertion.

The assertion is the decoded claim set handed over by the authentication
dependency (a validated JWT payload, or the header credentials used in the
Testing environment). Every identity provider is read through the same claim
lists below, so switching providers is a configuration change only.
"""

import logging
from typing import Any, Dict, FrozenSet, Iterable, Optional, Set

from pydantic import BaseModel, ConfigDict

from .exceptions import AuthenticationFailure

logger = logging.getLogger(__name__)

NAME_IDENTIFIER_CLAIM = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/nameidentifier"
IDENTITY_NAME_CLAIM = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/name"
ROLE_URI_CLAIM = "http://schemas.microsoft.com/ws/2008/06/identity/claims/role"

# Checked in order; the first non-empty value wins.
EXTERNAL_ID_CLAIMS = ("oid", NAME_IDENTIFIER_CLAIM, "sub")
DISPLAY_NAME_CLAIMS = ("name", IDENTITY_NAME_CLAIM, "unique_name")
EMAIL_CLAIM = "preferred_username"
ROLE_CLAIMS = ("role", "roles", ROLE_URI_CLAIM, "cognito:groups")

ADMIN_ROLE_NAMES: FrozenSet[str] = frozenset({"kudosadmin", "admin"})
UNKNOWN_DISPLAY_NAME = "Unknown User"


class Identity(BaseModel):
    """The caller as seen by the kudos service."""
    model_config = ConfigDict(frozen=True)

    external_id: str
    display_name: str
    email: str
    is_admin: bool

    def require_external_id(self) -> str:
        if not self.external_id:
            raise AuthenticationFailure("No external identity found in credentials.")
        return self.external_id


def _first_claim(claims: Dict[str, Any], names: Iterable[str]) -> Optional[str]:
    for name in names:
        value = claims.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def collect_roles(claims: Dict[str, Any]) -> Set[str]:
    """Flattens every role-shaped claim into one set of strings."""
    roles: Set[str] = set()
    for name in ROLE_CLAIMS:
        value = claims.get(name)
        if value is None:
            continue
        if isinstance(value, str):
            # Some providers emit space or comma separated role strings
            roles.update(part for part in value.replace(",", " ").split() if part)
        elif isinstance(value, (list, tuple, set)):
            roles.update(str(item).strip() for item in value if str(item).strip())
    return roles


def is_admin_role_set(roles: Iterable[str]) -> bool:
    """True when any role matches a recognized admin role, ignoring case."""
    return any(role.strip().lower() in ADMIN_ROLE_NAMES for role in roles)


def resolve_identity(claims: Dict[str, Any]) -> Identity:
    """
    Builds an Identity from a claim set.

    A missing external id is not an error here; operations that need one call
    ``Identity.require_external_id()``.
    """
    external_id = _first_claim(claims, EXTERNAL_ID_CLAIMS) or ""
    display_name = _first_claim(claims, DISPLAY_NAME_CLAIMS) or UNKNOWN_DISPLAY_NAME
    email = _first_claim(claims, (EMAIL_CLAIM,)) or ""
    is_admin = is_admin_role_set(collect_roles(claims))

    if not external_id:
        logger.warning("Credential assertion carries no external id claim.")

    return Identity(
        external_id=external_id,
        display_name=display_name,
        email=email,
        is_admin=is_admin,
    )
