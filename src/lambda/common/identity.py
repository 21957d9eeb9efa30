"""
Identity resolver.
Maps the request credentials to a Principal: an optional user identity
(Cognito) plus the independent administrative shared-secret flag.
"""

import hmac
import logging
from dataclasses import dataclass

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from common import config
from common.errors import Unauthenticated

logger = logging.getLogger(__name__)

_cognito_client = None

# Cognito answers these for bad, expired, or revoked tokens
_REJECTED_TOKEN_CODES = {
    "NotAuthorizedException",
    "UserNotFoundException",
    "InvalidParameterException",
}


def _cognito():
    global _cognito_client
    if _cognito_client is None:
        _cognito_client = boto3.client("cognito-idp")
    return _cognito_client


@dataclass(frozen=True)
class Principal:
    user_id: str | None = None
    email: str = ""
    admin: bool = False

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None


def header(event: dict, name: str) -> str:
    """Case-insensitive header lookup (API GW v2 lowercases, tests may not)."""
    headers = event.get("headers") or {}
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value or ""
    return ""


def _parse_jwt_claims(event: dict) -> dict:
    """Extract JWT claims from API Gateway v2 event."""
    try:
        return event["requestContext"]["authorizer"]["jwt"]["claims"]
    except (KeyError, TypeError):
        return {}


def _bearer_token(event: dict) -> str:
    auth_header = header(event, "authorization").strip()
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def _lookup_token(token: str) -> dict | None:
    """Ask the identity provider who owns the access token."""
    try:
        resp = _cognito().get_user(AccessToken=token)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code", "")
        if code in _REJECTED_TOKEN_CODES:
            logger.warning("Bearer token rejected by identity provider (%s)", code)
        else:
            logger.exception("Identity provider error")
        return None
    except BotoCoreError:
        logger.exception("Identity provider unreachable")
        return None

    attrs = {a["Name"]: a["Value"] for a in resp.get("UserAttributes", [])}
    sub = attrs.get("sub") or resp.get("Username")
    if not sub:
        return None
    return {"userId": sub, "email": attrs.get("email", "")}


def resolve_identity(event: dict) -> dict | None:
    """Return user info dict, or None if unauthenticated. Never raises."""
    claims = _parse_jwt_claims(event)
    if claims.get("sub"):
        return {"userId": claims["sub"], "email": claims.get("email", "")}

    token = _bearer_token(event)
    if not token:
        return None
    return _lookup_token(token)


def has_admin_credential(event: dict) -> bool:
    """Check the static administrative secret header."""
    expected = config.ADMIN_API_KEY
    supplied = header(event, config.ADMIN_KEY_HEADER)
    if not expected or not supplied:
        return False
    return hmac.compare_digest(supplied.encode(), expected.encode())


def resolve_principal(event: dict) -> Principal:
    user = resolve_identity(event)
    admin = has_admin_credential(event)
    if user is None:
        return Principal(admin=admin)
    return Principal(user_id=user["userId"], email=user["email"], admin=admin)


def require_user(principal: Principal) -> Principal:
    if not principal.authenticated:
        logger.warning("require_user: no user identity (missing/invalid token)")
        raise Unauthenticated()
    return principal


def require_caller(principal: Principal) -> Principal:
    """Every route needs a user identity or the administrative credential."""
    if not principal.authenticated and not principal.admin:
        logger.warning("require_caller: no credentials presented")
        raise Unauthenticated()
    return principal
