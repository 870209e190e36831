"""Authorization against the identity provider's session tokens."""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import jwt

from .errors import AuthenticationError, PermissionDeniedError
from .models import Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a request."""

    user_id: str
    role: Role = Role.CUSTOMER
    email: str | None = None
    name: str | None = None


class Authorizer(Protocol):
    """Turns a request's credentials into an Actor and checks roles."""

    def authenticate(self, authorization: str | None) -> Actor: ...

    def require_role(self, actor: Actor, *roles: Role) -> Actor: ...


def parse_bearer(authorization: str | None) -> str | None:
    """Extract the token from an 'Authorization: Bearer <token>' header value."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


def require_role(actor: Actor, *roles: Role) -> Actor:
    """
    Ensure the actor holds one of the given roles.

    Raises:
        PermissionDeniedError: If the actor's role isn't listed.
    """
    if actor.role not in roles:
        raise PermissionDeniedError(actor.role.value, tuple(r.value for r in roles))
    return actor


def _role_from_claims(claims: dict[str, Any]) -> Role:
    raw = claims.get("role")
    if raw is None:
        metadata = claims.get("metadata") or claims.get("private_metadata") or {}
        raw = metadata.get("role")
    try:
        return Role(raw) if raw else Role.CUSTOMER
    except ValueError:
        logger.warning("Unknown role claim %r, treating as customer", raw)
        return Role.CUSTOMER


class JWTSessionAuthorizer:
    """
    Verifies identity-provider session JWTs.

    The role claim is trusted as issued; it is read from ``role`` or
    ``metadata.role`` and defaults to customer.
    """

    def __init__(self, key: str, algorithm: str = "HS256", audience: str | None = None):
        self.key = key
        self.algorithm = algorithm
        self.audience = audience

    def authenticate(self, authorization: str | None) -> Actor:
        """
        Verify the session token in an Authorization header.

        Raises:
            AuthenticationError: If the header is missing or the token is invalid.
        """
        token = parse_bearer(authorization)
        if token is None:
            raise AuthenticationError("Unauthorized")

        try:
            claims = jwt.decode(
                token,
                self.key,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Session expired")
        except jwt.InvalidTokenError as e:
            logger.info("Rejected session token: %s", e)
            raise AuthenticationError("Unauthorized")

        user_id = claims.get("sub")
        if not user_id:
            raise AuthenticationError("Unauthorized")

        return Actor(
            user_id=user_id,
            role=_role_from_claims(claims),
            email=claims.get("email"),
            name=claims.get("name"),
        )

    def require_role(self, actor: Actor, *roles: Role) -> Actor:
        return require_role(actor, *roles)
