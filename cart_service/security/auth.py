"""
Caller identity for cart requests

Carts are addressed by the tenant and user carried in the caller's bearer
JWT. The raw token is kept so it can be forwarded to upstream services.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Request

from ..core.config import settings
from ..core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


@dataclass
class CallerIdentity:
    """Authenticated caller of a cart endpoint"""
    user_id: uuid.UUID
    tenant_id: uuid.UUID
    token: Optional[str] = None


def _claim_uuid(claims: dict, *names: str) -> uuid.UUID:
    for name in names:
        value = claims.get(name)
        if value:
            try:
                return uuid.UUID(str(value))
            except ValueError:
                raise AuthenticationError(f"Token claim {name} is not a UUID")
    raise AuthenticationError(f"Token is missing the {names[0]} claim")


class JWTIdentity:
    """
    FastAPI dependency resolving the caller from "Authorization: Bearer <jwt>".

    The user is read from the user_id claim (falling back to sub), the
    tenant from tenant_id.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        audience: Optional[str] = None,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience

    def decode(self, token: str) -> CallerIdentity:
        """Verify a token and extract the caller"""
        options = {"verify_aud": bool(self.audience or settings.jwt_audience)}
        try:
            claims = jwt.decode(
                token,
                self.secret or settings.jwt_secret,
                algorithms=[self.algorithm or settings.jwt_algorithm],
                audience=self.audience or settings.jwt_audience,
                options=options,
            )
        except jwt.PyJWTError as e:
            logger.warning(f"Rejected bearer token: {e}")
            raise AuthenticationError("Invalid authentication token")

        return CallerIdentity(
            user_id=_claim_uuid(claims, "user_id", "sub"),
            tenant_id=_claim_uuid(claims, "tenant_id"),
            token=token,
        )

    async def __call__(self, request: Request) -> CallerIdentity:
        authorization = request.headers.get("Authorization", "")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationError("Missing bearer token")
        return self.decode(token.strip())


# Dependency instance
get_current_identity = JWTIdentity()
