"""JWT utilities for authentication using authlib"""

from typing import Dict

import httpx
from aiocache import Cache, cached
from authlib.jose import JoseError, JsonWebToken
from authlib.jose.errors import InvalidTokenError

from event_registration.auth.models import Actor, role_from_claims
from event_registration.config import config
from event_registration.logging_config import get_logger

logger = get_logger(__name__)


class JWTUtils:
    """JWT token utilities using authlib with JWKS caching"""

    def __init__(self, auth0_domain: str | None = None, audience: str | None = None):
        self.jwt = JsonWebToken(["RS256"])
        self.auth0_domain = auth0_domain or config.get("auth0_domain")
        self.audience = audience or config.get("auth0_audience")
        self.jwks_url = f"https://{self.auth0_domain}/.well-known/jwks.json"
        self.expected_issuer = f"https://{self.auth0_domain}/"

    @cached(ttl=3600, cache=Cache.MEMORY)
    async def _fetch_jwks(self) -> Dict:
        """
        Fetch JWKS from Auth0 well-known endpoint (cached)

        Returns:
            JWKS dictionary from Auth0
        """
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(self.jwks_url, timeout=10.0)
                response.raise_for_status()
                jwks_data = response.json()

                logger.info(f"Successfully fetched JWKS from {self.jwks_url}")
                return jwks_data

        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch JWKS from {self.jwks_url}: {e}")
            raise InvalidTokenError(f"Unable to fetch JWKS: {e}")

    async def _verify_token(self, token: str) -> Dict:
        """
        Verify and decode an Auth0 JWT token using cached JWKS

        Args:
            token: JWT token string from Auth0

        Returns:
            Decoded token payload

        Raises:
            InvalidTokenError: If token is invalid or expired
        """
        if not self.auth0_domain:
            raise InvalidTokenError("AUTH0_DOMAIN is not configured")

        jwks = await self._fetch_jwks()

        try:
            claims = self.jwt.decode(token, jwks)
            claims.validate()
        except JoseError as e:
            logger.warning(f"JWT validation failed: {e}")
            raise InvalidTokenError(f"Token validation failed: {str(e)}")

        if claims.get("iss") != self.expected_issuer:
            raise InvalidTokenError(
                f"Invalid issuer. Expected: {self.expected_issuer}, Got: {claims.get('iss')}"
            )

        if self.audience:
            audience = claims.get("aud")
            audiences = audience if isinstance(audience, list) else [audience]
            if self.audience not in audiences:
                raise InvalidTokenError("Token audience mismatch")

        return claims

    async def extract_actor(self, token: str) -> Actor:
        """
        Build the calling Actor from an Auth0 JWT token

        Args:
            token: JWT token string from Auth0

        Returns:
            Actor with user id, role and profile claims

        Raises:
            InvalidTokenError: If token is invalid or missing user ID
        """
        claims = await self._verify_token(token)
        user_id = claims.get("sub")

        if not user_id:
            raise InvalidTokenError("Token missing 'sub' claim")

        return Actor(
            user_id=user_id,
            role=role_from_claims(dict(claims)),
            name=claims.get("name"),
            email=claims.get("email"),
            claims={
                "iss": claims.get("iss"),
                "aud": claims.get("aud"),
                "exp": claims.get("exp"),
                "scope": claims.get("scope"),
                "permissions": claims.get("permissions", []),
            },
        )


# Global JWT utilities instance
jwt_utils = JWTUtils()
