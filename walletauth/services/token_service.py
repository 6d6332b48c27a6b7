"""
Token issuance.

Access tokens are HS256 JWTs (python-jose) that carry:
- sub: the lowercase wallet address
- iat / exp: issue and expiry timestamps
- type: always "access_token"

They are never stored; any holder of the signing secret can validate one with
decode_access_token(). Refresh tokens are opaque secrets handled by
RefreshTokenManager.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from jose import ExpiredSignatureError, JWTError, jwt

from .. import config
from .errors import ConfigError, InvalidInputError, UnauthorizedError
from .expiry import parse_expiry
from .nonce_service import utc_now
from .refresh_token_service import RefreshTokenManager

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access_token"


class TokenService:

    def __init__(
        self,
        refresh_tokens: RefreshTokenManager,
        secret_key: str | None = None,
        algorithm: str | None = None,
        expiry_source: Callable[[], Any] = config.get_jwt_expiry,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.refresh_tokens = refresh_tokens
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.expiry_source = expiry_source
        self.clock = clock

    @property
    def secret_key(self) -> str | None:
        return self._secret_key if self._secret_key is not None else config.JWT_SECRET_KEY

    @property
    def algorithm(self) -> str:
        return self._algorithm or config.JWT_ALGORITHM

    def access_token_ttl(self) -> int:
        """TTL in seconds, parsed fresh from configuration on every call."""
        return parse_expiry(self.expiry_source())

    def issue_access_token(self, address: str) -> Tuple[str, int]:
        """Create a signed access token for ``address``. Returns (token, expires_in_seconds)."""
        if not address:
            logger.error("Access token generation failed: missing address")
            raise InvalidInputError("Public address is required for token generation")
        if not self.secret_key:
            logger.error("Access token generation failed: signing secret is not configured")
            raise ConfigError("Server configuration error.")

        expires_in = self.access_token_ttl()
        now = self.clock()
        claims: Dict[str, Any] = {
            "sub": address.lower(),
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
            "type": ACCESS_TOKEN_TYPE,
        }
        token = jwt.encode(claims, self.secret_key, algorithm=self.algorithm)
        logger.info(f"Access token generated for {address[:10]}..., expires in {expires_in}s")
        return token, expires_in

    def decode_access_token(self, token: str) -> Dict[str, Any]:
        """Validate signature, expiry and token type. Raises UnauthorizedError."""
        if not token:
            raise UnauthorizedError("Missing token")
        if not self.secret_key:
            logger.error("Cannot validate access token: signing secret is not configured")
            raise ConfigError("Server configuration error.")
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise UnauthorizedError("Token expired")
        except JWTError as e:
            logger.warning(f"JWT Error during token decoding: {e}")
            raise UnauthorizedError("Could not validate credentials")

        if payload.get("type") != ACCESS_TOKEN_TYPE or not payload.get("sub"):
            logger.warning("Token payload missing 'sub' claim or has the wrong type.")
            raise UnauthorizedError("Could not validate credentials")
        return payload

    def issue_refresh_token(
        self,
        address: str,
        identity_id: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> str:
        return self.refresh_tokens.issue(identity_id, address, user_agent=user_agent, ip_address=ip_address)
