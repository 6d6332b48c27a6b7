"""
Authentication orchestrator.

Ties the nonce, signature, token and refresh-token services together for the
three session operations:

authenticate(address, signature, ip_address, user_agent)
    RECEIVED -> VALIDATED -> USER_RESOLVED -> SIGNATURE_CHECKED
    -> AUTHENTICATED | REJECTED

    Once the identity is resolved, its nonce is rotated whatever the outcome,
    so a captured (nonce, signature) pair is good for at most one attempt.
    Nonce check, rotation and token issuance for one identity run under a
    per-identity lock. If issuance fails after rotation the rotation stands;
    the client fetches the new nonce and signs again. Login bookkeeping
    (last login, login count, client IP and user agent) is saved only once
    both tokens exist.

refresh(refresh_token, ip_address)
    Mint a new access token for the refresh token's owner. The refresh
    token itself is not rotated.

logout(refresh_token)
    Revoke the refresh token. Always succeeds.
"""

import enum
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .. import config
from ..identity_store import IdentityStore, InMemoryIdentityStore
from ..locking import KeyedLock
from ..models.data_models import IP_MAX_LENGTH, USER_AGENT_MAX_LENGTH, Identity, PublicIdentity, clip
from ..token_store import InMemoryRefreshTokenStore
from . import signature_service
from .errors import InvalidInputError, NotFoundError, UnauthorizedError
from .nonce_service import NonceService, utc_now
from .refresh_token_service import RefreshTokenManager
from .token_service import TokenService

logger = logging.getLogger(__name__)


class AuthState(str, enum.Enum):
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    USER_RESOLVED = "USER_RESOLVED"
    SIGNATURE_CHECKED = "SIGNATURE_CHECKED"
    AUTHENTICATED = "AUTHENTICATED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class AuthSession:
    """Session context handed back to the caller after a successful sign-in."""
    access_token: str
    refresh_token: str
    expires_in: int
    identity: PublicIdentity


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    expires_in: int


class AuthService:

    def __init__(
        self,
        identities: IdentityStore,
        nonces: NonceService,
        tokens: TokenService,
        refresh_tokens: RefreshTokenManager,
        clock: Callable[[], datetime] = utc_now,
        lock_timeout: float = config.LOCK_TIMEOUT_SECONDS,
        verify_signature: Callable[[str, str, str], bool] = signature_service.verify,
    ):
        self.identities = identities
        self.nonces = nonces
        self.tokens = tokens
        self.refresh_tokens = refresh_tokens
        self.clock = clock
        self.verify_signature = verify_signature
        self._locks = KeyedLock("identities", lock_timeout)

    def _transition(self, state: AuthState, address: str, detail: str = "") -> AuthState:
        logger.debug(f"auth {address[:10]}...: {state.value}{' - ' + detail if detail else ''}")
        return state

    # --- identity resolver path ---

    def find_or_create(self, address: str) -> Identity:
        return self.nonces.find_or_create(address)

    def current_identity(self, address: str) -> PublicIdentity:
        identity = self.identities.get_by_address(signature_service.normalize_address(address))
        if identity is None or not identity.is_active:
            raise NotFoundError("User not found")
        return identity.public_view()

    # --- session operations ---

    def authenticate(
        self,
        address: str,
        signature: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuthSession:
        if isinstance(address, str):
            address = address.strip()
        label = address if isinstance(address, str) else "?"
        self._transition(AuthState.RECEIVED, label)

        if not address or not signature:
            self._transition(AuthState.REJECTED, label, "missing fields")
            raise InvalidInputError("Public address and signature are required")
        if not signature_service.is_valid_address(address):
            self._transition(AuthState.REJECTED, label, "bad address format")
            raise InvalidInputError("Invalid Ethereum address format")
        if not signature_service.is_valid_signature(signature):
            self._transition(AuthState.REJECTED, label, "bad signature format")
            raise InvalidInputError("Signature must be a valid Ethereum signature (0x + 130 hex characters)")
        normalized = address.lower()
        self._transition(AuthState.VALIDATED, normalized)

        with self._locks.hold(normalized):
            identity = self.identities.get_by_address(normalized)
            if identity is None or not identity.is_active:
                self._transition(AuthState.REJECTED, normalized, "unknown identity")
                raise NotFoundError("User not found. Please request a nonce first.")
            self._transition(AuthState.USER_RESOLVED, normalized)

            try:
                verified = self.verify_signature(normalized, identity.nonce, signature)
            finally:
                # single use: the nonce dies with this attempt, even if recovery blew up
                self.nonces.rotate_nonce(normalized)
            self._transition(AuthState.SIGNATURE_CHECKED, normalized, "ok" if verified else "mismatch")

            if not verified:
                self._transition(AuthState.REJECTED, normalized, "signature")
                raise UnauthorizedError("Invalid signature. Authentication failed.")

            access_token, expires_in = self.tokens.issue_access_token(normalized)
            refresh_token = self.tokens.issue_refresh_token(
                normalized, identity.id, user_agent=user_agent, ip_address=ip_address
            )

            # reload: the rotation above replaced the stored nonce
            identity = self.identities.get_by_address(normalized)
            identity.last_login = self.clock()
            identity.login_count += 1
            identity.last_login_ip = clip(ip_address, IP_MAX_LENGTH)
            identity.last_user_agent = clip(user_agent, USER_AGENT_MAX_LENGTH)
            self.identities.save(identity)

        self._transition(AuthState.AUTHENTICATED, normalized)
        logger.info(f"Authentication completed successfully for {normalized[:10]}...")
        return AuthSession(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            identity=identity.public_view(),
        )

    def refresh(self, refresh_token: str, ip_address: Optional[str] = None) -> RefreshResult:
        if not refresh_token:
            raise InvalidInputError("Refresh token is required")
        try:
            record = self.refresh_tokens.redeem(refresh_token, ip_address=ip_address)
        except NotFoundError:
            raise UnauthorizedError("Invalid or expired refresh token")
        access_token, expires_in = self.tokens.issue_access_token(record.address)
        logger.info(f"Token refresh successful for {record.address[:10]}...")
        return RefreshResult(access_token=access_token, expires_in=expires_in)

    def logout(self, refresh_token: str) -> None:
        if not refresh_token:
            raise InvalidInputError("Refresh token is required")
        removed = self.refresh_tokens.revoke(refresh_token)
        logger.info(f"Logout processed (tokens revoked: {removed})")


def build_auth_service(
    clock: Callable[[], datetime] = utc_now,
    secret_key: str | None = None,
    expiry_source: Callable[[], object] = config.get_jwt_expiry,
) -> AuthService:
    """Wire up an AuthService on fresh in-memory stores."""
    identities = InMemoryIdentityStore()
    refresh_tokens = RefreshTokenManager(InMemoryRefreshTokenStore(), clock=clock)
    tokens = TokenService(refresh_tokens, secret_key=secret_key, expiry_source=expiry_source, clock=clock)
    return AuthService(
        identities=identities,
        nonces=NonceService(identities, clock=clock),
        tokens=tokens,
        refresh_tokens=refresh_tokens,
        clock=clock,
    )


_auth_service: AuthService | None = None
_auth_service_lock = threading.Lock()


def get_auth_service() -> AuthService:
    """FastAPI dependency returning the process-wide AuthService."""
    global _auth_service
    with _auth_service_lock:
        if _auth_service is None:
            _auth_service = build_auth_service()
        return _auth_service
