import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .. import config
from ..locking import KeyedLock
from ..models.data_models import IP_MAX_LENGTH, USER_AGENT_MAX_LENGTH, RefreshTokenRecord, clip
from ..token_store import DuplicateTokenError, RefreshTokenStore
from .errors import InvalidInputError, NotFoundError, ServiceUnavailableError
from .nonce_service import utc_now

logger = logging.getLogger(__name__)

REFRESH_SECRET_NUM_BYTES = 40  # 320 bits
_MAX_SECRET_ATTEMPTS = 5


def generate_refresh_secret() -> str:
    return secrets.token_hex(REFRESH_SECRET_NUM_BYTES)


class RefreshTokenManager:
    """
    Refresh token lifecycle: issue (with sweep and per-identity cap), redeem, revoke.

    Refresh tokens are opaque secrets that stay valid until they expire or are
    revoked; redeeming one does not rotate it. Each identity keeps at most
    ``max_active`` live tokens: issuing past the cap evicts the oldest live
    one (by issue time, then insertion order).
    """

    def __init__(
        self,
        store: RefreshTokenStore,
        max_active: int = config.MAX_ACTIVE_REFRESH_TOKENS,
        lifetime: timedelta = timedelta(days=config.REFRESH_TOKEN_LIFETIME_DAYS),
        clock: Callable[[], datetime] = utc_now,
        lock_timeout: float = config.LOCK_TIMEOUT_SECONDS,
        secret_factory: Callable[[], str] = generate_refresh_secret,
    ):
        self.store = store
        self.max_active = max_active
        self.lifetime = lifetime
        self.clock = clock
        self.secret_factory = secret_factory
        self._locks = KeyedLock("refresh-tokens", lock_timeout)

    def issue(
        self,
        identity_id: str,
        address: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> str:
        if not identity_id or not address:
            logger.error("Refresh token generation failed: missing identity id or address")
            raise InvalidInputError("Identity id and address are required for refresh token generation")

        with self._locks.hold(identity_id):
            now = self.clock()

            # 1. sweep expired (and already revoked) tokens for this identity
            swept = self.store.delete_where(
                lambda r: r.revoked or r.expires_at <= now, identity_id=identity_id
            )
            if swept:
                logger.debug(f"Swept {swept} dead refresh token(s) for identity {identity_id}")

            # 2. enforce the cap, oldest live first
            live = sorted(
                (r for r in self.store.list_for_identity(identity_id) if r.is_live(now)),
                key=lambda r: (r.issued_at, r.sequence),
            )
            while len(live) >= self.max_active:
                oldest = live.pop(0)
                self.store.delete_where(lambda r, s=oldest.secret: r.secret == s, identity_id=identity_id)
                logger.info(f"Evicted oldest refresh token for identity {identity_id} (issued {oldest.issued_at.isoformat()})")

            # 3. persist a new, store-unique secret
            record = None
            for _ in range(_MAX_SECRET_ATTEMPTS):
                candidate = self.secret_factory()
                if self.store.exists(candidate):
                    continue
                try:
                    record = self.store.add(RefreshTokenRecord(
                        secret=candidate,
                        identity_id=identity_id,
                        address=address.lower(),
                        issued_at=now,
                        expires_at=now + self.lifetime,
                        user_agent=clip(user_agent, USER_AGENT_MAX_LENGTH),
                        last_used_ip=clip(ip_address, IP_MAX_LENGTH),
                    ))
                    break
                except DuplicateTokenError:
                    continue
            if record is None:
                logger.error(f"Could not generate a unique refresh secret for identity {identity_id}")
                raise ServiceUnavailableError("Failed to generate refresh token. Please retry.")

        logger.info(f"Refresh token issued for {record.address[:10]}..., expires {record.expires_at.isoformat()}")
        return record.secret

    def redeem(self, secret: str, ip_address: Optional[str] = None) -> RefreshTokenRecord:
        """Look up a live token. Its secret and expiry are left unchanged."""
        if not secret or not isinstance(secret, str):
            raise NotFoundError("Refresh token not found")
        record = self.store.get(secret)
        if record is not None:
            # re-read under the owner's lock so a concurrent revoke is not overwritten
            with self._locks.hold(record.identity_id):
                now = self.clock()
                record = self.store.get(secret)
                if record is not None and record.is_live(now):
                    record.last_used_at = now
                    if ip_address:
                        record.last_used_ip = clip(ip_address, IP_MAX_LENGTH)
                    self.store.update(record)
                    return record
        logger.warning(f"Refresh token lookup failed (unknown, expired or revoked): {secret[:10]}...")
        raise NotFoundError("Refresh token not found")

    def revoke(self, secret: str, reason: str = "logout") -> int:
        """Flag a token revoked. Unknown or already revoked secrets return 0."""
        if not secret or not isinstance(secret, str):
            return 0
        record = self.store.get(secret)
        if record is None:
            logger.debug(f"Revoke requested for unknown refresh token: {secret[:10]}...")
            return 0
        with self._locks.hold(record.identity_id):
            record = self.store.get(secret)
            if record is None or record.revoked:
                return 0
            record.revoked = True
            record.revoked_at = self.clock()
            record.revoke_reason = reason
            self.store.update(record)
        logger.info(f"Refresh token revoked ({reason}) for {record.address[:10]}...")
        return 1

    def active_tokens(self, identity_id: str) -> List[RefreshTokenRecord]:
        now = self.clock()
        live = [r for r in self.store.list_for_identity(identity_id) if r.is_live(now)]
        return sorted(live, key=lambda r: (r.issued_at, r.sequence))

    def sweep_expired(self) -> int:
        """Delete expired or revoked tokens for every identity."""
        now = self.clock()
        deleted = self.store.delete_where(lambda r: r.revoked or r.expires_at <= now)
        logger.info(f"Refresh token sweep removed {deleted} token(s)")
        return deleted
