import logging
import secrets
from datetime import datetime, timezone
from typing import Callable

from ..identity_store import IdentityStore
from ..models.data_models import Identity
from .errors import NotFoundError
from .signature_service import normalize_address

logger = logging.getLogger(__name__)

NONCE_NUM_BYTES = 16  # 32 hex characters


def generate_nonce(num_bytes: int = NONCE_NUM_BYTES) -> str:
    """Cryptographically secure random nonce, hex encoded. Not derived from address or time."""
    if num_bytes < NONCE_NUM_BYTES:
        num_bytes = NONCE_NUM_BYTES
    return secrets.token_hex(num_bytes)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NonceService:
    """Owns the per-identity challenge: find-or-create and unconditional rotation."""

    def __init__(self, store: IdentityStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def find_or_create(self, address: str) -> Identity:
        normalized = normalize_address(address)
        identity = self.store.get_or_create(normalized, generate_nonce, self.clock())
        if not identity.is_active:
            logger.warning(f"Nonce requested for inactive identity {normalized[:10]}...")
            raise NotFoundError("User not found")
        return identity

    def get_or_create_nonce(self, address: str) -> str:
        return self.find_or_create(address).nonce

    def rotate_nonce(self, address: str) -> str:
        """Replace the stored nonce. Callers serialize this per identity."""
        normalized = normalize_address(address)
        identity = self.store.get_by_address(normalized)
        if identity is None:
            raise NotFoundError("User not found")
        identity.nonce = generate_nonce()
        self.store.save(identity)
        logger.debug(f"Rotated nonce for {normalized[:10]}...")
        return identity.nonce
