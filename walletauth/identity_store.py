# walletauth/identity_store.py

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict

from .models.data_models import Identity

logger = logging.getLogger(__name__)


class IdentityStore(ABC):
    """Keyed store of identities, keyed by lowercase address."""

    @abstractmethod
    def get_by_address(self, address: str) -> Identity | None:
        """Return a copy of the identity for ``address`` or None."""

    @abstractmethod
    def get_or_create(self, address: str, nonce_factory: Callable[[], str], now: datetime) -> Identity:
        """Atomically find the identity or create it with a fresh nonce."""

    @abstractmethod
    def save(self, identity: Identity) -> None:
        """Persist changes to an existing identity."""


# --- In-Memory Identity Store ---
# WARNING: This is lost on server restart! Back it with Redis or a DB for production.
class InMemoryIdentityStore(IdentityStore):

    def __init__(self):
        self._identities: Dict[str, Identity] = {}
        self._lock = threading.RLock()

    def get_by_address(self, address: str) -> Identity | None:
        with self._lock:
            identity = self._identities.get(address)
            return identity.model_copy() if identity else None

    def get_or_create(self, address: str, nonce_factory: Callable[[], str], now: datetime) -> Identity:
        with self._lock:
            identity = self._identities.get(address)
            if identity is None:
                # An identity is never stored without a nonce
                identity = Identity(
                    id=uuid.uuid4().hex,
                    address=address,
                    nonce=nonce_factory(),
                    created_at=now,
                )
                self._identities[address] = identity
                logger.info(f"Created identity for address {address[:10]}...")
            return identity.model_copy()

    def save(self, identity: Identity) -> None:
        if not identity or not identity.address or not identity.nonce:
            logger.error("Attempted to store an invalid identity object.")
            raise ValueError("identity must have an address and a nonce")
        with self._lock:
            if identity.address not in self._identities:
                raise KeyError(identity.address)
            self._identities[identity.address] = identity.model_copy()
        logger.debug(f"Stored/Updated identity {identity.address[:10]}...")

    def __len__(self) -> int:
        with self._lock:
            return len(self._identities)
