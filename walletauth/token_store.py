# walletauth/token_store.py

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Set

from .models.data_models import RefreshTokenRecord

logger = logging.getLogger(__name__)


class DuplicateTokenError(Exception):
    """Raised when inserting a refresh secret that is already stored."""


class RefreshTokenStore(ABC):
    """Keyed store of refresh tokens, keyed by secret and indexed by identity id."""

    @abstractmethod
    def add(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        """Insert a new token, assigning its insertion sequence. Raises DuplicateTokenError."""

    @abstractmethod
    def get(self, secret: str) -> RefreshTokenRecord | None:
        """Return a copy of the token for ``secret`` or None."""

    @abstractmethod
    def exists(self, secret: str) -> bool:
        ...

    @abstractmethod
    def update(self, record: RefreshTokenRecord) -> None:
        ...

    @abstractmethod
    def list_for_identity(self, identity_id: str) -> List[RefreshTokenRecord]:
        """All tokens (live or not) owned by ``identity_id``, in insertion order."""

    @abstractmethod
    def delete_where(self, predicate: Callable[[RefreshTokenRecord], bool], identity_id: str | None = None) -> int:
        """Delete tokens matching ``predicate`` (optionally only for one identity). Returns the count."""


# --- In-Memory Refresh Token Store ---
# WARNING: This is lost on server restart! Back it with Redis or a DB for production.
class InMemoryRefreshTokenStore(RefreshTokenStore):

    def __init__(self):
        self._tokens: Dict[str, RefreshTokenRecord] = {}
        self._by_identity: Dict[str, Set[str]] = {}
        self._sequence = itertools.count(1)
        self._lock = threading.RLock()

    def add(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        with self._lock:
            if record.secret in self._tokens:
                raise DuplicateTokenError("refresh secret already stored")
            stored = record.model_copy(update={"sequence": next(self._sequence)})
            self._tokens[stored.secret] = stored
            self._by_identity.setdefault(stored.identity_id, set()).add(stored.secret)
            return stored.model_copy()

    def get(self, secret: str) -> RefreshTokenRecord | None:
        with self._lock:
            record = self._tokens.get(secret)
            return record.model_copy() if record else None

    def exists(self, secret: str) -> bool:
        with self._lock:
            return secret in self._tokens

    def update(self, record: RefreshTokenRecord) -> None:
        with self._lock:
            if record.secret not in self._tokens:
                logger.warning(f"Attempted to update unknown refresh token for identity {record.identity_id}")
                return
            self._tokens[record.secret] = record.model_copy()

    def list_for_identity(self, identity_id: str) -> List[RefreshTokenRecord]:
        with self._lock:
            secrets = self._by_identity.get(identity_id, set())
            records = [self._tokens[s].model_copy() for s in secrets]
        return sorted(records, key=lambda r: r.sequence)

    def delete_where(self, predicate: Callable[[RefreshTokenRecord], bool], identity_id: str | None = None) -> int:
        with self._lock:
            if identity_id is not None:
                candidates = [self._tokens[s] for s in self._by_identity.get(identity_id, set())]
            else:
                candidates = list(self._tokens.values())
            doomed = [r for r in candidates if predicate(r)]
            for record in doomed:
                del self._tokens[record.secret]
                owned = self._by_identity.get(record.identity_id)
                if owned is not None:
                    owned.discard(record.secret)
                    if not owned:
                        del self._by_identity[record.identity_id]
            return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
