"""
Ethereum Signature Verification

Proves that the caller controls the private key behind an address.

Flow:
1. The client fetches the identity's current nonce (see nonce_service)
2. The wallet signs build_challenge_message(nonce) with personal_sign
3. verify() recovers the signer from (message, signature) and compares it
   with the claimed address

Exactly one recovery convention is accepted: EIP-191 "personal message"
(keccak256 of "\\x19Ethereum Signed Message:\\n" + len(message) + message),
which is what MetaMask's personal_sign produces. Raw-message or pre-hashed
variants are rejected.

verify() fails closed: malformed input or any recovery error is a plain
False. The only other outcome is ServiceUnavailableError when recovery does
not finish within the configured timeout.
"""

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from eth_account import Account
from eth_account.messages import encode_defunct
from hexbytes import HexBytes

from .. import config
from .errors import InvalidInputError, ServiceUnavailableError

logger = logging.getLogger(__name__)

# Protocol constant shared with the client, must match byte for byte
CHALLENGE_MESSAGE_TEMPLATE = "Sign this message to confirm your identity: {nonce}"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_SIGNATURE_RE = re.compile(r"^0x[0-9a-fA-F]{130}$")

_recovery_pool = ThreadPoolExecutor(max_workers=config.CRYPTO_WORKERS, thread_name_prefix="sig-recover")


def build_challenge_message(nonce: str) -> str:
    return CHALLENGE_MESSAGE_TEMPLATE.format(nonce=nonce)


def is_valid_address(value) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def is_valid_signature(value) -> bool:
    return isinstance(value, str) and bool(_SIGNATURE_RE.match(value))


def normalize_address(value) -> str:
    """Validate an address and return its canonical lowercase form."""
    if not value or not isinstance(value, str):
        raise InvalidInputError("Public address is required")
    value = value.strip()
    if not is_valid_address(value):
        raise InvalidInputError("Invalid Ethereum address format")
    return value.lower()


def recover_address(message: str, signature: str) -> str:
    """Recover the signer of an EIP-191 personal message. Returns a lowercase address.

    Raises whatever eth_account raises for an unrecoverable signature.
    """
    signable = encode_defunct(text=message)
    recovered = Account.recover_message(signable, signature=HexBytes(signature))
    return recovered.lower()


def _recover_with_timeout(message: str, signature: str, timeout: float) -> str:
    """Run recover_address on the pool. ``timeout`` counts from when a worker picks the job up."""
    started = threading.Event()

    def run():
        started.set()
        return recover_address(message, signature)

    future = _recovery_pool.submit(run)
    # waiting for a free worker is bounded separately, by the lock timeout
    if not started.wait(timeout=config.LOCK_TIMEOUT_SECONDS):
        future.cancel()
        logger.error(f"No signature recovery worker became free within {config.LOCK_TIMEOUT_SECONDS}s")
        raise ServiceUnavailableError("Signature verification is temporarily unavailable. Please retry.")
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        logger.error(f"Signature recovery did not finish within {timeout}s")
        raise ServiceUnavailableError("Signature verification is temporarily unavailable. Please retry.")


def verify(claimed_address: str, nonce: str, signature: str, timeout: float | None = None) -> bool:
    """Check that ``signature`` over the challenge for ``nonce`` was made by ``claimed_address``."""
    if not is_valid_address(claimed_address):
        logger.debug("Signature verification rejected: malformed address")
        return False
    if not is_valid_signature(signature):
        logger.debug("Signature verification rejected: malformed signature")
        return False
    if not nonce:
        logger.debug("Signature verification rejected: empty nonce")
        return False

    message = build_challenge_message(nonce)
    if timeout is None:
        timeout = config.CRYPTO_TIMEOUT_SECONDS
    try:
        recovered = _recover_with_timeout(message, signature, timeout)
    except ServiceUnavailableError:
        raise
    except Exception as e:
        # bad v value, point not on curve, etc.
        logger.warning(f"Signature recovery failed ({type(e).__name__}): {e}")
        return False

    expected = claimed_address.lower()
    if recovered != expected:
        logger.warning(
            f"Signature address mismatch: expected {expected[:10]}..., recovered {recovered[:10]}..."
        )
        return False
    return True
