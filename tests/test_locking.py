"""Tests for the per-key lock registry."""

import threading
import time

import pytest

from walletauth.locking import KeyedLock
from walletauth.services.errors import ServiceUnavailableError


def test_same_key_is_serialized():
    locks = KeyedLock("test", timeout=2)
    inside = []
    overlap = []

    def worker():
        with locks.hold("k"):
            if inside:
                overlap.append(True)
            inside.append(True)
            time.sleep(0.02)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not overlap


def test_different_keys_do_not_block():
    locks = KeyedLock("test", timeout=0.1)
    with locks.hold("a"):
        with locks.hold("b"):
            pass


def test_timeout_raises_service_unavailable():
    locks = KeyedLock("test", timeout=0.05)
    errors = []

    def contender():
        try:
            with locks.hold("k"):
                pass
        except ServiceUnavailableError as e:
            errors.append(e)

    with locks.hold("k"):
        t = threading.Thread(target=contender)
        t.start()
        t.join()

    assert len(errors) == 1
    assert errors[0].retryable


def test_registry_is_emptied_after_use():
    locks = KeyedLock("test", timeout=1)
    with locks.hold("a"):
        assert len(locks) == 1
    assert len(locks) == 0


def test_lock_released_when_body_raises():
    locks = KeyedLock("test", timeout=0.05)
    with pytest.raises(RuntimeError):
        with locks.hold("k"):
            raise RuntimeError("boom")
    with locks.hold("k"):
        pass
    assert len(locks) == 0
