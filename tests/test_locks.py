from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from billing_sync.billing.deadline import Deadline
from billing_sync.billing.locks import UserLocks
from billing_sync.errors import TransientStoreError


def test_without_redis_hold_is_a_no_op():
    locks = UserLocks(None)

    with locks.hold("user:U1"):
        pass

    assert not locks.enabled


def test_lock_waits_at_most_the_remaining_deadline():
    client = MagicMock()
    lock = client.lock.return_value
    lock.acquire.return_value = True
    locks = UserLocks(client, ttl_seconds=30)

    with locks.hold("user:U1", Deadline(8)):
        lock.release.assert_not_called()

    client.lock.assert_called_once_with("billing:lock:user:U1", timeout=30)
    wait = lock.acquire.call_args.kwargs["blocking_timeout"]
    assert 0 < wait <= 8
    lock.release.assert_called_once_with()


def test_lock_timeout_is_transient():
    client = MagicMock()
    client.lock.return_value.acquire.return_value = False

    with pytest.raises(TransientStoreError):
        with UserLocks(client).hold("user:U1", Deadline(1)):
            pass


def test_lock_backend_down_is_transient():
    client = MagicMock()
    client.lock.return_value.acquire.side_effect = RedisConnectionError("refused")

    with pytest.raises(TransientStoreError):
        with UserLocks(client).hold("user:U1"):
            pass


def test_lock_is_released_when_body_fails():
    client = MagicMock()
    lock = client.lock.return_value
    lock.acquire.return_value = True

    with pytest.raises(RuntimeError):
        with UserLocks(client).hold("user:U1"):
            raise RuntimeError("reconcile blew up")

    lock.release.assert_called_once_with()
