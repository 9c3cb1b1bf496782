"""
Concurrency control utilities for refund operations.

This module provides the two pieces every workflow operation runs under:

1. **Distributed Locks** (DistributedLock)
   - Redis-based mutual exclusion across processes/servers
   - Serializes operations on one refund (``refund:<id>``) and the
     remaining-amount check and reconciliation of one payment
     (``refund:payment:<id>``)
   - TTL prevents deadlocks from crashed processes

2. **Deadlines** (Deadline)
   - Caller-supplied time budget for a whole operation
   - Lock waits and gateway calls receive what is left
   - Checked before any write so an expired operation mutates nothing

Usage:

    from refunds.locks import Deadline, DistributedLock

    deadline = Deadline(5.0)
    with DistributedLock(f"refund:{refund_id}", ttl=60, timeout=deadline.remaining()):
        refund = RefundStore.get_by_id(refund_id)
        deadline.check("approve")
        RefundStore.update(refund, expected_prior_status=prior)

Note:
    Lock order is always refund before payment.
"""

from __future__ import annotations

import time
import uuid as uuid_module

from django_redis import get_redis_connection

from refunds.exceptions import LockAcquisitionError, OperationTimeoutError


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis lock held for the duration of one workflow step.

    The key is set with ``NX`` and an expiry, so a crashed worker cannot
    hold it forever. The value is a random token and release only deletes
    the key while it still holds that token.

    Example:
        with DistributedLock("refund:7f9c...", ttl=60, timeout=2.0):
            approve_refund()

    Args:
        key: Lock name, stored as ``lock:<key>``
        ttl: Seconds before Redis drops the key on its own
        timeout: Seconds to keep retrying; zero means a single attempt
    """

    # Delete only if the key still holds our token
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    RETRY_INTERVAL = 0.05

    def __init__(self, key: str, ttl: int = 60, timeout: float = 10.0) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.timeout = timeout
        self._token: str | None = None

    def acquire(self) -> None:
        """
        Take the lock, polling until ``timeout`` runs out.

        Raises:
            LockAcquisitionError: If another holder keeps the key past the timeout
        """
        client = get_redis_connection("default")
        token = uuid_module.uuid4().hex
        give_up_at = time.monotonic() + self.timeout

        while not client.set(self.key, token, nx=True, ex=self.ttl):
            left = give_up_at - time.monotonic()
            if left <= 0:
                raise LockAcquisitionError(
                    f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                    details={"key": self.key, "timeout": self.timeout},
                )
            time.sleep(min(self.RETRY_INTERVAL, left))

        self._token = token

    def release(self) -> None:
        if self._token is None:
            return
        get_redis_connection("default").eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


# =============================================================================
# Deadlines
# =============================================================================


class Deadline:
    """
    Time budget for a single workflow operation.

    Example:
        deadline = Deadline(10.0)
        gateway.get_payment(payment_id, timeout=deadline.remaining())
        deadline.check("create")  # raises once the budget is spent
    """

    def __init__(self, seconds: float) -> None:
        self.seconds = float(seconds)
        self._expires_at = time.monotonic() + self.seconds

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check(self, operation: str) -> None:
        """
        Raise if the budget is spent.

        Raises:
            OperationTimeoutError: If the deadline has passed
        """
        if self.expired:
            raise OperationTimeoutError(
                f"Deadline of {self.seconds}s exceeded during {operation}",
                details={"operation": operation, "timeout": self.seconds},
            )


__all__ = [
    "Deadline",
    "DistributedLock",
]
