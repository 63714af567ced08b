"""Correlation store: state token → pending PKCE verifier.

Between GET /oauth/login and POST /oauth/token the relay has to remember
which code_verifier belongs to which login attempt.  The state token the
provider echoes back is the key.

SINGLE USE
----------
``take`` is the only read.  It removes the entry in the same step, under
a lock, so two concurrent redemptions of the same state can never both
see the verifier.  A read-then-delete pair would reopen that race.

The lock is a ``threading.Lock`` rather than an ``asyncio.Lock``: every
critical section is a couple of dict operations with no awaits, and the
store stays correct if it is ever touched from FastAPI's threadpool.

EXPIRY
------
Abandoned attempts (user closed the tab, provider error) are never
redeemed.  Two mechanisms keep them from piling up:

  1. Lazy: ``take`` treats an entry older than the TTL as absent (and
     still removes it).
  2. Sweep: ``run_sweeper`` calls ``sweep_expired`` on an interval from
     the application lifespan, bounding memory.

OWNERSHIP
---------
The store is built once per application in the lifespan hook and handed
to routes through a dependency.  Nothing else imports an instance.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from oauth_relay.core.metrics import OAUTH_STATE_EVENTS, PENDING_AUTHORIZATIONS
from oauth_relay.models.pending_authorization import PendingAuthorization

logger = logging.getLogger(__name__)


@runtime_checkable
class StateStore(Protocol):
    ttl_seconds: float

    def now(self) -> float: ...
    def put(self, entry: PendingAuthorization) -> None: ...
    def take(self, state: str) -> PendingAuthorization | None: ...
    def sweep_expired(self) -> int: ...
    def __len__(self) -> int: ...


class InMemoryStateStore:
    """Per-process store.

    Limitation: with more than one replica behind a load balancer, the
    callback can land on a process that never saw the login.  Run a
    single replica (or pin sessions) until the store is externalized.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, PendingAuthorization] = {}

    def now(self) -> float:
        return self._clock()

    def put(self, entry: PendingAuthorization) -> None:
        with self._lock:
            if entry.state in self._entries:
                # 256-bit states don't collide; this is a caller bug.
                raise ValueError("state already pending")
            self._entries[entry.state] = entry
            PENDING_AUTHORIZATIONS.set(len(self._entries))
        OAUTH_STATE_EVENTS.labels(event="issued").inc()

    def take(self, state: str) -> PendingAuthorization | None:
        with self._lock:
            entry = self._entries.pop(state, None)
            PENDING_AUTHORIZATIONS.set(len(self._entries))

        if entry is None:
            OAUTH_STATE_EVENTS.labels(event="rejected").inc()
            return None
        if entry.is_expired(self._clock(), self.ttl_seconds):
            OAUTH_STATE_EVENTS.labels(event="expired").inc()
            return None
        OAUTH_STATE_EVENTS.labels(event="redeemed").inc()
        return entry

    def sweep_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [
                state
                for state, entry in self._entries.items()
                if entry.is_expired(now, self.ttl_seconds)
            ]
            for state in expired:
                del self._entries[state]
            PENDING_AUTHORIZATIONS.set(len(self._entries))

        if expired:
            OAUTH_STATE_EVENTS.labels(event="expired").inc(len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


async def run_sweeper(store: StateStore, interval_seconds: float) -> None:
    """Sweep expired entries forever.  Cancel the task to stop it."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = store.sweep_expired()
        if removed:
            logger.info(
                "Swept %d expired authorization attempt(s)  pending=%d",
                removed,
                len(store),
            )
