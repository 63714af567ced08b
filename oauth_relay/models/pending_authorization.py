from __future__ import annotations

from dataclasses import dataclass

# One in-flight login attempt, keyed by its state token.
# •	state: str            (opaque, 256-bit, echoed back by the provider)
# •	code_verifier: str    (never leaves the server)
# •	login_url: str        (provider the attempt was started against)
# •	created_at: float     (store clock, seconds)


@dataclass(frozen=True, slots=True)
class PendingAuthorization:
    state: str
    code_verifier: str
    login_url: str
    created_at: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.created_at > ttl_seconds
