from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class SalesforceCredentials:
    """Bearer credentials the browser app re-sends on every proxied call.

    Both values come straight from the provider's token response.  The
    relay keeps no copy between requests.
    """

    instance_url: str
    access_token: str = field(repr=False)

    @property
    def authorization(self) -> str:
        return f"Bearer {self.access_token}"
