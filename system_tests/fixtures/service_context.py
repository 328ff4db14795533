"""
Service Context - explicit per-session HTTP clients for the live stack.

Every test receives its clients from this context instead of module-level
shared clients, so an authenticated client never leaks its token into
tests that expect anonymous access.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx

from harness.core.config import Settings

JSON_HEADERS = {"Content-Type": "application/json"}
BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
}


@dataclass(frozen=True)
class TestUser:
    """Seeded user from the MongoDB init scripts."""

    __test__ = False

    username: str
    email: str
    password: str
    id: str


TEST_USERS = {
    "USER1": TestUser("testuser1", "test1@example.com", "testpass123", "64a0b5c8d4e5f6789abcdef0"),
    "USER2": TestUser("testuser2", "test2@example.com", "testpass123", "64a0b5c8d4e5f6789abcdef1"),
    "SEARCH_USER": TestUser("searchuser", "search@example.com", "testpass123", "64a0b5c8d4e5f6789abcdef2"),
}


@dataclass
class ServiceContext:
    """
    One client per service plus cached auth tokens.

    Usage:
        ctx = ServiceContext.from_settings(settings)
        ctx.backend.get("/health")
        with ctx.authenticated("USER1") as api:
            api.get("/api/figures")
        ctx.close()
    """

    settings: Settings
    backend: httpx.Client
    frontend: httpx.Client
    scraper: httpx.Client
    version: httpx.Client
    tokens: dict[str, str] = field(default_factory=dict)
    transport: httpx.BaseTransport | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.BaseTransport | None = None,
    ) -> "ServiceContext":
        return cls(
            settings=settings,
            backend=httpx.Client(
                base_url=settings.backend_url, timeout=30.0, headers=JSON_HEADERS, transport=transport
            ),
            frontend=httpx.Client(
                base_url=settings.frontend_url, timeout=30.0, headers=BROWSER_HEADERS, transport=transport
            ),
            scraper=httpx.Client(
                base_url=settings.scraper_url, timeout=45.0, headers=JSON_HEADERS, transport=transport
            ),
            version=httpx.Client(
                base_url=settings.version_manager_url, timeout=10.0, headers=JSON_HEADERS, transport=transport
            ),
            transport=transport,
        )

    def login(self, key: str) -> str:
        """Log a seeded user in and cache the token."""
        if key in self.tokens:
            return self.tokens[key]

        user = TEST_USERS[key]
        response = self.backend.post(
            "/api/users/login",
            json={"username": user.username, "email": user.email, "password": user.password},
        )
        response.raise_for_status()
        token = response.json()["data"]["token"]
        self.tokens[key] = token
        return token

    def authenticated(self, key: str) -> httpx.Client:
        """A new backend client carrying the user's bearer token."""
        token = self.login(key)
        return httpx.Client(
            base_url=self.settings.backend_url,
            timeout=30.0,
            headers={**JSON_HEADERS, "Authorization": f"Bearer {token}"},
            transport=self.transport,
        )

    def close(self) -> None:
        for client in (self.backend, self.frontend, self.scraper, self.version):
            client.close()
