"""
Shared fixtures: an in-memory transport standing in for aiohttp.
"""

from typing import Callable, Dict, List, Optional, Union

import pytest

from config import FetchConfig
from transport import ContentTooLarge, TransportError, TransportResponse


class FakeTransport:
    """
    Serves canned responses keyed by (method, url) or by url alone.

    A route value may be a TransportResponse, a TransportError to raise, or
    a callable taking the requested URL. Every call is recorded in
    ``calls`` as (method, url, kwargs).
    """

    def __init__(self) -> None:
        self.routes: Dict[object, object] = {}
        self.calls: List[tuple] = []
        self.bodies_served: List[str] = []

    def add(
        self,
        url: str,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        body: Union[bytes, str] = b"",
        method: Optional[str] = None,
    ) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        response = TransportResponse(
            url=url,
            status=status,
            headers={name: [value] for name, value in (headers or {}).items()},
            body=body,
        )
        self.routes[(method, url) if method else url] = response

    def fail(self, url: str, error: TransportError, method: Optional[str] = None) -> None:
        self.routes[(method, url) if method else url] = error

    def route(self, url: str, handler: Callable[[str], TransportResponse]) -> None:
        self.routes[url] = handler

    @property
    def methods(self) -> List[str]:
        return [call[0] for call in self.calls]

    @property
    def urls(self) -> List[str]:
        return [call[1] for call in self.calls]

    async def send(self, method: str, url: str, **kwargs) -> TransportResponse:
        self.calls.append((method, url, kwargs))

        route = self.routes.get((method, url), self.routes.get(url))
        if route is None:
            raise TransportError(f"Connection error: no route to {url}")
        if isinstance(route, TransportError):
            raise route
        if callable(route):
            route = route(url)

        response = TransportResponse(url=url, status=route.status, headers=dict(route.headers))

        limit = kwargs.get("max_content_length")
        declared = response.content_length
        if limit is not None and declared is not None and declared > limit:
            raise ContentTooLarge("too large", response)

        read_body = kwargs.get("read_body", True)
        wanted = read_body(response) if callable(read_body) else read_body
        if wanted and method != "HEAD":
            max_body_size = kwargs.get("max_body_size")
            if max_body_size is not None and len(route.body) > max_body_size:
                raise ContentTooLarge("too large", response)
            response.body = route.body
            response.body_read = True
            self.bodies_served.append(url)
        return response


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def config() -> FetchConfig:
    return FetchConfig().with_overrides(
        user_agent="TestAgent/1.0",
        default_timeout=5,
        blocked_domains=["evil.test"],
        redirect_blocked_domains=["noredirect.test"],
        local_hostnames=["social.example"],
    )
