"""
Low-level HTTP transport built on aiohttp.

One call issues one request in a fresh session and returns a
TransportResponse, or raises a TransportError subclass describing why the
exchange failed (with the partial response when headers had arrived).
"""

import asyncio
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import aiohttp

from url_utils import resolve_location
from utils.logger import logger

# Decides, once headers are in, whether the body should be read
BodyPolicy = Union[bool, Callable[["TransportResponse"], bool]]


@dataclass
class TransportResponse:
    """Raw view of a response: status line, headers and (maybe) body."""

    url: str
    status: int
    headers: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = field(default=b"", repr=False)
    body_read: bool = False

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, values in self.headers.items():
            if key.lower() == wanted and values:
                return values[0]
        return None

    @property
    def content_type(self) -> str:
        return self.header("Content-Type") or ""

    @property
    def content_length(self) -> Optional[int]:
        """Declared Content-Length, or None if missing or malformed."""
        raw = self.header("Content-Length")
        if raw is None:
            return None
        try:
            return int(raw.strip())
        except ValueError:
            return None

    @property
    def location(self) -> Optional[str]:
        value = self.header("Location")
        return value.strip() if value and value.strip() else None

    @property
    def redirect_url(self) -> Optional[str]:
        """Location resolved against the request URL."""
        if self.location is None:
            return None
        return resolve_location(self.url, self.location)


class TransportError(Exception):
    """The exchange failed; ``response`` holds whatever arrived before that."""

    def __init__(self, message: str, response: Optional[TransportResponse] = None):
        super().__init__(message)
        self.response = response

    @property
    def status(self) -> int:
        return self.response.status if self.response is not None else 0


class TransportTimeout(TransportError):
    """Connect or read timeout."""


class ContentTooLarge(TransportError):
    """The response was larger than the caller allowed; the body was not kept."""


def _collect_headers(raw: Any) -> Dict[str, List[str]]:
    headers: Dict[str, List[str]] = {}
    names: Dict[str, str] = {}
    for name, value in raw.items():
        key = names.setdefault(name.lower(), name)
        headers.setdefault(key, []).append(value)
    return headers


def _load_cookie_jar(path: str) -> aiohttp.CookieJar:
    # unsafe=True keeps cookies set by hosts addressed by IP
    jar = aiohttp.CookieJar(unsafe=True)
    if os.path.exists(path) and os.path.getsize(path) > 0:
        try:
            jar.load(path)
        except Exception as e:
            logger.warning(f"Could not load cookie jar, starting empty: {e}", extra={"path": path})
    return jar


def _save_cookie_jar(jar: aiohttp.CookieJar, path: str) -> None:
    try:
        jar.save(path)
    except OSError as e:
        logger.warning(f"Could not save cookie jar: {e}", extra={"path": path})


class AiohttpTransport:
    """
    Issues single HTTP requests with aiohttp.

    No retries are made; each call opens and closes its own session so no
    state (connections, cookies) is shared between calls.
    """

    def __init__(self, connector_factory: Optional[Callable[[], aiohttp.BaseConnector]] = None):
        """
        Initialize the transport.

        Args:
            connector_factory: Optional callable returning a fresh connector
                for each session (e.g. to configure SSL or proxies)
        """
        self.connector_factory = connector_factory

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        cookie_jar_path: Optional[str] = None,
        json_body: Any = None,
        max_content_length: Optional[int] = None,
        max_body_size: Optional[int] = None,
        read_body: BodyPolicy = True,
        allow_redirects: bool = True,
    ) -> TransportResponse:
        """
        Perform one request.

        Args:
            method: HTTP method (GET, HEAD or POST)
            url: Target URL
            headers: Request headers
            timeout: aiohttp timeout settings
            cookie_jar_path: File holding cookies for this request
            json_body: Payload serialized as JSON (POST)
            max_content_length: Abort when the declared Content-Length exceeds this
            max_body_size: Abort when more body bytes than this arrive
            read_body: Whether to read the body, or a callable deciding it
                from the headers
            allow_redirects: Follow HTTP redirects

        Returns:
            TransportResponse

        Raises:
            ContentTooLarge: The response exceeded a size limit
            TransportTimeout: The request timed out
            TransportError: Any other transport failure
        """
        jar = None
        try:
            jar = _load_cookie_jar(cookie_jar_path) if cookie_jar_path else None
            connector = self.connector_factory() if self.connector_factory else None

            async with aiohttp.ClientSession(
                connector=connector,
                cookie_jar=jar,
                timeout=timeout or aiohttp.ClientTimeout(total=None),
            ) as session:
                async with session.request(
                    method,
                    url,
                    headers=headers,
                    json=json_body,
                    allow_redirects=allow_redirects,
                ) as response:
                    result = TransportResponse(
                        url=url,
                        status=response.status,
                        headers=_collect_headers(response.headers),
                    )

                    declared = result.content_length
                    if max_content_length is not None and declared is not None and declared > max_content_length:
                        raise ContentTooLarge(
                            f"Content-Length {declared} exceeds limit of {max_content_length} bytes",
                            result,
                        )

                    wanted = read_body(result) if callable(read_body) else read_body
                    if wanted and method.upper() != "HEAD":
                        result.body = await self._read_body(response, result, max_body_size)
                        result.body_read = True
                    return result

        except TransportError:
            raise
        except asyncio.TimeoutError as e:
            raise TransportTimeout(f"Timeout: {e}") from e
        except aiohttp.ClientResponseError as e:
            partial = None
            if e.status:
                partial = TransportResponse(
                    url=url,
                    status=e.status,
                    headers=_collect_headers(e.headers) if e.headers else {},
                )
            raise TransportError(f"HTTP client error: {e}", partial) from e
        except (aiohttp.ClientError, ValueError, OSError) as e:
            raise TransportError(f"Connection error: {e}") from e
        finally:
            if jar is not None:
                _save_cookie_jar(jar, cookie_jar_path)

    async def _read_body(
        self,
        response: aiohttp.ClientResponse,
        result: TransportResponse,
        max_body_size: Optional[int],
    ) -> bytes:
        try:
            if max_body_size is None:
                return await response.read()

            body = bytearray()
            async for chunk in response.content.iter_chunked(64 * 1024):
                body.extend(chunk)
                if len(body) > max_body_size:
                    raise ContentTooLarge(
                        f"Body exceeds limit of {max_body_size} bytes",
                        result,
                    )
            return bytes(body)
        except TransportError:
            raise
        except asyncio.TimeoutError as e:
            raise TransportTimeout(f"Timeout while reading body: {e}", result) from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Error reading content: {e}", result) from e
