"""
Async HTTP fetcher with safety checks.
"""

from typing import Any, Dict, Optional

import aiohttp

from config import FetchConfig
from models.options import RequestOptions
from models.result import FailureResult, HTTPResult, SuccessResult
from security import SafetyGate
from transport import AiohttpTransport, ContentTooLarge, TransportError, TransportTimeout
from url_utils import normalize_url
from utils.logger import logger
from utils.profiler import Profiler

ALLOWED_METHODS = ("GET", "HEAD", "POST")


class AsyncFetcher:
    """
    Asynchronous HTTP client for outbound requests.

    Every request passes the safety gate first; failures of any kind come
    back as a FailureResult instead of an exception.
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        safety_gate: SafetyGate | None = None,
        transport: AiohttpTransport | None = None,
        profiler: Profiler | None = None,
    ):
        """
        Initialize the async fetcher.

        Args:
            config: Settings (created with defaults if not provided)
            safety_gate: Optional safety gate (built from config if not provided)
            transport: Optional transport (aiohttp-based if not provided)
            profiler: Optional timing sink (created if not provided)
        """
        self.config = config if config is not None else FetchConfig()
        self.safety_gate = safety_gate if safety_gate is not None else SafetyGate(self.config)
        self.transport = transport if transport is not None else AiohttpTransport()
        self.profiler = profiler if profiler is not None else Profiler()

    @property
    def default_headers(self) -> Dict[str, str]:
        """Headers sent with every request; a fresh copy on each access."""
        headers = {"User-Agent": self.config.get_user_agent()}
        headers.update(self.config.default_headers)
        return headers

    async def request(self, method: str, url: str, options: RequestOptions | None = None) -> HTTPResult:
        """
        Send one request after the safety checks.

        Args:
            method: GET, HEAD or POST
            url: The URL to request
            options: Per-request options

        Returns:
            SuccessResult when the server answered, FailureResult otherwise

        Raises:
            ValueError: If the method is not supported
        """
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"Invalid method: {method}")

        options = options if options is not None else RequestOptions()

        with self.profiler.recording("network"):
            logger.debug("Request start.", extra={"url": url, "method": method})
            try:
                return await self._request(method, url, options)
            finally:
                logger.debug("Request stop.", extra={"url": url, "method": method})

    async def _request(self, method: str, url: str, options: RequestOptions) -> HTTPResult:
        if self.safety_gate.is_local_link(url):
            logger.info("Local link", extra={"url": url})

        if len(url) > self.config.max_url_length:
            logger.debug(
                f"URL is longer than {self.config.max_url_length} characters.",
                extra={"url": url[: self.config.rejected_url_length]},
            )
            return FailureResult.rejected(url[: self.config.rejected_url_length], "URL too long")

        url = normalize_url(url)

        if self.safety_gate.is_blocked(url):
            logger.info("Domain is blocked.", extra={"url": url})
            return FailureResult.rejected(url, "Domain is blocked")

        timeout = options.timeout_seconds or self.config.get_default_timeout_seconds()

        try:
            response = await self.transport.send(
                method,
                url,
                headers=options.effective_headers(self.default_headers),
                timeout=aiohttp.ClientTimeout(total=timeout),
                cookie_jar_path=options.cookie_jar_path,
                json_body=options.json_body,
                max_content_length=options.max_content_length,
            )
        except TransportError as e:
            return self._failure(url, method, e)

        return SuccessResult(
            url=url,
            status_code=response.status,
            headers=response.headers,
            body=response.body,
        )

    def _failure(self, url: str, method: str, error: TransportError) -> FailureResult:
        if isinstance(error, ContentTooLarge):
            logger.info(f"Response too large: {error}", extra={"url": url, "method": method})
        else:
            logger.warning(f"Request failed: {error}", extra={"url": url, "method": method})

        partial = error.response
        return FailureResult(
            url=url,
            status_code=partial.status if partial is not None else 0,
            headers=partial.headers if partial is not None else {},
            error=str(error),
            timed_out=isinstance(error, TransportTimeout),
        )

    async def get(self, url: str, options: RequestOptions | None = None) -> HTTPResult:
        return await self.request("GET", url, options)

    async def head(self, url: str, options: RequestOptions | None = None) -> HTTPResult:
        return await self.request("HEAD", url, options)

    async def post(
        self,
        url: str,
        payload: Any,
        headers: Optional[Dict[str, str]] = None,
        timeout: int = 0,
    ) -> HTTPResult:
        """
        Send a JSON payload.

        Args:
            url: The URL to post to
            payload: Data serialized as the JSON request body
            headers: Extra request headers
            timeout: Timeout in seconds (0 uses the configured default)

        Returns:
            HTTPResult
        """
        options = RequestOptions(
            json_body=payload,
            extra_headers=headers or {},
            timeout_seconds=timeout if timeout and timeout > 0 else None,
        )
        return await self.request("POST", url, options)

    async def fetch(
        self,
        url: str,
        timeout: int = 0,
        accept_content: str = "",
        cookie_jar: str = "",
    ) -> bytes:
        """
        Fetch a URL and return only its body (empty on failure).
        """
        result = await self.fetch_full(url, timeout, accept_content, cookie_jar)
        return result.body

    async def fetch_full(
        self,
        url: str,
        timeout: int = 0,
        accept_content: str = "",
        cookie_jar: str = "",
    ) -> HTTPResult:
        """
        Fetch a URL with GET. Empty or zero arguments mean "not set".
        """
        options = RequestOptions(
            timeout_seconds=timeout if timeout and timeout > 0 else None,
            accept_content=accept_content or None,
            cookie_jar_path=cookie_jar or None,
        )
        return await self.get(url, options)
