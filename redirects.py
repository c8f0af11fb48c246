"""
Final-URL resolution.

Follows HTTP redirects (301/302 with a Location header) and HTML meta
refresh tags from a starting URL until a URL that does not redirect is
found, a safety check refuses to go further, or the hop limit is reached.
Every termination returns the best URL known so far; nothing here raises
because of remote misbehaviour.
"""

from typing import Optional

import aiohttp
from bs4 import BeautifulSoup

from config import FetchConfig
from security import SafetyGate
from transport import AiohttpTransport, TransportError, TransportResponse
from url_utils import resolve_location
from utils.logger import logger
from utils.profiler import Profiler

REDIRECT_STATUSES = (301, 302)
QUOTES = "'\""


def find_meta_refresh(html: bytes | str) -> Optional[str]:
    """
    Return the target of the first meta refresh tag in a document.

    Elements are checked in document order and, within a content attribute,
    the first ``url=`` segment wins. Malformed markup yields None rather
    than an error.

    Args:
        html: Document body

    Returns:
        The raw target URL, or None if there is no usable meta refresh
    """
    try:
        soup = BeautifulSoup(html, "html.parser")
        metas = soup.find_all("meta", attrs={"content": True})
    except Exception as e:
        logger.debug(f"Could not parse body for meta refresh: {e}")
        return None

    for meta in metas:
        equiv = meta.get("http-equiv")
        if not isinstance(equiv, str) or equiv.strip().lower() != "refresh":
            continue

        for piece in str(meta["content"]).split(";"):
            piece = piece.lstrip()
            if piece[:4].lower() == "url=":
                target = piece[4:].strip().strip(QUOTES).strip()
                if target:
                    return target

    return None


class RedirectResolver:
    """
    Resolves the URL a link finally points to.

    Each URL gets one header-only probe; if that does not redirect, one
    body fetch follows in which the page is scanned for a meta refresh.
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        safety_gate: SafetyGate | None = None,
        transport: AiohttpTransport | None = None,
        profiler: Profiler | None = None,
    ):
        """
        Initialize the resolver.

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

    async def final_url(self, url: str, depth: int = 1, fetch_body: bool = False) -> str:
        """
        Follow redirects from a URL and return where it ends up.

        Args:
            url: Starting URL
            depth: Hop number of ``url`` (1 for a fresh resolution)
            fetch_body: Skip the header-only probe and scan the body directly

        Returns:
            The final URL, or the last URL reached when resolution stops early
        """
        while True:
            if self.safety_gate.is_local_link(url):
                logger.info("Local link", extra={"url": url})

            if self.safety_gate.is_blocked(url):
                logger.info("Domain is blocked.", extra={"url": url})
                return url

            if self.safety_gate.is_redirect_blocked(url):
                logger.info("Domain should not be redirected.", extra={"url": url})
                return url

            url = self.safety_gate.strip_tracking_params(url)

            if depth > self.config.max_redirect_depth:
                logger.debug("Redirect depth limit reached.", extra={"url": url, "depth": depth})
                return url

            url = url.strip(QUOTES)
            if self.safety_gate.is_blocked(url) or self.safety_gate.is_redirect_blocked(url):
                logger.info("Domain is blocked.", extra={"url": url})
                return url

            logger.debug("Resolving URL", extra={"url": url, "depth": depth, "fetch_body": fetch_body})
            response = await self._probe(url, fetch_body)
            if response is None or response.status == 0:
                return url

            if response.status in REDIRECT_STATUSES:
                target = response.redirect_url
                if target:
                    url, depth = target, depth + 1
                    continue

            if not fetch_body:
                # No header redirect: fetch the same URL again, this time with its body
                depth, fetch_body = depth + 1, True
                continue

            target = self._meta_refresh_target(url, response)
            if target is None:
                return url

            url, depth, fetch_body = resolve_location(url, target), depth + 1, False

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=None,
            connect=self.config.probe_timeout,
            sock_read=self.config.probe_timeout,
        )

    def _should_read_body(self, response: TransportResponse) -> bool:
        declared = response.content_length
        if declared is not None and declared > self.config.max_body_scan:
            return False
        content_type = response.content_type
        if content_type and "html" not in content_type.lower():
            return False
        return True

    async def _probe(self, url: str, fetch_body: bool) -> Optional[TransportResponse]:
        """HEAD the URL, or GET it with the body when ``fetch_body`` is set."""
        method = "GET" if fetch_body else "HEAD"
        with self.profiler.recording("network"):
            try:
                return await self.transport.send(
                    method,
                    url,
                    headers={"User-Agent": self.config.get_user_agent()},
                    timeout=self._timeout(),
                    max_body_size=self.config.max_body_scan if fetch_body else None,
                    read_body=self._should_read_body if fetch_body else False,
                    allow_redirects=False,
                )
            except TransportError as e:
                logger.debug(f"Probe failed: {e}", extra={"url": url, "method": method})
                return None

    def _meta_refresh_target(self, url: str, response: TransportResponse) -> Optional[str]:
        declared = response.content_length
        if declared is not None and declared > self.config.max_body_scan:
            logger.debug("Body too large to scan.", extra={"url": url, "length": declared})
            return None

        content_type = response.content_type
        if content_type and "html" not in content_type.lower():
            logger.debug("Not an HTML document.", extra={"url": url, "content_type": content_type})
            return None

        if not response.body_read or not response.body.strip():
            return None

        return find_meta_refresh(response.body)
