"""
Safety checks applied before any outbound request.
"""

from typing import Iterable

from config import FetchConfig
from url_utils import get_hostname, is_local_address, strip_query_params


def _idna_normalize(host: str) -> str:
    """Return a lowercase, IDNA-normalized host name."""
    h = (host or "").strip().rstrip(".").lower()
    if not h:
        return ""
    try:
        h = h.encode("idna").decode("ascii")
    except UnicodeError:
        pass
    return h


def host_matches(host: str, domains: Iterable[str]) -> bool:
    """
    Check whether a host equals, or is a subdomain of, any listed domain.

    Entries may be written as "example.com", ".example.com" or
    "*.example.com"; all three match example.com and its subdomains.
    """
    normalized = _idna_normalize(host)
    if not normalized:
        return False

    for entry in domains:
        domain = _idna_normalize((entry or "").lstrip("*").lstrip("."))
        if not domain:
            continue
        if normalized == domain or normalized.endswith(f".{domain}"):
            return True
    return False


class SafetyGate:
    """
    Pre-flight checks applied to every URL before a network call.

    All checks are pure functions of the URL and the configuration.
    """

    def __init__(self, config: FetchConfig):
        """
        Initialize the gate.

        Args:
            config: Settings supplying the block lists, tracking parameter
                names and this server's own host names
        """
        self.config = config

    def is_local_link(self, url: str) -> bool:
        """
        Check if a URL points at this server or an internal address.

        Only used for logging; local links are not refused.
        """
        hostname = get_hostname(url)
        if not hostname:
            return False
        if host_matches(hostname, self.config.local_hostnames):
            return True
        return is_local_address(hostname)

    def is_blocked(self, url: str) -> bool:
        """Check if the URL's host is on the administrator block list."""
        return host_matches(get_hostname(url), self.config.get_blocked_domains())

    def is_redirect_blocked(self, url: str) -> bool:
        """Check if the URL's host must never be followed through a redirect."""
        return host_matches(get_hostname(url), self.config.get_redirect_blocked_domains())

    def strip_tracking_params(self, url: str) -> str:
        """Remove well-known tracking parameters from the query string."""
        return strip_query_params(url, self.config.get_tracking_param_names())
