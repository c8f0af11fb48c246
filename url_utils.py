"""
URL utilities for normalization and address classification.
"""

import ipaddress
from typing import Iterable
from urllib.parse import quote, unquote_plus, urljoin, urlsplit, urlunsplit


def parse_url(url: str) -> dict[str, str] | None:
    """
    Split a URL into its components.

    Args:
        url: The URL to parse

    Returns:
        Dictionary with scheme, netloc, path, query and fragment keys,
        or None if the URL cannot be parsed
    """
    try:
        parsed = urlsplit(url)
        # Accessing the port validates it
        parsed.port
    except (ValueError, TypeError, AttributeError):
        return None

    return {
        "scheme": parsed.scheme,
        "netloc": parsed.netloc,
        "path": parsed.path,
        "query": parsed.query,
        "fragment": parsed.fragment,
    }


def unparse_url(parts: dict[str, str]) -> str:
    """
    Reassemble a URL from the components returned by parse_url.

    Args:
        parts: URL components

    Returns:
        URL string
    """
    url = ""
    if parts.get("scheme"):
        url += f"{parts['scheme']}:"
    has_authority = bool(parts.get("netloc")) or parts.get("scheme") in ("http", "https")
    if has_authority:
        url += f"//{parts.get('netloc', '')}"

    path = parts.get("path", "")
    if path and has_authority and not path.startswith("/"):
        path = "/" + path
    url += path

    if parts.get("query"):
        url += f"?{parts['query']}"
    if parts.get("fragment"):
        url += f"#{parts['fragment']}"
    return url


def encode_path_segment(segment: str) -> str:
    """Percent-encode a path segment if it holds non-ASCII characters."""
    if len(segment.encode("utf-8", errors="surrogatepass")) != len(segment):
        return quote(segment, safe="", errors="surrogatepass")
    return segment


def normalize_url(url: str) -> str:
    """
    Percent-encode every path segment containing multi-byte characters.

    ASCII paths are returned untouched, as is anything that cannot be
    parsed; the transport reports those as failures later on.

    Args:
        url: The URL to normalize

    Returns:
        Normalized URL as a string
    """
    parts = parse_url(url)
    if parts is None:
        return url

    segments = parts["path"].split("/")
    encoded = [encode_path_segment(segment) for segment in segments]
    if encoded == segments:
        return url

    parts["path"] = "/".join(encoded)
    return unparse_url(parts)


def strip_query_params(url: str, names: Iterable[str]) -> str:
    """
    Remove query parameters by name, keeping the rest in order.

    Parameter names are compared case-insensitively after decoding; kept
    parameters retain their original encoding.

    Args:
        url: The URL to clean
        names: Parameter names to remove

    Returns:
        URL without the named parameters
    """
    drop = {name.lower() for name in names}
    try:
        parsed = urlsplit(url)
    except ValueError:
        return url
    if not parsed.query or not drop:
        return url

    pairs = parsed.query.split("&")
    kept = [
        pair for pair in pairs
        if unquote_plus(pair.split("=", 1)[0]).lower() not in drop
    ]
    if len(kept) == len(pairs):
        return url

    return urlunsplit(parsed._replace(query="&".join(kept)))


def get_hostname(url: str) -> str:
    """Return the lowercase host of a URL, or an empty string."""
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return ""
    return (hostname or "").rstrip(".")


def resolve_location(base_url: str, location: str) -> str:
    """Resolve a possibly relative redirect target against the current URL."""
    if location.startswith(("http://", "https://")):
        return location
    return urljoin(base_url, location)


def is_local_address(hostname: str) -> bool:
    """
    Check whether a host names this machine or an internal network.

    Matches:
    - localhost and *.localhost
    - 127.0.0.0/8 and ::1 (loopback)
    - 10.0.0.0/8, 172.16.0.0/12, 192.168.0.0/16, fc00::/7 (private)
    - 169.254.0.0/16, fe80::/10 (link-local, including cloud metadata)
    - unspecified and reserved addresses

    No DNS lookups are made: host names other than localhost are not local.

    Args:
        hostname: The host to check

    Returns:
        True if the host is local, False otherwise
    """
    host = hostname.strip("[]").lower()
    if not host:
        return False

    if host in ("localhost", "localhost.localdomain") or host.endswith(".localhost"):
        return True

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        # Not an IP address, it's a hostname
        return False

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped

    return (
        ip.is_loopback
        or ip.is_private
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_reserved
    )
