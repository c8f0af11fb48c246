"""
Uniform results for outbound HTTP exchanges.

Every request ends in exactly one HTTPResult: a SuccessResult when the
server answered, or a FailureResult when the request was rejected before
dispatch, aborted, or failed in transport. Neither constructor raises.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from url_utils import resolve_location


def _charset(content_type: str) -> Optional[str]:
    for param in content_type.split(";")[1:]:
        name, _, value = param.partition("=")
        if name.strip().lower() == "charset" and value.strip():
            return value.strip().strip("'\"")
    return None


@dataclass(frozen=True)
class HTTPResult:
    """Read-only view shared by both result cases."""

    url: str
    status_code: int = 0
    headers: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = field(default=b"", repr=False)

    @property
    def is_error(self) -> bool:
        return not 200 <= self.status_code <= 399

    @property
    def is_success(self) -> bool:
        return not self.is_error

    @property
    def is_timeout(self) -> bool:
        return False

    @property
    def error_message(self) -> str:
        return ""

    def header_values(self, name: str) -> List[str]:
        """All values received for a header (case-insensitive name)."""
        wanted = name.lower()
        for key, values in self.headers.items():
            if key.lower() == wanted:
                return list(values)
        return []

    def header(self, name: str) -> str:
        """Values of a header joined with ", ", or "" if absent."""
        return ", ".join(self.header_values(name))

    def in_header(self, name: str) -> bool:
        return bool(self.header_values(name))

    @property
    def content_type(self) -> str:
        return self.header("Content-Type")

    @property
    def is_redirect(self) -> bool:
        return self.status_code in (301, 302, 303, 307, 308) and self.in_header("Location")

    @property
    def redirect_url(self) -> str:
        """Absolute target of the Location header, or "" if there is none."""
        location = self.header_values("Location")
        if not location:
            return ""
        return resolve_location(self.url, location[0].strip())

    @property
    def text(self) -> str:
        """Decode the body using the declared charset, falling back to UTF-8."""
        if not self.body:
            return ""
        encoding = _charset(self.content_type) or "utf-8"
        try:
            return self.body.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            return self.body.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class SuccessResult(HTTPResult):
    """The server answered; status, headers and body are as received."""


@dataclass(frozen=True)
class FailureResult(HTTPResult):
    """
    The exchange did not complete.

    ``status_code`` is 0 unless a partial response arrived (for instance
    headers received before an oversized body was refused). The body is
    always empty.
    """

    error: str = ""
    timed_out: bool = False

    def __post_init__(self) -> None:
        if self.body:
            object.__setattr__(self, "body", b"")

    @property
    def is_error(self) -> bool:
        return True

    @property
    def is_timeout(self) -> bool:
        return self.timed_out

    @property
    def error_message(self) -> str:
        return self.error

    @classmethod
    def rejected(cls, url: str, reason: str) -> "FailureResult":
        """Result for a request refused before any network activity."""
        return cls(url=url, error=reason)
