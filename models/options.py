from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, PositiveInt


class RequestOptions(BaseModel):
    """
    Per-call options for a single outbound request.
    All fields are optional; unset fields fall back to client defaults.
    """
    cookie_jar_path: Optional[str] = None  # File-backed cookie store for this request only
    accept_content: Optional[str] = None  # Sent as the Accept header
    extra_headers: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: Optional[PositiveInt] = None
    max_content_length: Optional[PositiveInt] = None  # Abort when Content-Length exceeds this
    json_body: Optional[Any] = None  # POST payload, sent as application/json

    def effective_headers(self, defaults: Dict[str, str]) -> Dict[str, str]:
        """
        Merge request headers over the client defaults.

        Header names compare case-insensitively; caller values win, and
        the Accept option wins over everything. ``defaults`` is not modified.
        """
        merged: Dict[str, str] = {}
        names: Dict[str, str] = {}

        def put(name: str, value: str) -> None:
            previous = names.pop(name.lower(), None)
            if previous is not None:
                merged.pop(previous, None)
            names[name.lower()] = name
            merged[name] = value

        for name, value in defaults.items():
            put(name, value)
        for name, value in self.extra_headers.items():
            put(name, value)
        if self.accept_content:
            put("Accept", self.accept_content)

        return merged
