# config.py

import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, Mapping

from dotenv import load_dotenv

from utils.logger import logger

# Default configuration for the fetch engine
DEFAULT_CONFIG = {
    "USER_AGENT": "netfetch/1.0 (+https://github.com/netfetch/netfetch)",
    "DEFAULT_TIMEOUT": 30,  # Seconds, used when a request sets no timeout
    # Hosts that must never be contacted (exact or subdomain match)
    "BLOCKED_DOMAINS": [],
    # Hosts that are never followed through a redirect
    "REDIRECT_BLOCKED_DOMAINS": [],
    # Query parameters removed before a URL is resolved
    "TRACKING_PARAMS": [
        "utm_source",
        "utm_medium",
        "utm_term",
        "utm_content",
        "utm_campaign",
        "utm_id",
        "fbclid",
        "gclid",
        "dclid",
        "msclkid",
        "mc_cid",
        "mc_eid",
        "fb_action_ids",
        "fb_action_types",
        "fb_ref",
        "fb_source",
        "action_object_map",
        "action_type_map",
        "action_ref_map",
        "_hsenc",
        "_hsmi",
        "igshid",
        "yclid",
    ],
    # Host names under which this server is reachable
    "LOCAL_HOSTNAMES": [],
    "DEFAULT_HEADERS": {
        "Accept": "*/*",
        "Accept-Language": "en-US,en;q=0.5",
    },
    # Redirect resolution limits
    "REDIRECT_CONFIG": {
        "MAX_DEPTH": 10,  # Hops followed before the current URL is taken as final
        "PROBE_TIMEOUT": 10,  # Connect and read timeout for each probe
        "MAX_BODY_SCAN": 1_000_000,  # Bodies declared larger are never scanned
    },
    "MAX_URL_LENGTH": 1000,
    "REJECTED_URL_LENGTH": 200,  # Prefix kept on results for over-long URLs
}


@dataclass(frozen=True)
class FetchConfig:
    """
    Read-only settings shared by the fetcher, the redirect resolver and the
    safety gate. Built once at startup and passed to each component.
    """

    user_agent: str = DEFAULT_CONFIG["USER_AGENT"]
    default_timeout: int = DEFAULT_CONFIG["DEFAULT_TIMEOUT"]
    blocked_domains: FrozenSet[str] = frozenset()
    redirect_blocked_domains: FrozenSet[str] = frozenset()
    tracking_params: FrozenSet[str] = frozenset(DEFAULT_CONFIG["TRACKING_PARAMS"])
    local_hostnames: FrozenSet[str] = frozenset()
    default_headers: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_CONFIG["DEFAULT_HEADERS"])
    )
    max_redirect_depth: int = DEFAULT_CONFIG["REDIRECT_CONFIG"]["MAX_DEPTH"]
    probe_timeout: int = DEFAULT_CONFIG["REDIRECT_CONFIG"]["PROBE_TIMEOUT"]
    max_body_scan: int = DEFAULT_CONFIG["REDIRECT_CONFIG"]["MAX_BODY_SCAN"]
    max_url_length: int = DEFAULT_CONFIG["MAX_URL_LENGTH"]
    rejected_url_length: int = DEFAULT_CONFIG["REJECTED_URL_LENGTH"]

    def get_blocked_domains(self) -> FrozenSet[str]:
        return self.blocked_domains

    def get_redirect_blocked_domains(self) -> FrozenSet[str]:
        return self.redirect_blocked_domains

    def get_tracking_param_names(self) -> FrozenSet[str]:
        return self.tracking_params

    def get_user_agent(self) -> str:
        return self.user_agent

    def get_default_timeout_seconds(self) -> int:
        return self.default_timeout

    def with_overrides(self, **changes: Any) -> "FetchConfig":
        """Return a copy with the given fields replaced."""
        for key in ("blocked_domains", "redirect_blocked_domains", "tracking_params", "local_hostnames"):
            if key in changes:
                changes[key] = _as_name_set(changes[key])
        return replace(self, **changes)


def _as_name_set(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(v.strip().lower() for v in values if v and v.strip())


def _split_env_list(name: str) -> list[str] | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return [item.strip() for item in raw.split(",") if item.strip()]


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid integer for {name}: {raw!r}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non-positive value for {name}: {value}")
        return default
    return value


def load_config(overrides: Dict[str, Any] | None = None) -> FetchConfig:
    """
    Build a FetchConfig from DEFAULT_CONFIG, the environment and a .env file.

    Environment variables:
        NETFETCH_USER_AGENT, NETFETCH_TIMEOUT,
        NETFETCH_BLOCKED_DOMAINS, NETFETCH_REDIRECT_BLOCKED_DOMAINS,
        NETFETCH_TRACKING_PARAMS, NETFETCH_LOCAL_HOSTNAMES
        (lists are comma separated)

    Args:
        overrides: Optional field values applied last

    Returns:
        FetchConfig instance
    """
    load_dotenv()

    settings: Dict[str, Any] = {
        "user_agent": os.getenv("NETFETCH_USER_AGENT") or DEFAULT_CONFIG["USER_AGENT"],
        "default_timeout": _int_env("NETFETCH_TIMEOUT", DEFAULT_CONFIG["DEFAULT_TIMEOUT"]),
        "blocked_domains": _split_env_list("NETFETCH_BLOCKED_DOMAINS")
        or DEFAULT_CONFIG["BLOCKED_DOMAINS"],
        "redirect_blocked_domains": _split_env_list("NETFETCH_REDIRECT_BLOCKED_DOMAINS")
        or DEFAULT_CONFIG["REDIRECT_BLOCKED_DOMAINS"],
        "tracking_params": _split_env_list("NETFETCH_TRACKING_PARAMS")
        or DEFAULT_CONFIG["TRACKING_PARAMS"],
        "local_hostnames": _split_env_list("NETFETCH_LOCAL_HOSTNAMES")
        or DEFAULT_CONFIG["LOCAL_HOSTNAMES"],
    }
    if overrides:
        settings.update(overrides)

    return FetchConfig().with_overrides(**settings)
