# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_discovery

"""
Discovery address normalization and URL scheme checks.
"""

from typing import TYPE_CHECKING
from urllib.parse import SplitResult, urlsplit

from pydantic import BaseModel, ConfigDict, Field

from coreason_discovery.exceptions import MalformedUrlError

if TYPE_CHECKING:
    from coreason_discovery.policy import DiscoveryPolicy

DISCOVERY_DOCUMENT_PATH = ".well-known/openid-configuration"

_VALID_SCHEMES = frozenset({"http", "https"})

DEFAULT_PORTS = {"http": 80, "https": 443}


class DiscoveryEndpoint(BaseModel):
    """
    A discovery address split into its authority and the discovery document URL.
    """

    model_config = ConfigDict(frozen=True)

    authority: str = Field(..., description="The issuer base address, without trailing slash.")
    url: str = Field(..., description="The full URL of the discovery document.")


def remove_trailing_slash(value: str) -> str:
    """Removes a single trailing slash, if present."""
    if value.endswith("/"):
        return value[:-1]
    return value


def try_parse_absolute_url(value: str) -> SplitResult | None:
    """
    Parses `value` as an absolute URL.

    Returns:
        The split URL, or None when the value has no scheme, no host, or cannot be parsed.
    """
    if not value or value != value.strip():
        return None
    try:
        parsed = urlsplit(value)
        # Accessing the port validates it (raises ValueError when out of range or not numeric)
        _ = parsed.port
    except ValueError:
        return None

    if not parsed.scheme or not parsed.hostname:
        return None
    return parsed


def is_valid_scheme(url: SplitResult) -> bool:
    """Determines whether the URL uses http or https."""
    return url.scheme.lower() in _VALID_SCHEMES


def is_secure_scheme(url: SplitResult, policy: "DiscoveryPolicy") -> bool:
    """
    Determines whether the URL uses a secure scheme according to the policy.

    When HTTPS is required, plain HTTP is only tolerated for hosts listed in the
    policy's loopback addresses (compared case-insensitively), and only if the
    policy allows HTTP on loopback.
    """
    if not policy.require_https:
        return True

    if policy.allow_http_on_loopback:
        host = (url.hostname or "").lower()
        if any(host == address.lower() for address in policy.loopback_addresses):
            return True

    return url.scheme.lower() == "https"


def parse_url(value: str, path: str | None = None) -> DiscoveryEndpoint:
    """
    Parses a base address or discovery URL into authority and discovery document URL.

    Args:
        value: The issuer base address or the full discovery document URL.
        path: The discovery document path. Defaults to `.well-known/openid-configuration`.

    Returns:
        DiscoveryEndpoint: The normalized authority and discovery URL.

    Raises:
        MalformedUrlError: If the value is not an absolute http or https URL.
    """
    if value is None:
        raise MalformedUrlError()

    if not path:
        path = DISCOVERY_DOCUMENT_PATH

    parsed = try_parse_absolute_url(value)
    if parsed is None or not is_valid_scheme(parsed):
        raise MalformedUrlError()

    url = remove_trailing_slash(value)
    if path.startswith("/"):
        path = path[1:]

    if url.lower().endswith(path.lower()):
        return DiscoveryEndpoint(authority=url[: len(url) - len(path) - 1], url=url)

    return DiscoveryEndpoint(authority=url, url=f"{url}/{path}")
