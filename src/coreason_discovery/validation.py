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
Validation of a fetched discovery document against a DiscoveryPolicy.
"""

from collections.abc import Iterator
from typing import Any

from coreason_discovery.endpoint import DEFAULT_PORTS, is_secure_scheme, is_valid_scheme, try_parse_absolute_url
from coreason_discovery.models import DiscoveryParameter, JsonWebKeySet
from coreason_discovery.policy import DiscoveryPolicy

KEY_SET_MISSING = "Keyset is missing"
KEY_SET_EMPTY = "Keyset is empty"


def is_endpoint_name(name: str) -> bool:
    """Returns True for discovery members that hold an endpoint URL."""
    lowered = name.lower()
    return (
        lowered.endswith("endpoint")
        or lowered == DiscoveryParameter.JWKS_URI
        or lowered == DiscoveryParameter.CHECK_SESSION_IFRAME
    )


def iter_endpoints(document: dict[str, Any], policy: DiscoveryPolicy) -> Iterator[tuple[str, Any]]:
    """Yields (name, value) for every endpoint member not on the policy's exclude list."""
    for name, value in document.items():
        if not is_endpoint_name(name):
            continue
        if name in policy.endpoint_validation_exclude_list:
            continue
        yield name, value


def _authority_host(address: str) -> str | None:
    # host[:port], with the scheme's default port omitted
    parsed = try_parse_absolute_url(address)
    if parsed is None:
        return None
    host = (parsed.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    port = parsed.port
    if port is None or port == DEFAULT_PORTS.get(parsed.scheme.lower()):
        return host
    return f"{host}:{port}"


def validate_discovery_document(document: dict[str, Any], policy: DiscoveryPolicy) -> str | None:
    """
    Applies the policy rules to a discovery document.

    The rules run in order and stop at the first violation:
    endpoint scheme security, issuer name, endpoint ownership, key set presence.

    Args:
        document: The parsed discovery document.
        policy: The policy snapshot for this pass. Its authority must be set.

    Returns:
        str | None: The violation message, or None when the document is valid.

    Raises:
        ValueError: If the policy authority (or an additional base address) is not a URL
            and the active strategy requires one.
    """
    authority = policy.authority or ""
    strategy = policy.authority_validation_strategy

    endpoints = list(iter_endpoints(document, policy))

    for _, value in endpoints:
        endpoint = value if isinstance(value, str) else str(value)
        parsed = try_parse_absolute_url(endpoint)
        if parsed is None or not is_valid_scheme(parsed):
            return f"Malformed endpoint: {endpoint}"
        if not is_secure_scheme(parsed, policy):
            return f"Endpoint does not use HTTPS: {endpoint}"

    if policy.validate_issuer_name:
        issuer = document.get(DiscoveryParameter.ISSUER)
        result = strategy.is_issuer_name_valid(issuer if isinstance(issuer, str) else None, authority)
        if not result.success:
            return result.error_message

    if policy.validate_endpoints:
        allowed_authorities = {authority, *policy.additional_endpoint_base_addresses}
        allowed_hosts = {host for host in map(_authority_host, allowed_authorities) if host}

        for _, value in endpoints:
            endpoint = str(value)
            if _authority_host(endpoint) not in allowed_hosts:
                return f"Endpoint is on a different host than authority: {endpoint}"

            result = strategy.is_endpoint_valid(endpoint, allowed_authorities)
            if not result.success:
                return result.error_message

    if policy.require_key_set:
        jwks_uri = document.get(DiscoveryParameter.JWKS_URI)
        if not isinstance(jwks_uri, str) or not jwks_uri.strip():
            return KEY_SET_MISSING

    return None


def validate_key_set(key_set: JsonWebKeySet | None, policy: DiscoveryPolicy) -> str | None:
    """
    Checks the downloaded key set against the policy.

    Returns:
        str | None: The violation message, or None when the key set is acceptable.
    """
    if not policy.require_key_set:
        return None
    if key_set is None:
        return KEY_SET_MISSING
    if not key_set.keys:
        return KEY_SET_EMPTY
    return None
