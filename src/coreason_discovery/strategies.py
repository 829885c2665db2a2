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
Authority validation strategies.

A strategy decides whether the issuer name published in a discovery document
matches the expected authority, and whether an endpoint URL belongs to one of
the allowed authorities.
"""

import re
from collections.abc import Iterable
from enum import StrEnum
from typing import ClassVar, Protocol, runtime_checkable
from urllib.parse import SplitResult

from pydantic import BaseModel, ConfigDict, model_validator

from coreason_discovery.endpoint import DEFAULT_PORTS, remove_trailing_slash, try_parse_absolute_url

_PERCENT_ENCODED = re.compile(r"%([0-9A-Fa-f]{2})")
_UNRESERVED = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~")


class AuthorityValidationResult(BaseModel):
    """
    Outcome of an authority validation check.

    A failed result always carries a non-empty error message.
    """

    model_config = ConfigDict(frozen=True)

    SUCCESS: ClassVar["AuthorityValidationResult"]

    success: bool
    error_message: str | None = None

    @model_validator(mode="after")
    def require_message_on_failure(self) -> "AuthorityValidationResult":
        if not self.success and not self.error_message:
            raise ValueError("A message must be provided if success=False.")
        return self

    @classmethod
    def create_error(cls, message: str) -> "AuthorityValidationResult":
        return cls(success=False, error_message=message)

    def __str__(self) -> str:
        return "success" if self.success else str(self.error_message)


AuthorityValidationResult.SUCCESS = AuthorityValidationResult(success=True)


@runtime_checkable
class AuthorityValidationStrategy(Protocol):
    """Protocol for validating issuer names and endpoints against the expected authority."""

    def is_issuer_name_valid(self, issuer_name: str | None, expected_authority: str) -> AuthorityValidationResult:
        """Validates the issuer name found in the discovery document."""
        ...

    def is_endpoint_valid(self, endpoint: str | None, allowed_authorities: Iterable[str]) -> AuthorityValidationResult:
        """Validates an endpoint found in the discovery document."""
        ...


class StringComparison(StrEnum):
    ORDINAL = "ordinal"
    ORDINAL_IGNORE_CASE = "ordinal_ignore_case"


def _remove_dot_segments(path: str) -> str:
    # RFC 3986, section 5.2.4
    output: list[str] = []
    for segment in path.split("/"):
        if segment == "..":
            if len(output) > 1:
                output.pop()
        elif segment != ".":
            output.append(segment)
    result = "/".join(output)
    if path.endswith(("/.", "/..")):
        result += "/"
    return result


def _normalize_percent_encoding(value: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        char = chr(int(match.group(1), 16))
        if char in _UNRESERVED:
            return char
        return f"%{match.group(1).upper()}"

    return _PERCENT_ENCODED.sub(_replace, value)


def canonicalize_url(url: SplitResult) -> str:
    """
    Builds the canonical string form of an absolute URL.

    Scheme and host are lower-cased, the default port is dropped, dot segments are
    resolved and percent-encoded unreserved characters are decoded. User info and
    fragment are not part of the canonical form.
    """
    scheme = url.scheme.lower()
    host = (url.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"

    port = url.port
    netloc = host if port is None or port == DEFAULT_PORTS.get(scheme) else f"{host}:{port}"

    path = _normalize_percent_encoding(_remove_dot_segments(url.path)) or "/"
    if not path.startswith("/"):
        path = f"/{path}"

    canonical = f"{scheme}://{netloc}{path}"
    if url.query:
        canonical += f"?{_normalize_percent_encoding(url.query)}"
    return canonical


class AuthorityUrlValidationStrategy:
    """
    Validates authorities based on URL equality. Trailing slash is ignored.

    `https://authority:443/tenant/` and `https://authority/tenant` are considered
    equal, because both resolve to the same canonical URL.
    """

    def is_issuer_name_valid(self, issuer_name: str | None, expected_authority: str) -> AuthorityValidationResult:
        """
        Compares the issuer name and the expected authority as URLs.

        Raises:
            ValueError: If the expected authority is not an absolute URL.
        """
        expected_url = try_parse_absolute_url(remove_trailing_slash(expected_authority or ""))
        if expected_url is None:
            raise ValueError("Authority must be a valid URL.")

        if not issuer_name or not issuer_name.strip():
            return AuthorityValidationResult.create_error("Issuer name is missing")

        issuer_url = try_parse_absolute_url(remove_trailing_slash(issuer_name))
        if issuer_url is None:
            return AuthorityValidationResult.create_error("Issuer name is not a valid URL")

        if canonicalize_url(expected_url) == canonicalize_url(issuer_url):
            return AuthorityValidationResult.SUCCESS

        return AuthorityValidationResult.create_error(f"Issuer name does not match authority: {issuer_name}")

    def is_endpoint_valid(self, endpoint: str | None, allowed_authorities: Iterable[str]) -> AuthorityValidationResult:
        """
        Checks that the canonical endpoint URL starts with one of the canonical allowed authorities.

        Raises:
            ValueError: If one of the allowed authorities is not an absolute URL.
        """
        if not endpoint:
            return AuthorityValidationResult.create_error("endpoint is empty")

        endpoint_url = try_parse_absolute_url(remove_trailing_slash(endpoint))
        if endpoint_url is None:
            return AuthorityValidationResult.create_error("Endpoint is not a valid URL")

        endpoint_canonical = canonicalize_url(endpoint_url)

        for authority in allowed_authorities:
            authority_url = try_parse_absolute_url(remove_trailing_slash(authority))
            if authority_url is None:
                raise ValueError(f"Authority must be a URL: {authority}")

            if endpoint_canonical.startswith(canonicalize_url(authority_url)):
                return AuthorityValidationResult.SUCCESS

        return AuthorityValidationResult.create_error(f"Endpoint belongs to different authority: {endpoint}")


class StringComparisonAuthorityValidationStrategy:
    """
    Validates authorities with plain string comparison.

    Nothing is canonicalized: default ports, percent-encoding and dot segments
    must match literally. Use `StringComparison.ORDINAL_IGNORE_CASE` for
    deployments with case-insensitive tenant paths.
    """

    def __init__(self, comparison: StringComparison = StringComparison.ORDINAL) -> None:
        self.comparison = StringComparison(comparison)

    def _fold(self, value: str) -> str:
        if self.comparison is StringComparison.ORDINAL_IGNORE_CASE:
            return value.casefold()
        return value

    def is_issuer_name_valid(self, issuer_name: str | None, expected_authority: str) -> AuthorityValidationResult:
        """String comparison between issuer and authority (trailing slash ignored)."""
        if not issuer_name or not issuer_name.strip():
            return AuthorityValidationResult.create_error("Issuer name is missing")

        if self._fold(remove_trailing_slash(issuer_name)) == self._fold(remove_trailing_slash(expected_authority or "")):
            return AuthorityValidationResult.SUCCESS

        return AuthorityValidationResult.create_error(f"Issuer name does not match authority: {issuer_name}")

    def is_endpoint_valid(self, endpoint: str | None, allowed_authorities: Iterable[str]) -> AuthorityValidationResult:
        """String "starts with" comparison between endpoint and allowed authorities."""
        if not endpoint:
            return AuthorityValidationResult.create_error("endpoint is empty")

        folded_endpoint = self._fold(endpoint)
        for authority in allowed_authorities:
            if folded_endpoint.startswith(self._fold(authority)):
                return AuthorityValidationResult.SUCCESS

        return AuthorityValidationResult.create_error(f"Endpoint belongs to different authority: {endpoint}")

    def __repr__(self) -> str:
        return f"StringComparisonAuthorityValidationStrategy(comparison={self.comparison!r})"
