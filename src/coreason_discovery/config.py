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
Configuration for the coreason-discovery package.
"""

from datetime import timedelta
from enum import StrEnum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_discovery.endpoint import parse_url
from coreason_discovery.exceptions import MalformedUrlError
from coreason_discovery.policy import DiscoveryPolicy
from coreason_discovery.strategies import (
    AuthorityUrlValidationStrategy,
    AuthorityValidationStrategy,
    StringComparison,
    StringComparisonAuthorityValidationStrategy,
)
from coreason_discovery.transport import DEFAULT_MAX_RESPONSE_BYTES

DEFAULT_CACHE_DURATION_SECONDS = 24 * 60 * 60
DEFAULT_HTTP_TIMEOUT = 10.0


class AuthorityValidation(StrEnum):
    """Built-in authority validation strategies selectable from configuration."""

    STRING = "string"
    STRING_IGNORE_CASE = "string_ignore_case"
    URL = "url"


class DiscoverySettings(BaseSettings):
    """
    Configuration settings for coreason-discovery.

    Every field can be set from an environment variable prefixed with
    `COREASON_DISCOVERY_`, e.g. `COREASON_DISCOVERY_AUTHORITY`. Set-valued fields
    take a JSON array, e.g. `COREASON_DISCOVERY_LOOPBACK_ADDRESSES='["localhost"]'`.

    Attributes:
        authority (str | None): Issuer base address or discovery document URL.
        discovery_document_path (str | None): Path of the discovery document.
        cache_duration_seconds (float): Time-to-live of a successfully loaded document.
        http_timeout (float): Timeout in seconds for discovery requests.
        max_response_bytes (int): Maximum accepted size of a discovery or JWKS response.
        authority_validation (AuthorityValidation): Strategy for issuer and endpoint checks.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_DISCOVERY_",
        case_sensitive=False,
    )

    authority: str | None = None
    discovery_document_path: str | None = None
    cache_duration_seconds: float = Field(DEFAULT_CACHE_DURATION_SECONDS, gt=0)
    http_timeout: float = Field(DEFAULT_HTTP_TIMEOUT, gt=0, description="Timeout in seconds for discovery requests.")
    max_response_bytes: int = Field(DEFAULT_MAX_RESPONSE_BYTES, gt=0)

    require_https: bool = True
    allow_http_on_loopback: bool = True
    loopback_addresses: set[str] = Field(default_factory=lambda: {"localhost", "127.0.0.1"})
    validate_issuer_name: bool = True
    validate_endpoints: bool = True
    endpoint_validation_exclude_list: set[str] = Field(default_factory=set)
    additional_endpoint_base_addresses: set[str] = Field(default_factory=set)
    require_key_set: bool = True
    authority_validation: AuthorityValidation = AuthorityValidation.STRING

    @field_validator("authority")
    @classmethod
    def validate_authority(cls, v: str | None) -> str | None:
        """
        Ensures the authority is an absolute http(s) URL.

        Raises:
            ValueError: If the authority is malformed.
        """
        if v is None:
            return v
        v = v.strip()
        try:
            parse_url(v)
        except MalformedUrlError as e:
            raise ValueError(f"Malformed authority: {v!r}") from e
        return v

    @property
    def cache_duration(self) -> timedelta:
        return timedelta(seconds=self.cache_duration_seconds)

    def authority_validation_strategy(self) -> AuthorityValidationStrategy:
        if self.authority_validation is AuthorityValidation.URL:
            return AuthorityUrlValidationStrategy()
        if self.authority_validation is AuthorityValidation.STRING_IGNORE_CASE:
            return StringComparisonAuthorityValidationStrategy(StringComparison.ORDINAL_IGNORE_CASE)
        return StringComparisonAuthorityValidationStrategy()

    def to_policy(self) -> DiscoveryPolicy:
        """
        Builds a DiscoveryPolicy from the settings.

        The policy authority is left unset, so it is derived from the discovery
        address on every validation pass.
        """
        return DiscoveryPolicy(
            discovery_document_path=self.discovery_document_path,
            authority_validation_strategy=self.authority_validation_strategy(),
            require_https=self.require_https,
            allow_http_on_loopback=self.allow_http_on_loopback,
            loopback_addresses=set(self.loopback_addresses),
            validate_issuer_name=self.validate_issuer_name,
            validate_endpoints=self.validate_endpoints,
            endpoint_validation_exclude_list=set(self.endpoint_validation_exclude_list),
            additional_endpoint_base_addresses=set(self.additional_endpoint_base_addresses),
            require_key_set=self.require_key_set,
        )
