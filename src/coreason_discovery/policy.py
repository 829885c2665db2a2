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
Security policy applied when retrieving a discovery document.
"""

from pydantic import BaseModel, ConfigDict, Field

from coreason_discovery.strategies import (
    AuthorityValidationStrategy,
    StringComparisonAuthorityValidationStrategy,
)

DEFAULT_AUTHORITY_VALIDATION_STRATEGY: AuthorityValidationStrategy = StringComparisonAuthorityValidationStrategy()


class DiscoveryPolicy(BaseModel):
    """
    Security policy for retrieving a discovery document.

    The policy may be changed between calls. Every validation pass works on a
    snapshot taken with `snapshot()`, so changes never affect a fetch that is
    already in flight.

    Attributes:
        authority (str | None): The authority the checks are based on. Filled in from the
            discovery address for each pass when not set.
        discovery_document_path (str | None): Path of the discovery document.
        authority_validation_strategy (AuthorityValidationStrategy): Strategy used to validate
            issuer name and endpoints. Never None.
        require_https (bool): Enforce HTTPS on all endpoints.
        allow_http_on_loopback (bool): Tolerate HTTP on loopback addresses.
        loopback_addresses (set[str]): Host names treated as loopback.
        validate_issuer_name (bool): Check that the issuer name matches the authority.
        validate_endpoints (bool): Check that all endpoints belong to the authority.
        endpoint_validation_exclude_list (set[str]): Endpoint names skipped by endpoint validation.
        additional_endpoint_base_addresses (set[str]): Extra base addresses allowed for endpoints.
        require_key_set (bool): Require a key set to be published.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)

    authority: str | None = None
    discovery_document_path: str | None = None
    authority_validation_strategy: AuthorityValidationStrategy = DEFAULT_AUTHORITY_VALIDATION_STRATEGY
    require_https: bool = True
    allow_http_on_loopback: bool = True
    loopback_addresses: set[str] = Field(default_factory=lambda: {"localhost", "127.0.0.1"})
    validate_issuer_name: bool = True
    validate_endpoints: bool = True
    endpoint_validation_exclude_list: set[str] = Field(default_factory=set)
    additional_endpoint_base_addresses: set[str] = Field(default_factory=set)
    require_key_set: bool = True

    def snapshot(self, authority: str | None = None) -> "DiscoveryPolicy":
        """
        Returns an independent copy of the policy for a single validation pass.

        Args:
            authority: Authority to use when the policy does not define one.
        """
        return self.model_copy(
            update={
                "authority": self.authority or authority,
                "loopback_addresses": set(self.loopback_addresses),
                "endpoint_validation_exclude_list": set(self.endpoint_validation_exclude_list),
                "additional_endpoint_base_addresses": set(self.additional_endpoint_base_addresses),
            }
        )
