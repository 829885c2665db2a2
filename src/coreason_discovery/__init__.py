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
OpenID Connect discovery document retrieval, validation and caching.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .cache import DiscoveryCache
from .config import AuthorityValidation, DiscoverySettings
from .endpoint import DiscoveryEndpoint, is_secure_scheme, is_valid_scheme, parse_url
from .exceptions import (
    AuthorityResolutionError,
    CoreasonDiscoveryError,
    MalformedUrlError,
    OversizedResponseError,
)
from .fetcher import get_discovery_document, get_json_web_key_set
from .models import (
    DiscoveryDocumentRequest,
    DiscoveryDocumentResponse,
    JsonWebKey,
    JsonWebKeySet,
    JsonWebKeySetRequest,
    JsonWebKeySetResponse,
    ResponseErrorType,
)
from .policy import DiscoveryPolicy
from .strategies import (
    AuthorityUrlValidationStrategy,
    AuthorityValidationResult,
    AuthorityValidationStrategy,
    StringComparison,
    StringComparisonAuthorityValidationStrategy,
)
from .validation import validate_discovery_document

__all__ = [
    "AuthorityResolutionError",
    "AuthorityUrlValidationStrategy",
    "AuthorityValidation",
    "AuthorityValidationResult",
    "AuthorityValidationStrategy",
    "CoreasonDiscoveryError",
    "DiscoveryCache",
    "DiscoveryDocumentRequest",
    "DiscoveryDocumentResponse",
    "DiscoveryEndpoint",
    "DiscoveryPolicy",
    "DiscoverySettings",
    "JsonWebKey",
    "JsonWebKeySet",
    "JsonWebKeySetRequest",
    "JsonWebKeySetResponse",
    "MalformedUrlError",
    "OversizedResponseError",
    "ResponseErrorType",
    "StringComparison",
    "StringComparisonAuthorityValidationStrategy",
    "get_discovery_document",
    "get_json_web_key_set",
    "is_secure_scheme",
    "is_valid_scheme",
    "parse_url",
    "validate_discovery_document",
]
