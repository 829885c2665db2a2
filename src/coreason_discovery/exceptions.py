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
Custom exceptions for the coreason-discovery package.

Only configuration and programming errors are raised. Network, HTTP and policy
failures are reported on the returned response objects instead.
"""


class CoreasonDiscoveryError(Exception):
    """Base exception for all coreason-discovery errors."""


class MalformedUrlError(CoreasonDiscoveryError, ValueError):
    """
    Raised when an authority or discovery address is not an absolute http(s) URL.
    """

    def __init__(self, message: str = "Malformed URL") -> None:
        super().__init__(message)


class AuthorityResolutionError(CoreasonDiscoveryError):
    """Raised when an authority resolver returns an empty value."""


class OversizedResponseError(CoreasonDiscoveryError):
    """Raised when an HTTP response is too large."""
