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
Data models for the coreason-discovery package.
"""

import json
from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field

from coreason_discovery.policy import DiscoveryPolicy


class ResponseErrorType(StrEnum):
    """Reasons for a protocol endpoint error."""

    NONE = "none"
    # Valid response, but a protocol level error (HTTP 400)
    PROTOCOL = "protocol"
    HTTP = "http"
    # Exception while connecting to the endpoint or reading its response
    EXCEPTION = "exception"
    POLICY_VIOLATION = "policy_violation"


class DiscoveryParameter(StrEnum):
    """Member names of an OpenID Connect discovery document."""

    ISSUER = "issuer"
    AUTHORIZATION_ENDPOINT = "authorization_endpoint"
    TOKEN_ENDPOINT = "token_endpoint"
    USER_INFO_ENDPOINT = "userinfo_endpoint"
    INTROSPECTION_ENDPOINT = "introspection_endpoint"
    REVOCATION_ENDPOINT = "revocation_endpoint"
    DEVICE_AUTHORIZATION_ENDPOINT = "device_authorization_endpoint"
    BACKCHANNEL_AUTHENTICATION_ENDPOINT = "backchannel_authentication_endpoint"
    PUSHED_AUTHORIZATION_REQUEST_ENDPOINT = "pushed_authorization_request_endpoint"
    REQUIRE_PUSHED_AUTHORIZATION_REQUESTS = "require_pushed_authorization_requests"
    JWKS_URI = "jwks_uri"
    END_SESSION_ENDPOINT = "end_session_endpoint"
    CHECK_SESSION_IFRAME = "check_session_iframe"
    REGISTRATION_ENDPOINT = "registration_endpoint"
    MTLS_ENDPOINT_ALIASES = "mtls_endpoint_aliases"
    FRONT_CHANNEL_LOGOUT_SUPPORTED = "frontchannel_logout_supported"
    FRONT_CHANNEL_LOGOUT_SESSION_SUPPORTED = "frontchannel_logout_session_supported"
    GRANT_TYPES_SUPPORTED = "grant_types_supported"
    CODE_CHALLENGE_METHODS_SUPPORTED = "code_challenge_methods_supported"
    SCOPES_SUPPORTED = "scopes_supported"
    SUBJECT_TYPES_SUPPORTED = "subject_types_supported"
    RESPONSE_MODES_SUPPORTED = "response_modes_supported"
    RESPONSE_TYPES_SUPPORTED = "response_types_supported"
    CLAIMS_SUPPORTED = "claims_supported"
    TOKEN_ENDPOINT_AUTH_METHODS_SUPPORTED = "token_endpoint_auth_methods_supported"
    ID_TOKEN_SIGNING_ALG_VALUES_SUPPORTED = "id_token_signing_alg_values_supported"


def _get_string(document: dict[str, Any] | None, name: str) -> str | None:
    if document is None:
        return None
    value = document.get(name)
    return value if isinstance(value, str) else None


class JsonWebKey(BaseModel):
    """
    A JSON Web Key (RFC 7517). Unknown members are kept as extra fields.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    kty: str
    use: str | None = None
    key_ops: list[str] | None = None
    alg: str | None = None
    kid: str | None = None
    x5u: str | None = None
    x5c: list[str] | None = None
    x5t: str | None = None
    x5t_s256: str | None = Field(default=None, alias="x5t#S256")
    n: str | None = None
    e: str | None = None
    crv: str | None = None
    x: str | None = None
    y: str | None = None


class JsonWebKeySet(BaseModel):
    """
    A JSON Web Key Set (RFC 7517, section 5).
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    keys: list[JsonWebKey] = Field(default_factory=list)


class ProtocolResponse(BaseModel):
    """
    Base class for protocol responses.

    Errors are never raised. They are described by `error_type` and `error`,
    and callers inspect `is_error` before trusting any value of the response.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    raw: str | None = None
    document: dict[str, Any] | None = None
    http_status_code: int | None = None
    http_error_reason: str | None = None
    error_type: ResponseErrorType = ResponseErrorType.NONE
    error_message: str | None = None
    exception: BaseException | None = Field(default=None, exclude=True, repr=False)

    @property
    def is_error(self) -> bool:
        return bool(self.error) or self.error_type is not ResponseErrorType.NONE

    @property
    def error(self) -> str | None:
        """
        The error description.

        The explicit error message wins, then the HTTP reason phrase, then the
        exception text, and finally the `error` member of the JSON document.
        """
        if self.error_message:
            return self.error_message
        if self.error_type is ResponseErrorType.HTTP:
            return self.http_error_reason
        if self.error_type is ResponseErrorType.EXCEPTION and self.exception is not None:
            return str(self.exception)
        return _get_string(self.document, "error")

    def try_get_value(self, name: str) -> Any:
        if self.document is None:
            return None
        return self.document.get(name)

    def try_get_string(self, name: str) -> str | None:
        return _get_string(self.document, name)

    def try_get_boolean(self, name: str) -> bool | None:
        value = self.try_get_value(name)
        return value if isinstance(value, bool) else None

    def try_get_string_array(self, name: str) -> list[str]:
        value = self.try_get_value(name)
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str)]

    @classmethod
    def from_exception(cls, exception: BaseException, error_message: str | None = None, **values: Any) -> Self:
        """Creates an `exception` error response."""
        return cls(
            exception=exception,
            error_type=ResponseErrorType.EXCEPTION,
            error_message=error_message,
            **values,
        )

    @classmethod
    def from_http_response(
        cls,
        status_code: int,
        reason: str | None,
        content: str | None,
        error_message: str | None = None,
        **values: Any,
    ) -> Self:
        """
        Creates a response from an HTTP status and body.

        Any non-success status other than 400 is an `http` error, and its body is
        parsed as JSON when possible. A 400 is a `protocol` error. Success and 400
        bodies must be JSON objects, otherwise the response is an `exception` error.
        Bodies nested too deeply to decode count as malformed JSON.
        """
        is_success = 200 <= status_code < 300
        fields: dict[str, Any] = {
            "raw": content,
            "http_status_code": status_code,
            "http_error_reason": reason,
            "error_message": error_message,
            **values,
        }

        if not is_success and status_code != 400:
            fields["error_type"] = ResponseErrorType.HTTP
            if content:
                try:
                    parsed = json.loads(content)
                    if isinstance(parsed, dict):
                        fields["document"] = parsed
                except (ValueError, RecursionError):
                    pass
            return cls(**fields)

        if status_code == 400:
            fields["error_type"] = ResponseErrorType.PROTOCOL

        if content:
            try:
                parsed = json.loads(content)
                if not isinstance(parsed, dict):
                    raise ValueError("Response is not a JSON object.")
                fields["document"] = parsed
            except (ValueError, RecursionError) as e:
                fields["error_type"] = ResponseErrorType.EXCEPTION
                fields["exception"] = e

        return cls(**fields)


class MtlsEndpointAliases(BaseModel):
    """
    Mutual-TLS endpoint aliases (RFC 8705, section 5).
    """

    model_config = ConfigDict(frozen=True)

    document: dict[str, Any] | None = None

    @property
    def token_endpoint(self) -> str | None:
        return _get_string(self.document, DiscoveryParameter.TOKEN_ENDPOINT)

    @property
    def revocation_endpoint(self) -> str | None:
        return _get_string(self.document, DiscoveryParameter.REVOCATION_ENDPOINT)

    @property
    def device_authorization_endpoint(self) -> str | None:
        return _get_string(self.document, DiscoveryParameter.DEVICE_AUTHORIZATION_ENDPOINT)

    @property
    def introspection_endpoint(self) -> str | None:
        return _get_string(self.document, DiscoveryParameter.INTROSPECTION_ENDPOINT)


class DiscoveryDocumentResponse(ProtocolResponse):
    """
    The response from an OpenID Connect discovery endpoint.

    On a policy violation the parsed document is kept, but `is_error` is True
    and no value should be trusted.
    """

    key_set: JsonWebKeySet | None = None
    policy: DiscoveryPolicy | None = Field(default=None, exclude=True, repr=False)

    @property
    def issuer(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.ISSUER)

    @property
    def authorize_endpoint(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.AUTHORIZATION_ENDPOINT)

    @property
    def token_endpoint(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.TOKEN_ENDPOINT)

    @property
    def user_info_endpoint(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.USER_INFO_ENDPOINT)

    @property
    def introspection_endpoint(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.INTROSPECTION_ENDPOINT)

    @property
    def revocation_endpoint(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.REVOCATION_ENDPOINT)

    @property
    def device_authorization_endpoint(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.DEVICE_AUTHORIZATION_ENDPOINT)

    @property
    def backchannel_authentication_endpoint(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.BACKCHANNEL_AUTHENTICATION_ENDPOINT)

    @property
    def pushed_authorization_request_endpoint(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.PUSHED_AUTHORIZATION_REQUEST_ENDPOINT)

    @property
    def require_pushed_authorization_requests(self) -> bool | None:
        return self.try_get_boolean(DiscoveryParameter.REQUIRE_PUSHED_AUTHORIZATION_REQUESTS)

    @property
    def jwks_uri(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.JWKS_URI)

    @property
    def end_session_endpoint(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.END_SESSION_ENDPOINT)

    @property
    def check_session_iframe(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.CHECK_SESSION_IFRAME)

    @property
    def registration_endpoint(self) -> str | None:
        return self.try_get_string(DiscoveryParameter.REGISTRATION_ENDPOINT)

    @property
    def frontchannel_logout_supported(self) -> bool | None:
        return self.try_get_boolean(DiscoveryParameter.FRONT_CHANNEL_LOGOUT_SUPPORTED)

    @property
    def frontchannel_logout_session_supported(self) -> bool | None:
        return self.try_get_boolean(DiscoveryParameter.FRONT_CHANNEL_LOGOUT_SESSION_SUPPORTED)

    @property
    def grant_types_supported(self) -> list[str]:
        return self.try_get_string_array(DiscoveryParameter.GRANT_TYPES_SUPPORTED)

    @property
    def code_challenge_methods_supported(self) -> list[str]:
        return self.try_get_string_array(DiscoveryParameter.CODE_CHALLENGE_METHODS_SUPPORTED)

    @property
    def scopes_supported(self) -> list[str]:
        return self.try_get_string_array(DiscoveryParameter.SCOPES_SUPPORTED)

    @property
    def subject_types_supported(self) -> list[str]:
        return self.try_get_string_array(DiscoveryParameter.SUBJECT_TYPES_SUPPORTED)

    @property
    def response_modes_supported(self) -> list[str]:
        return self.try_get_string_array(DiscoveryParameter.RESPONSE_MODES_SUPPORTED)

    @property
    def response_types_supported(self) -> list[str]:
        return self.try_get_string_array(DiscoveryParameter.RESPONSE_TYPES_SUPPORTED)

    @property
    def claims_supported(self) -> list[str]:
        return self.try_get_string_array(DiscoveryParameter.CLAIMS_SUPPORTED)

    @property
    def token_endpoint_auth_methods_supported(self) -> list[str]:
        return self.try_get_string_array(DiscoveryParameter.TOKEN_ENDPOINT_AUTH_METHODS_SUPPORTED)

    @property
    def id_token_signing_alg_values_supported(self) -> list[str]:
        return self.try_get_string_array(DiscoveryParameter.ID_TOKEN_SIGNING_ALG_VALUES_SUPPORTED)

    @property
    def mtls_endpoint_aliases(self) -> MtlsEndpointAliases:
        value = self.try_get_value(DiscoveryParameter.MTLS_ENDPOINT_ALIASES)
        return MtlsEndpointAliases(document=value if isinstance(value, dict) else None)


class JsonWebKeySetResponse(ProtocolResponse):
    """
    The response from a JWK Set endpoint.
    """

    key_set: JsonWebKeySet | None = None


class DiscoveryDocumentRequest(BaseModel):
    """
    Request for an OpenID Connect discovery document.

    Attributes:
        address (str): The issuer base address or the discovery document URL.
        policy (DiscoveryPolicy): The security policy applied to the document.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    address: str
    policy: DiscoveryPolicy = Field(default_factory=DiscoveryPolicy)


class JsonWebKeySetRequest(BaseModel):
    """Request for a JSON Web Key Set."""

    address: str
