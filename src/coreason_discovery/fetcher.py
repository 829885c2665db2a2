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
Retrieval of discovery documents and JSON Web Key Sets.
"""

from urllib.parse import urlsplit

import httpx
from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode
from pydantic import ValidationError

from coreason_discovery.endpoint import is_secure_scheme, parse_url
from coreason_discovery.exceptions import CoreasonDiscoveryError, OversizedResponseError
from coreason_discovery.models import (
    DiscoveryDocumentRequest,
    DiscoveryDocumentResponse,
    JsonWebKeySet,
    JsonWebKeySetRequest,
    JsonWebKeySetResponse,
    ProtocolResponse,
    ResponseErrorType,
)
from coreason_discovery.policy import DiscoveryPolicy
from coreason_discovery.transport import DEFAULT_MAX_RESPONSE_BYTES, safe_get
from coreason_discovery.utils.logger import logger
from coreason_discovery.validation import validate_discovery_document, validate_key_set

tracer = trace.get_tracer(__name__)

# Failures while talking to the endpoint that are reported on the response
FETCH_ERRORS = (httpx.HTTPError, httpx.InvalidURL, OversizedResponseError)


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _record_outcome(span: Span, response: ProtocolResponse) -> None:
    if response.http_status_code is not None:
        span.set_attribute("http.response.status_code", response.http_status_code)
    if response.is_error:
        if response.exception is not None:
            span.record_exception(response.exception)
        span.set_attribute("discovery.error_type", str(response.error_type))
        span.set_status(Status(StatusCode.ERROR, response.error or ""))
    else:
        span.set_status(Status(StatusCode.OK))


async def get_json_web_key_set(
    client: httpx.AsyncClient,
    request: JsonWebKeySetRequest | str,
    max_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
) -> JsonWebKeySetResponse:
    """
    Fetches a JSON Web Key Set.

    Emits an OpenTelemetry span `discovery.jwks`.

    Args:
        client: The async HTTP client to use.
        request: The request, or the JWKS address.
        max_bytes: Maximum accepted body size in bytes.

    Returns:
        JsonWebKeySetResponse: The key set, or a response describing the error.
    """
    address = request.address if isinstance(request, JsonWebKeySetRequest) else request

    with tracer.start_as_current_span("discovery.jwks") as span:
        span.set_attribute("url.full", address)
        response = await _fetch_key_set(client, address, max_bytes)
        _record_outcome(span, response)
        return response


async def _fetch_key_set(client: httpx.AsyncClient, address: str, max_bytes: int) -> JsonWebKeySetResponse:
    try:
        fetched = await safe_get(client, address, max_bytes)
    except FETCH_ERRORS as e:
        logger.warning(f"Failed to fetch JWKS from {address}: {e}")
        return JsonWebKeySetResponse.from_exception(e, f"Error connecting to {address}. {e}.")

    if not _is_success(fetched.status_code):
        logger.warning(f"JWKS endpoint {address} returned HTTP {fetched.status_code}")
        return JsonWebKeySetResponse.from_http_response(
            fetched.status_code,
            fetched.reason,
            fetched.text,
            f"Error connecting to {address}: {fetched.reason}",
        )

    response = JsonWebKeySetResponse.from_http_response(fetched.status_code, fetched.reason, fetched.text)
    if response.is_error:
        return response

    try:
        key_set = JsonWebKeySet.model_validate(response.document or {})
    except ValidationError as e:
        logger.warning(f"Invalid JWKS from {address}: {e}")
        return JsonWebKeySetResponse.from_exception(
            e,
            f"Invalid JSON Web Key Set from {address}.",
            raw=fetched.text,
            http_status_code=fetched.status_code,
        )

    return response.model_copy(update={"key_set": key_set})


async def get_discovery_document(
    client: httpx.AsyncClient,
    request: DiscoveryDocumentRequest | str,
    max_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
) -> DiscoveryDocumentResponse:
    """
    Fetches a discovery document, validates it against the request policy and
    downloads the key set it references.

    Emits an OpenTelemetry span `discovery.fetch`.

    Args:
        client: The async HTTP client to use.
        request: The request, or the issuer / discovery address.
        max_bytes: Maximum accepted body size in bytes, per document.

    Returns:
        DiscoveryDocumentResponse: The validated document, or a response describing the error.
            Network, HTTP, parsing and policy failures are never raised.

    Raises:
        MalformedUrlError: If the address is not an absolute http(s) URL.
    """
    if isinstance(request, str):
        request = DiscoveryDocumentRequest(address=request)

    endpoint = parse_url(request.address, request.policy.discovery_document_path)
    policy = request.policy.snapshot(authority=endpoint.authority)

    with tracer.start_as_current_span("discovery.fetch") as span:
        span.set_attribute("discovery.authority", policy.authority or "")
        span.set_attribute("url.full", endpoint.url)
        response = await _fetch_discovery_document(client, endpoint.url, policy, max_bytes)
        _record_outcome(span, response)
        return response


async def _fetch_discovery_document(
    client: httpx.AsyncClient,
    url: str,
    policy: DiscoveryPolicy,
    max_bytes: int,
) -> DiscoveryDocumentResponse:
    if not is_secure_scheme(urlsplit(url), policy):
        logger.warning(f"Refusing to fetch discovery document over plain HTTP: {url}")
        return DiscoveryDocumentResponse.from_exception(
            CoreasonDiscoveryError("HTTPS required"),
            f"Error connecting to {url}. HTTPS required.",
            policy=policy,
        )

    logger.debug(f"Fetching discovery document from {url}")
    try:
        fetched = await safe_get(client, url, max_bytes)
    except FETCH_ERRORS as e:
        logger.warning(f"Failed to fetch discovery document from {url}: {e}")
        return DiscoveryDocumentResponse.from_exception(e, f"Error connecting to {url}. {e}.", policy=policy)

    if not _is_success(fetched.status_code):
        logger.warning(f"Discovery endpoint {url} returned HTTP {fetched.status_code}")
        return DiscoveryDocumentResponse.from_http_response(
            fetched.status_code,
            fetched.reason,
            fetched.text,
            f"Error connecting to {url}: {fetched.reason}",
            policy=policy,
        )

    disco = DiscoveryDocumentResponse.from_http_response(fetched.status_code, fetched.reason, fetched.text, policy=policy)
    if disco.is_error:
        logger.warning(f"Discovery document from {url} could not be parsed: {disco.error}")
        return disco

    if disco.document is None:
        return DiscoveryDocumentResponse.from_exception(
            ValueError("Empty response body"),
            f"Error connecting to {url}. Empty response body.",
            http_status_code=fetched.status_code,
            policy=policy,
        )

    try:
        violation = validate_discovery_document(disco.document, policy)
    except ValueError as e:
        logger.error(f"Discovery policy for {url} is misconfigured: {e}")
        return DiscoveryDocumentResponse.from_exception(e, f"Error validating {url}. {e}.", policy=policy)

    if violation:
        logger.warning(f"Discovery document from {url} violates policy: {violation}")
        return disco.model_copy(
            update={"error_type": ResponseErrorType.POLICY_VIOLATION, "error_message": violation}
        )

    jwks_uri = disco.jwks_uri
    if not jwks_uri:
        return disco

    jwks = await get_json_web_key_set(client, jwks_uri, max_bytes)
    if jwks.is_error:
        return DiscoveryDocumentResponse(
            raw=jwks.raw,
            document=jwks.document,
            http_status_code=jwks.http_status_code,
            http_error_reason=jwks.http_error_reason,
            error_type=jwks.error_type,
            error_message=jwks.error_message,
            exception=jwks.exception,
            policy=policy,
        )

    key_set_violation = validate_key_set(jwks.key_set, policy)
    if key_set_violation:
        logger.warning(f"Key set from {jwks_uri} violates policy: {key_set_violation}")
        return disco.model_copy(
            update={
                "key_set": jwks.key_set,
                "error_type": ResponseErrorType.POLICY_VIOLATION,
                "error_message": key_set_violation,
            }
        )

    logger.info(f"Discovery document loaded from {url}")
    return disco.model_copy(update={"key_set": jwks.key_set})
