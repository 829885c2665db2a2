# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_discovery

import json

import httpx
import pytest

from coreason_discovery.exceptions import MalformedUrlError, OversizedResponseError
from coreason_discovery.fetcher import get_discovery_document, get_json_web_key_set
from coreason_discovery.models import (
    DiscoveryDocumentRequest,
    DiscoveryDocumentResponse,
    JsonWebKeySetRequest,
    ResponseErrorType,
)
from coreason_discovery.policy import DiscoveryPolicy
from coreason_discovery.strategies import (
    AuthorityUrlValidationStrategy,
    StringComparison,
    StringComparisonAuthorityValidationStrategy,
)
from fakes import FakeIdentityProvider, make_document


async def _discover(
    provider: FakeIdentityProvider, address: str, policy: DiscoveryPolicy | None = None
) -> DiscoveryDocumentResponse:
    request = DiscoveryDocumentRequest(address=address, policy=policy or DiscoveryPolicy())
    async with provider.client() as client:
        return await get_discovery_document(client, request)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "address",
    [
        "http://localhost",
        "http://LocalHost",
        "http://127.0.0.1",
        "http://localhost:5000",
        "http://LocalHost:5000",
        "http://127.0.0.1:5000",
        "https://authority",
        "https://authority:5000",
        "https://authority/sub",
        "https://authority:5000/sub",
        "https://demo.identityserver.io",
        "https://sub.demo.identityserver.io",
        "https://demo.identityserver.io/sub",
        "https://demo.identityserver.io:5000/sub",
    ],
)
async def test_valid_urls_with_default_policy(address: str) -> None:
    provider = FakeIdentityProvider(document=make_document(address))
    disco = await _discover(provider, address)

    assert not disco.is_error, disco.error
    assert disco.issuer == address
    assert disco.key_set is not None
    assert len(disco.key_set.keys) == 1
    assert provider.discovery_calls == 1
    assert provider.jwks_calls == 1


@pytest.mark.asyncio
async def test_discovery_url_is_requested(provider: FakeIdentityProvider) -> None:
    await _discover(provider, "https://server:123/")
    assert str(provider.requests[0].url) == "https://server:123/.well-known/openid-configuration"


@pytest.mark.asyncio
async def test_string_address_uses_default_policy(provider: FakeIdentityProvider) -> None:
    async with provider.client() as client:
        disco = await get_discovery_document(client, "https://authority")
    assert not disco.is_error


@pytest.mark.asyncio
async def test_connecting_to_http_returns_error(provider: FakeIdentityProvider) -> None:
    disco = await _discover(provider, "http://authority")

    assert disco.is_error
    assert disco.document is None
    assert disco.error_type is ResponseErrorType.EXCEPTION
    assert disco.error == "Error connecting to http://authority/.well-known/openid-configuration. HTTPS required."
    assert provider.requests == []


@pytest.mark.asyncio
async def test_http_allowed_by_policy() -> None:
    provider = FakeIdentityProvider(document=make_document("http://authority"))
    disco = await _discover(provider, "http://authority", DiscoveryPolicy(require_https=False))
    assert not disco.is_error


@pytest.mark.asyncio
async def test_malformed_address_raises(provider: FakeIdentityProvider) -> None:
    with pytest.raises(MalformedUrlError):
        await _discover(provider, "file://some_file")


@pytest.mark.asyncio
async def test_policy_authority_is_not_overwritten() -> None:
    provider = FakeIdentityProvider(document=make_document("https://authority"))
    policy = DiscoveryPolicy(authority="https://server:123")

    disco = await _discover(provider, "https://authority", policy)

    assert disco.is_error
    assert disco.error_type is ResponseErrorType.POLICY_VIOLATION
    assert policy.authority == "https://server:123"


@pytest.mark.asyncio
async def test_authority_filled_per_pass_only(provider: FakeIdentityProvider) -> None:
    policy = DiscoveryPolicy()
    disco = await _discover(provider, "https://authority", policy)

    assert not disco.is_error
    assert policy.authority is None
    assert disco.policy is not None
    assert disco.policy.authority == "https://authority"


@pytest.mark.asyncio
async def test_invalid_issuer_name_returns_policy_error() -> None:
    provider = FakeIdentityProvider(document=make_document("https://differentissuer", "https://authority"))
    disco = await _discover(provider, "https://authority")

    assert disco.is_error
    assert disco.error_type is ResponseErrorType.POLICY_VIOLATION
    assert disco.error is not None
    assert disco.error.startswith("Issuer name does not match authority")
    # The parsed document is kept, the key set is never downloaded
    assert disco.issuer == "https://differentissuer"
    assert provider.jwks_calls == 0


@pytest.mark.asyncio
async def test_excluded_endpoints_do_not_fail_validation() -> None:
    provider = FakeIdentityProvider(document=make_document("https://authority", "https://otherserver"))
    policy = DiscoveryPolicy(
        endpoint_validation_exclude_list={
            "jwks_uri",
            "authorization_endpoint",
            "token_endpoint",
            "userinfo_endpoint",
            "end_session_endpoint",
            "check_session_iframe",
            "revocation_endpoint",
            "introspection_endpoint",
        }
    )
    disco = await _discover(provider, "https://authority", policy)
    assert not disco.is_error, disco.error


@pytest.mark.asyncio
async def test_authority_comparison_may_be_case_insensitive() -> None:
    provider = FakeIdentityProvider(document=make_document("https://authority/tenantid"))
    policy = DiscoveryPolicy(
        authority_validation_strategy=StringComparisonAuthorityValidationStrategy(
            StringComparison.ORDINAL_IGNORE_CASE
        )
    )
    disco = await _discover(provider, "https://authority/TENANTID", policy)
    assert not disco.is_error, disco.error


@pytest.mark.asyncio
async def test_authority_comparison_is_case_sensitive_by_default() -> None:
    provider = FakeIdentityProvider(document=make_document("https://authority/tenantid"))
    disco = await _discover(provider, "https://authority/TENANTID")
    assert disco.error_type is ResponseErrorType.POLICY_VIOLATION


@pytest.mark.asyncio
async def test_authority_comparison_with_url_equivalence() -> None:
    provider = FakeIdentityProvider(document=make_document("https://authority:443/tenantid/"))
    policy = DiscoveryPolicy(authority_validation_strategy=AuthorityUrlValidationStrategy())
    disco = await _discover(provider, "https://authority/tenantid", policy)
    assert not disco.is_error, disco.error


@pytest.mark.asyncio
async def test_endpoints_not_using_https_return_policy_error() -> None:
    provider = FakeIdentityProvider(document=make_document("https://authority", "http://authority"))
    disco = await _discover(provider, "https://authority")

    assert disco.error_type is ResponseErrorType.POLICY_VIOLATION
    assert disco.error is not None
    assert disco.error.startswith("Endpoint does not use HTTPS")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "authority, endpoint_base",
    [
        ("https://authority/sub", "https://authority"),
        ("https://authority/sub1", "https://authority/sub2"),
    ],
)
async def test_endpoints_not_beneath_authority(authority: str, endpoint_base: str) -> None:
    provider = FakeIdentityProvider(document=make_document(authority, endpoint_base))
    disco = await _discover(provider, authority)
    assert disco.error_type is ResponseErrorType.POLICY_VIOLATION
    assert disco.error is not None
    assert disco.error.startswith("Endpoint belongs to different authority")

    allowed = DiscoveryPolicy(additional_endpoint_base_addresses={endpoint_base})
    disco = await _discover(provider, authority, allowed)
    assert not disco.is_error, disco.error


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "authority, endpoint_base",
    [
        ("https://authority", "https://differentauthority"),
        ("https://127.0.0.1", "https://127.0.0.2"),
        ("https://127.0.0.1", "https://localhost"),
    ],
)
async def test_endpoints_on_other_host(authority: str, endpoint_base: str) -> None:
    provider = FakeIdentityProvider(document=make_document(authority, endpoint_base))
    disco = await _discover(provider, authority)
    assert disco.error_type is ResponseErrorType.POLICY_VIOLATION
    assert disco.error is not None
    assert disco.error.startswith("Endpoint is on a different host than authority")

    allowed = DiscoveryPolicy(additional_endpoint_base_addresses={endpoint_base})
    disco = await _discover(provider, authority, allowed)
    assert not disco.is_error, disco.error


@pytest.mark.asyncio
async def test_issuer_and_endpoints_unrelated_if_allowed() -> None:
    provider = FakeIdentityProvider(document=make_document("https://authority", "https://differentauthority"))
    disco = await _discover(provider, "https://authority", DiscoveryPolicy(validate_endpoints=False))
    assert not disco.is_error, disco.error


@pytest.mark.asyncio
async def test_http_error_is_handled(provider: FakeIdentityProvider) -> None:
    provider.discovery_status = 404
    disco = await _discover(provider, "https://authority")

    assert disco.is_error
    assert disco.error_type is ResponseErrorType.HTTP
    assert disco.http_status_code == 404
    assert disco.error == "Error connecting to https://authority/.well-known/openid-configuration: Not Found"


@pytest.mark.asyncio
async def test_bad_request_is_protocol_error(provider: FakeIdentityProvider) -> None:
    provider.discovery_status = 400
    disco = await _discover(provider, "https://authority")
    assert disco.error_type is ResponseErrorType.PROTOCOL
    assert disco.http_status_code == 400


@pytest.mark.asyncio
async def test_exception_is_handled() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("error", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        disco = await get_discovery_document(client, "https://authority")

    assert disco.is_error
    assert disco.error_type is ResponseErrorType.EXCEPTION
    assert isinstance(disco.exception, httpx.ConnectError)
    assert disco.error == "Error connecting to https://authority/.well-known/openid-configuration. error."


@pytest.mark.asyncio
async def test_invalid_json_is_exception() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>not json</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        disco = await get_discovery_document(client, "https://authority")

    assert disco.error_type is ResponseErrorType.EXCEPTION
    assert disco.raw == "<html>not json</html>"


@pytest.mark.asyncio
async def test_empty_body_is_exception() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        disco = await get_discovery_document(client, "https://authority")

    assert disco.error_type is ResponseErrorType.EXCEPTION
    assert disco.error is not None
    assert disco.error.endswith("Empty response body.")


@pytest.mark.asyncio
async def test_oversized_document_is_exception(provider: FakeIdentityProvider) -> None:
    request = DiscoveryDocumentRequest(address="https://authority")
    async with provider.client() as client:
        disco = await get_discovery_document(client, request, max_bytes=64)

    assert disco.error_type is ResponseErrorType.EXCEPTION
    assert isinstance(disco.exception, OversizedResponseError)


@pytest.mark.asyncio
async def test_missing_key_set_is_policy_error() -> None:
    document = make_document("https://authority")
    del document["jwks_uri"]
    provider = FakeIdentityProvider(document=document)

    disco = await _discover(provider, "https://authority")
    assert disco.error_type is ResponseErrorType.POLICY_VIOLATION
    assert disco.error == "Keyset is missing"

    disco = await _discover(provider, "https://authority", DiscoveryPolicy(require_key_set=False))
    assert not disco.is_error
    assert disco.key_set is None


@pytest.mark.asyncio
async def test_empty_key_set_is_policy_error() -> None:
    provider = FakeIdentityProvider(jwks={"keys": []})
    disco = await _discover(provider, "https://authority")

    assert disco.error_type is ResponseErrorType.POLICY_VIOLATION
    assert disco.error == "Keyset is empty"
    assert disco.key_set is not None
    assert disco.issuer == "https://authority"


@pytest.mark.asyncio
async def test_key_set_fetched_even_when_not_required(provider: FakeIdentityProvider) -> None:
    disco = await _discover(provider, "https://authority", DiscoveryPolicy(require_key_set=False))
    assert provider.jwks_calls == 1
    assert disco.key_set is not None


@pytest.mark.asyncio
async def test_http_error_at_jwks_with_non_json_content() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/jwks"):
            return httpx.Response(500, text="not_json")
        return httpx.Response(200, json=make_document("https://authority"))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        disco = await get_discovery_document(client, "https://authority")

    assert disco.is_error
    assert disco.error_type is ResponseErrorType.HTTP
    assert disco.http_status_code == 500
    assert disco.error is not None
    assert "Internal Server Error" in disco.error
    assert "/jwks" in disco.error
    assert disco.raw == "not_json"
    assert disco.document is None


@pytest.mark.asyncio
async def test_http_error_at_jwks_with_json_content() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/jwks"):
            return httpx.Response(500, json={"foo": "foo", "bar": "bar"})
        return httpx.Response(200, json=make_document("https://authority"))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        disco = await get_discovery_document(client, "https://authority")

    assert disco.error_type is ResponseErrorType.HTTP
    assert disco.try_get_string("foo") == "foo"
    assert disco.try_get_string("bar") == "bar"


@pytest.mark.asyncio
async def test_misconfigured_strategy_is_reported() -> None:
    provider = FakeIdentityProvider(document=make_document("https://authority", "https://cdn.authority"))
    policy = DiscoveryPolicy(
        authority_validation_strategy=AuthorityUrlValidationStrategy(),
        additional_endpoint_base_addresses={"https://cdn.authority/other", "not-a-url"},
    )
    disco = await _discover(provider, "https://authority", policy)

    assert disco.error_type is ResponseErrorType.EXCEPTION
    assert isinstance(disco.exception, ValueError)


@pytest.mark.asyncio
async def test_get_json_web_key_set(provider: FakeIdentityProvider) -> None:
    async with provider.client() as client:
        response = await get_json_web_key_set(client, JsonWebKeySetRequest(address="https://authority/jwks"))

    assert not response.is_error
    assert response.key_set is not None
    assert response.key_set.keys[0].kty == "RSA"
    assert json.loads(response.raw or "")["keys"][0]["alg"] == "RS256"


@pytest.mark.asyncio
async def test_get_json_web_key_set_invalid_shape() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"keys": [{"kid": "missing-kty"}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        response = await get_json_web_key_set(client, "https://authority/jwks")

    assert response.error_type is ResponseErrorType.EXCEPTION
    assert response.error == "Invalid JSON Web Key Set from https://authority/jwks."
    assert response.http_status_code == 200


@pytest.mark.asyncio
async def test_get_json_web_key_set_connection_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        response = await get_json_web_key_set(client, "https://authority/jwks")

    assert response.error == "Error connecting to https://authority/jwks. timed out."


# Well under the size limit, but too deep for the JSON decoder
DEEPLY_NESTED_BODY = "[" * 200_000 + "]" * 200_000


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [DEEPLY_NESTED_BODY, '{"a": ' + DEEPLY_NESTED_BODY + "}"])
async def test_deeply_nested_json_is_exception(body: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        disco = await get_discovery_document(client, "https://authority")

    assert disco.is_error
    assert disco.error_type is ResponseErrorType.EXCEPTION
    assert isinstance(disco.exception, RecursionError)
    assert disco.document is None


@pytest.mark.asyncio
async def test_deeply_nested_error_body_keeps_http_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text=DEEPLY_NESTED_BODY)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        disco = await get_discovery_document(client, "https://authority")

    assert disco.error_type is ResponseErrorType.HTTP
    assert disco.http_status_code == 500
    assert disco.document is None


@pytest.mark.asyncio
async def test_deeply_nested_key_set_is_exception() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/jwks"):
            return httpx.Response(200, text=DEEPLY_NESTED_BODY)
        return httpx.Response(200, json=make_document("https://authority"))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        jwks = await get_json_web_key_set(client, "https://authority/.well-known/openid-configuration/jwks")
        disco = await get_discovery_document(client, "https://authority")

    assert jwks.error_type is ResponseErrorType.EXCEPTION
    assert isinstance(jwks.exception, RecursionError)
    assert jwks.key_set is None

    assert disco.error_type is ResponseErrorType.EXCEPTION
    assert isinstance(disco.exception, RecursionError)
    assert disco.key_set is None
