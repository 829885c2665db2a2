# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_discovery

import asyncio
from typing import Any

import httpx

DISCOVERY_SUFFIX = "/.well-known/openid-configuration"

JWKS = {
    "keys": [
        {
            "kty": "RSA",
            "use": "sig",
            "kid": "5CCAA03EDDE26D53104CC35D0D4B299C",
            "e": "AQAB",
            "n": "3fbgsZuL5Kp7HyliAznS6N0kTTAqApIzYqu0tORUk4T9m2f3uW5lDomNmwwPuZ3QDn0nwN3esx2NvZjL_g5DN407Pgl0ffHhARdtydJvdvNJIpW4CmyYGnI8H4ZdHtuW4wF8GbKadIGgwpI4UqcsHuPiWKARfWZMQfPKBT08SiIPwGncavlRRDgRVX1T94AgZE_fOTJ4Odko9RX9iNXghJIzJ_wEkY9GEkoHz5lQGdHYUplxOS6fcxL8j_N9urSBlnoYjPntBOwUfPsMoNuSAhuCsHi3MqTPgdSXc2yCqTVl2KO6wXxLrHAi0_cmxZyUKqOMTYJWN9B7x0-WEHD1Xw",
            "alg": "RS256",
        }
    ]
}


def make_document(issuer: str, endpoint_base: str | None = None, /, **overrides: Any) -> dict[str, Any]:
    """Builds a discovery document whose endpoints live beneath `endpoint_base` (defaults to the issuer)."""
    base = (endpoint_base or issuer).rstrip("/")
    document: dict[str, Any] = {
        "issuer": issuer,
        "jwks_uri": f"{base}{DISCOVERY_SUFFIX}/jwks",
        "authorization_endpoint": f"{base}/connect/authorize",
        "token_endpoint": f"{base}/connect/token",
        "userinfo_endpoint": f"{base}/connect/userinfo",
        "end_session_endpoint": f"{base}/connect/endsession",
        "check_session_iframe": f"{base}/connect/checksession",
        "revocation_endpoint": f"{base}/connect/revocation",
        "introspection_endpoint": f"{base}/connect/introspect",
        "frontchannel_logout_supported": True,
        "frontchannel_logout_session_supported": True,
        "scopes_supported": ["openid", "profile", "email", "api", "offline_access"],
        "grant_types_supported": ["authorization_code", "client_credentials", "refresh_token"],
        "response_modes_supported": ["form_post", "query", "fragment"],
        "subject_types_supported": ["public"],
        "id_token_signing_alg_values_supported": ["RS256"],
    }
    document.update(overrides)
    return document


class FakeIdentityProvider:
    """
    In-memory identity provider served through `httpx.MockTransport`.

    Requests ending with `/jwks` receive the key set. Every other request receives
    the discovery document, built from `document` or, when unset, from the
    authority of the requested URL.
    """

    def __init__(
        self,
        document: dict[str, Any] | None = None,
        jwks: dict[str, Any] | None = None,
        endpoint_base: str | None = None,
    ) -> None:
        self.document = document
        self.jwks = JWKS if jwks is None else jwks
        self.endpoint_base = endpoint_base
        self.discovery_status = 200
        self.jwks_status = 200
        self.delay = 0.0
        self.requests: list[httpx.Request] = []

    @property
    def discovery_calls(self) -> int:
        return sum(1 for r in self.requests if not r.url.path.endswith("/jwks"))

    @property
    def jwks_calls(self) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith("/jwks"))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        if request.url.path.endswith("/jwks"):
            return httpx.Response(self.jwks_status, json=self.jwks)

        document = self.document
        if document is None:
            url = str(request.url)
            issuer = url[: -len(DISCOVERY_SUFFIX)] if url.endswith(DISCOVERY_SUFFIX) else url
            document = make_document(issuer, self.endpoint_base)
        return httpx.Response(self.discovery_status, json=document)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
