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
import contextlib
from datetime import timedelta

from anyio import create_task_group

from coreason_discovery import DiscoveryCache, DiscoveryPolicy, StringComparisonAuthorityValidationStrategy
from coreason_discovery.models import DiscoveryDocumentResponse


async def main() -> None:
    """
    Demonstrates cached OIDC discovery.
    Includes:
    - TaskGroup for concurrent callers sharing one fetch
    - A relaxed policy for a CDN hosting the key set
    - OpenTelemetry instrumentation (auto-applied to the transient client)
    """
    print(">>> Starting Async OIDC Discovery Example")

    policy = DiscoveryPolicy(
        authority_validation_strategy=StringComparisonAuthorityValidationStrategy(),
        additional_endpoint_base_addresses={"https://cdn.example.com"},
    )
    cache = DiscoveryCache("https://auth.example.com", policy=policy, cache_duration=timedelta(minutes=30))

    results: list[DiscoveryDocumentResponse] = []

    async def lookup(name: str) -> None:
        print(f"    - {name} waiting for the discovery document")
        results.append(await cache.get(timeout=15))

    # All callers are served by a single request
    async with create_task_group() as tg:
        for i in range(3):
            tg.start_soon(lookup, f"caller-{i}")

    for disco in results:
        if disco.is_error:
            # Without a reachable server this reports the connection failure
            print(f">>> Discovery failed ({disco.error_type}): {disco.error}")
        else:
            print(f">>> Issuer {disco.issuer}, {len(disco.key_set.keys) if disco.key_set else 0} key(s)")

    print(">>> Concurrent lookups finished.")


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
