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
Size-limited HTTP reads for documents published by third-party endpoints.
"""

from typing import NamedTuple

import httpx

from coreason_discovery.exceptions import OversizedResponseError
from coreason_discovery.utils.logger import logger

DEFAULT_MAX_RESPONSE_BYTES = 1_000_000

JSON_HEADERS = {"Accept": "application/json"}


class FetchedContent(NamedTuple):
    status_code: int
    reason: str
    text: str


async def safe_get(
    client: httpx.AsyncClient,
    url: str,
    max_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
) -> FetchedContent:
    """
    Performs a GET request and reads the body with a size limit.

    The body is read for every status code, so error documents can be inspected.

    Args:
        client: The async HTTP client to use.
        url: The URL to fetch.
        max_bytes: Maximum accepted body size in bytes.

    Returns:
        FetchedContent: Status code, reason phrase and decoded body.

    Raises:
        OversizedResponseError: If the body is larger than `max_bytes`.
        httpx.HTTPError: On transport failures.
    """
    async with client.stream("GET", url, headers=JSON_HEADERS) as response:
        content_length = response.headers.get("Content-Length", "")
        if content_length.isdigit() and int(content_length) > max_bytes:
            logger.warning(f"Rejected response from {url}: Content-Length {content_length} exceeds limit")
            raise OversizedResponseError(f"Response from {url} exceeds {max_bytes} bytes")

        content = bytearray()
        async for chunk in response.aiter_bytes():
            content.extend(chunk)
            if len(content) > max_bytes:
                logger.warning(f"Rejected response from {url}: body exceeds limit")
                raise OversizedResponseError(f"Response from {url} exceeds {max_bytes} bytes")

        encoding = response.encoding or "utf-8"
        return FetchedContent(
            status_code=response.status_code,
            reason=response.reason_phrase,
            text=bytes(content).decode(encoding, errors="replace"),
        )
