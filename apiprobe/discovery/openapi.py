"""Fetch an OpenAPI/Swagger JSON document and turn it into routes."""

import logging
from typing import Any, Optional

import httpx

from apiprobe.config import DOCUMENT_FETCH_TIMEOUT
from apiprobe.discovery.extractor import EndpointExtractor
from apiprobe.errors import SpecFormatError
from apiprobe.models.route import RouteModel

log = logging.getLogger(__name__)


async def fetch_interface_document(
    url: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Any:
    """GET *url* and return the decoded JSON body.

    Only JSON is accepted; YAML documents fail with ``SpecFormatError``.
    """
    log.info("fetching interface document from %s", url)
    try:
        async with httpx.AsyncClient(
            timeout=DOCUMENT_FETCH_TIMEOUT, follow_redirects=True, transport=transport,
        ) as client:
            resp = await client.get(url, headers={"Accept": "application/json"})
            resp.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise SpecFormatError(f"could not fetch interface document: {e}") from e

    try:
        return resp.json()
    except ValueError as e:
        raise SpecFormatError(
            "interface document is not valid JSON (YAML documents are not supported)"
        ) from e


async def discover_routes(
    url: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[RouteModel]:
    document = await fetch_interface_document(url, transport=transport)
    return EndpointExtractor().extract_from_document(document, location=url)
