"""HTTP helper shared by the Flow and wallet API clients."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests

from ..exceptions import NetworkError

logger = logging.getLogger(__name__)


def request_json(
    session: requests.Session,
    method: str,
    url: str,
    *,
    timeout: float,
    payload: Mapping[str, Any] | None = None,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> Any:
    """Send a request and decode its JSON body.

    Raises:
        NetworkError: On connection failures, non-2xx responses or undecodable bodies
    """
    logger.debug("HTTP %s %s", method, url)
    try:
        response = session.request(
            method,
            url,
            json=payload,
            params=params,
            headers=headers,
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise NetworkError(
            f"{method} request failed", endpoint=url, details={"error": str(exc)}
        ) from exc

    if response.status_code >= 400:
        raise NetworkError(
            f"{method} request returned HTTP {response.status_code}",
            endpoint=url,
            status_code=response.status_code,
            details={"body": response.text[:500]},
        )

    try:
        return response.json()
    except ValueError as exc:
        raise NetworkError(
            "Response body is not valid JSON",
            endpoint=url,
            status_code=response.status_code,
            details={"error": str(exc)},
        ) from exc
