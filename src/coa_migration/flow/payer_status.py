"""Sponsored-gas status fetched from the wallet API."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping

import requests

from ..base import PayerStatusProvider
from ..constants import DEFAULT_REQUEST_TIMEOUT, Network, get_network
from ..exceptions import NetworkError
from ..types import PayerStatus
from .http import request_json

logger = logging.getLogger(__name__)

PAYER_STATUS_PATH = "/api/v1/payer/status"


class HttpPayerStatusProvider(PayerStatusProvider):
    """Fetch payer status per network, caching each answer for ``surge.ttlSeconds``."""

    def __init__(
        self,
        wallet_api_url: str,
        *,
        session: requests.Session | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._url = f"{wallet_api_url.rstrip('/')}{PAYER_STATUS_PATH}"
        self._session = session or requests.Session()
        self._request_timeout = request_timeout
        self._clock = clock
        self._cache: dict[Network, tuple[float, PayerStatus]] = {}

    async def get_payer_status(self, network: Network | str) -> PayerStatus:
        network = get_network(network)
        now = self._clock()

        cached = self._cache.get(network)
        if cached is not None and cached[0] > now:
            return cached[1]

        body = request_json(
            self._session,
            "GET",
            self._url,
            timeout=self._request_timeout,
            headers={"network": network.value},
        )
        if not isinstance(body, Mapping):
            raise NetworkError(
                "Unexpected payer status response format",
                endpoint=self._url,
                details={"response": body},
            )

        status = PayerStatus.from_dict(body)
        self._cache[network] = (now + status.surge.ttl_seconds, status)
        logger.info(
            "Payer status for %s: surge=%s multiplier=%s fee_payer=%s bridge_payer=%s",
            network.value,
            status.surge.active,
            status.surge.multiplier,
            status.fee_payer.available,
            status.bridge_payer.available,
        )
        return status

    def clear_cache(self, network: Network | str | None = None) -> None:
        if network is None:
            self._cache.clear()
        else:
            self._cache.pop(get_network(network), None)
