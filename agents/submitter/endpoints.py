"""
RPC endpoint pool with ordered failover.

The pool is owned by one submitter; clients are created lazily, one per URL,
and reused across cycles.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

import requests
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from core.schemas.errors import ErrorCodes, NetworkError

logger = logging.getLogger(__name__)

Web3Factory = Callable[[str, float], Web3]


def default_web3_factory(url: str, timeout: float) -> Web3:
    w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))
    # BSC blocks carry POA extraData
    w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return w3


class RpcEndpointPool:
    """Ordered RPC URLs; the first one that answers a block-number probe wins."""

    def __init__(
        self,
        urls: Sequence[str],
        *,
        request_timeout: float = 10.0,
        web3_factory: Optional[Web3Factory] = None,
    ) -> None:
        if not urls:
            raise ValueError("RpcEndpointPool requires at least one URL")
        self.urls = list(urls)
        self.request_timeout = request_timeout
        self._factory = web3_factory or default_web3_factory
        self._clients: dict[str, Web3] = {}

    def client(self, url: str) -> Web3:
        if url not in self._clients:
            self._clients[url] = self._factory(url, self.request_timeout)
        return self._clients[url]

    def probe_healthy(self) -> tuple[str, Web3]:
        """
        Return (url, client) for the first endpoint that answers.

        Raises:
            NetworkError: every endpoint failed the probe (retryable)
        """
        failures: dict[str, str] = {}
        for url in self.urls:
            w3 = self.client(url)
            try:
                block = w3.eth.block_number
            except (Web3Exception, requests.RequestException, OSError, ValueError) as e:
                logger.warning(f"RPC failed: {url}: {e}")
                failures[url] = str(e)
                continue
            logger.debug(f"RPC ok: {url} (block {block})")
            return url, w3

        raise NetworkError(
            "all endpoints unreachable",
            code=ErrorCodes.ENDPOINTS_UNREACHABLE,
            details={"failures": failures},
        )
