"""
Payment Gateway Token Cache

This module keeps the short-lived OAuth 2.0 bearer token used for every call
to the payment gateway. Tokens are obtained with the Client Credentials flow
by a fetcher supplied by the gateway client and cached in process memory
together with their expiry.

Concurrency
-----------
The cache is shared by all request threads of a worker process. A lock guards
reads and writes of the cached value, but it is never held while the token
endpoint is being called: two threads that both see an expired token may both
refresh (the last writer wins), which is harmless. What is never allowed is
returning a token whose expiry is inside the safety margin.

Author: Storefront Development Team
Version: 1.0.0
"""

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Any, Optional

from .exceptions import GatewayAuthError

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at: float


class TokenCache:
    """
    Thread-safe holder for a single gateway access token.

    Args:
        fetcher: Callable performing the token request; returns the decoded
            token response (``access_token``, ``expires_in``)
        safety_margin: Seconds before expiry at which a token counts as stale
        clock: Monotonic time source, injectable for tests

    Example:
        >>> cache = TokenCache(client.request_token, safety_margin=60)
        >>> headers = {"Authorization": f"Bearer {cache.get()}"}
    """

    def __init__(
        self,
        fetcher: Callable[[], Dict[str, Any]],
        safety_margin: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._safety_margin = safety_margin
        self._clock = clock
        self._lock = Lock()
        self._token: Optional[CachedToken] = None

    def get(self) -> str:
        """
        Return a cached token if it is valid beyond the safety margin,
        otherwise fetch a new one.
        """
        with self._lock:
            token = self._token
        if token is not None and token.expires_at > self._clock() + self._safety_margin:
            logger.debug("Using cached gateway access token")
            return token.value
        return self.refresh()

    def refresh(self) -> str:
        """
        Fetch a new token unconditionally and store it.

        Raises:
            GatewayAuthError: If the response carries no usable token
        """
        requested_at = self._clock()
        token_data = self._fetcher()

        access_token = token_data.get("access_token")
        if not access_token:
            raise GatewayAuthError("No access_token in gateway token response")

        expires_in = token_data.get("expires_in", DEFAULT_EXPIRES_IN)
        try:
            expires_in = float(expires_in)
        except (TypeError, ValueError):
            logger.warning("Unexpected expires_in value %r, assuming %ss", expires_in, DEFAULT_EXPIRES_IN)
            expires_in = float(DEFAULT_EXPIRES_IN)

        # Measured from before the request so network latency only shortens the lifetime.
        token = CachedToken(value=access_token, expires_at=requested_at + expires_in)
        with self._lock:
            self._token = token

        logger.info("Obtained gateway access token (expires in %ss)", int(expires_in))
        return access_token
