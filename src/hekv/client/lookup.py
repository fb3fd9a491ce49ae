"""
Client-side lookup orchestration.

Coordinates the full lookup flow:
1. Encrypt query
2. Send to server (via function call or API)
3. Receive one encrypted result
4. Decrypt and decode
"""
import logging
from typing import Any, Callable, Optional, Tuple

from hekv.client.crypto import CryptoClient
from hekv.shared.protocol import LookupResult
from hekv.shared.utils import Metrics, Timer

logger = logging.getLogger(__name__)


class LookupClient:
    """
    Client-side lookup coordinator.

    Handles the lookup lifecycle while keeping the query private.
    """

    def __init__(self, crypto_client: CryptoClient):
        """
        Initialize lookup client.

        Args:
            crypto_client: Cryptographic client holding the secret key
        """
        self.crypto = crypto_client

    def lookup(
        self,
        query: str,
        server_fn: Callable[[Any], Tuple[Any, float]],
        metrics: Optional[Metrics] = None,
    ) -> LookupResult:
        """
        Perform a lookup against an in-process server.

        Args:
            query: Key to look up
            server_fn: Computes the encrypted result
                       Signature: (query_ctxt) -> (result_ctxt, server_time_ms)
            metrics: Phase metrics sink, created if None

        Returns:
            LookupResult with the decoded value (None when not found)
        """
        metrics = metrics or Metrics()

        with metrics.phase("encrypt_query"):
            query_ctxt = self.crypto.encrypt_text(query)

        result_ctxt, server_ms = server_fn(query_ctxt)
        metrics.record("server_compute", server_ms)

        with metrics.phase("decrypt_result"):
            raw = self.crypto.decrypt_vector(result_ctxt)
            value = None if self.crypto.codec.is_not_found(raw) else self.crypto.codec.decode(raw)

        logger.debug("Lookup %r -> %s", query, "hit" if value is not None else "miss")
        return LookupResult(query=query, value=value, metrics=metrics, raw=raw.tolist())

    def lookup_serialized(
        self,
        query: str,
        send_fn: Callable[[bytes], bytes],
        metrics: Optional[Metrics] = None,
    ) -> LookupResult:
        """
        Perform a lookup across a serialization boundary.

        Args:
            query: Key to look up
            send_fn: Transport: serialized query in, serialized result out
                     (e.g. LookupService.lookup or an HTTP call)
            metrics: Phase metrics sink, created if None
        """
        metrics = metrics or Metrics()

        def server_fn(query_ctxt: Any) -> Tuple[Any, float]:
            with Timer("round_trip") as t:
                payload = send_fn(self.crypto.serialize(query_ctxt))
            return self.crypto.deserialize(payload), t.elapsed_ms

        return self.lookup(query, server_fn, metrics=metrics)
