"""
Server-side encrypted matching and aggregation.

The server evaluates, for every stored entry,

    mask(key, query) * value

and sums the results, without seeing:
- The query (it's encrypted)
- Which entry matched (every entry contributes, non-matches as zero)
- The returned value (the result is encrypted)
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from hekv.fhe.base import FHEBackend
from hekv.shared.errors import StaleEntryError
from hekv.shared.protocol import EncryptedEntry
from hekv.shared.utils import Metrics

logger = logging.getLogger(__name__)


@dataclass
class EncryptedTable:
    """In-memory encrypted table, rows kept in insertion order."""
    entries: List[EncryptedEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def add(self, key_ctxt: Any, value_ctxt: Any) -> None:
        self.entries.append(EncryptedEntry(key=key_ctxt, value=value_ctxt))


class EqualityMaskEngine:
    """
    Homomorphic slot-vector equality test.

    By Fermat's little theorem ``d^(t-1) = 1`` for every non-zero ``d`` in
    the prime field, so ``1 - (a - b)^(t-1)`` is a per-slot equality
    indicator. Multiplying all ``W`` cyclic rotations of the indicator ANDs
    it across the window and leaves the result replicated in every slot.
    """

    def __init__(self, backend: FHEBackend, active_slots: Optional[int] = None):
        """
        Args:
            backend: Primitive layer holding at least the public key material
            active_slots: Number of leading slots forced into the final
                selector, defaults to the whole window
        """
        self.backend = backend
        width = backend.slot_count if active_slots is None else active_slots
        if not 0 < width <= backend.slot_count:
            raise ValueError(
                f"active_slots must be in [1, {backend.slot_count}], got {width}"
            )
        self.selector = np.zeros(backend.slot_count, dtype=np.int64)
        self.selector[:width] = 1

    def indicator(self, key_ctxt: Any, query_ctxt: Any) -> Any:
        """Per-slot 1 where the slots agree, 0 where they differ."""
        he = self.backend
        diff = he.sub(key_ctxt, query_ctxt)
        powered = he.power(diff, he.modulus - 1)
        return he.add_constant(he.negate(powered), 1)

    def mask(self, key_ctxt: Any, query_ctxt: Any) -> Any:
        """
        Encrypted equality mask.

        Args:
            key_ctxt: Encrypted entry key
            query_ctxt: Encrypted query

        Returns:
            Ciphertext with every slot 1 if the plaintexts are equal in all
            slots, every slot 0 otherwise
        """
        he = self.backend
        indicator = self.indicator(key_ctxt, query_ctxt)
        rotations = [indicator] + [he.rotate(indicator, k) for k in range(1, he.slot_count)]
        combined = he.product(rotations)
        return he.multiply_plain(combined, self.selector)


class LookupAggregator:
    """Folds every entry's masked value into one ciphertext."""

    def __init__(self, engine: EqualityMaskEngine, workers: int = 1):
        """
        Args:
            engine: Equality mask engine sharing the backend
            workers: Threads used to compute masked entries concurrently
        """
        self.engine = engine
        self.workers = max(1, workers)

    @property
    def backend(self) -> FHEBackend:
        return self.engine.backend

    def masked_value(self, query_ctxt: Any, entry: EncryptedEntry) -> Any:
        mask = self.engine.mask(entry.key, query_ctxt)
        return self.backend.multiply(mask, entry.value)

    def aggregate(
        self,
        query_ctxt: Any,
        entries: Sequence[EncryptedEntry],
        metrics: Optional[Metrics] = None,
    ) -> Any:
        """
        Sum of ``mask(entry.key, query) * entry.value`` over all entries.

        Masked values are reduced in entry order whatever the worker
        count. An empty table yields an encryption of the zero vector.
        """
        metrics = metrics or Metrics()
        if not entries:
            return self.backend.zeros()

        with metrics.phase("entry_masks"):
            if self.workers > 1 and len(entries) > 1:
                with ThreadPoolExecutor(max_workers=self.workers) as pool:
                    masked = list(pool.map(lambda e: self.masked_value(query_ctxt, e), entries))
            else:
                masked = [self.masked_value(query_ctxt, e) for e in entries]

        with metrics.phase("aggregate_sum"):
            result = masked[0]
            for ctxt in masked[1:]:
                result = self.backend.add(result, ctxt)

        metrics.count("entries_scanned", len(entries))
        return result


class ComputeEngine:
    """
    Server-side computation engine for encrypted lookups.

    Holds only public key material; the result can be decrypted by the
    querier alone.
    """

    def __init__(self, backend: FHEBackend, workers: int = 1, active_slots: Optional[int] = None):
        self.backend = backend
        self.mask_engine = EqualityMaskEngine(backend, active_slots=active_slots)
        self.aggregator = LookupAggregator(self.mask_engine, workers=workers)

    def lookup(
        self,
        query_ctxt: Any,
        table: Sequence[EncryptedEntry],
        metrics: Optional[Metrics] = None,
    ) -> Tuple[Any, float]:
        """
        Run the encrypted lookup over ``table``.

        Returns:
            Tuple of (result ciphertext, server time in ms)
        """
        metrics = metrics or Metrics()
        with metrics.phase("server_lookup") as t:
            result = self.aggregator.aggregate(query_ctxt, list(table), metrics=metrics)
        logger.debug("Lookup over %d entries took %.2f ms", len(table), t.elapsed_ms)
        return result, t.elapsed_ms

    def lookup_serialized(
        self,
        query: bytes,
        table: Sequence[Tuple[bytes, bytes]],
        metrics: Optional[Metrics] = None,
    ) -> bytes:
        """
        Same as lookup() with every ciphertext in serialized form.

        Raises:
            ValueError: if the query cannot be read under this backend
            StaleEntryError: if a stored entry cannot be read under this backend
        """
        he = self.backend
        query_ctxt = he.deserialize(query)
        entries = []
        for index, (key, value) in enumerate(table):
            try:
                entries.append(EncryptedEntry(he.deserialize(key), he.deserialize(value)))
            except ValueError as e:
                raise StaleEntryError(f"Stored entry {index} is unreadable: {e}") from e
        result, _ = self.lookup(query_ctxt, entries, metrics=metrics)
        return he.serialize(result)
