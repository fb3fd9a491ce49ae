"""
Key-value store command interface for encrypted tables.

Three commands, mirroring a store module that keeps the FHE context and
public key under reserved keys and every other key as one table row:

    SET-PUBLIC-CONTEXT context public_key  -> "OK"
    SET-ENTRY key_ctxt value_ctxt          -> "OK"
    LOOKUP query_ctxt                      -> result_ctxt

All arguments and results are serialized ciphertexts / key material.
"""
import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import List, Optional, Tuple

import redis

from hekv.fhe import FHEBackend, PublicKey, load_backend
from hekv.server.compute import ComputeEngine
from hekv.shared.errors import ContextNotSetError
from hekv.shared.protocol import FHE_CONTEXT_KEY, FHE_PUBLIC_KEY_KEY, RESERVED_KEYS
from hekv.shared.utils import Metrics

logger = logging.getLogger(__name__)

OK = "OK"


class KeyValueStore(ABC):
    """Minimal byte-oriented store."""

    @abstractmethod
    def get(self, key: bytes) -> Optional[bytes]:
        pass

    @abstractmethod
    def set(self, key: bytes, value: bytes) -> None:
        pass

    @abstractmethod
    def keys(self) -> List[bytes]:
        """All keys, in a deterministic order."""


class InMemoryStore(KeyValueStore):
    """Dict-backed store; keys enumerate in insertion order."""

    def __init__(self):
        self._data: "OrderedDict[bytes, bytes]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: bytes) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: bytes, value: bytes) -> None:
        with self._lock:
            self._data[key] = value

    def keys(self) -> List[bytes]:
        with self._lock:
            return list(self._data.keys())


class RedisStore(KeyValueStore):
    """
    Redis-backed store.

    Redis has no stable key order, so keys are enumerated sorted. Redis
    errors (``redis.RedisError``) propagate to the caller unchanged.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        url: Optional[str] = None,
    ):
        if client is None:
            if url:
                client = redis.Redis.from_url(url)
            else:
                client = redis.Redis(host=host, port=port, db=db)
        self.client = client

    def get(self, key: bytes) -> Optional[bytes]:
        return self.client.get(key)

    def set(self, key: bytes, value: bytes) -> None:
        self.client.set(key, value)

    def keys(self) -> List[bytes]:
        return sorted(self.client.scan_iter())

    def ping(self) -> bool:
        return bool(self.client.ping())


class LookupService:
    """
    Executes the store commands against a KeyValueStore.

    The backend rebuilt from the stored context is cached until the
    context or public key changes.
    """

    def __init__(self, store: Optional[KeyValueStore] = None, workers: int = 1):
        self.store = store if store is not None else InMemoryStore()
        self.workers = workers
        self._cached: Optional[Tuple[bytes, bytes, FHEBackend]] = None
        self._lock = threading.Lock()

    def set_public_context(self, context: bytes, public_key: bytes) -> str:
        """
        Store the FHE context and public key.

        Raises:
            KeyMaterialError: if the material cannot be loaded
        """
        backend = load_backend(PublicKey(context=context, key=public_key))
        self.store.set(FHE_CONTEXT_KEY, context)
        self.store.set(FHE_PUBLIC_KEY_KEY, public_key)
        with self._lock:
            self._cached = (context, public_key, backend)
        logger.debug("Stored %s context (%d slots)", backend.name, backend.slot_count)
        return OK

    def set_entry(self, key: bytes, value: bytes) -> str:
        """Store one encrypted row: key ciphertext -> value ciphertext."""
        if key in RESERVED_KEYS:
            raise ValueError(f"{key!r} is a reserved key")
        self.store.set(key, value)
        return OK

    def has_context(self) -> bool:
        return self.store.get(FHE_CONTEXT_KEY) is not None

    def entry_keys(self) -> List[bytes]:
        return [k for k in self.store.keys() if k not in RESERVED_KEYS]

    def entry_count(self) -> int:
        return len(self.entry_keys())

    def backend(self) -> FHEBackend:
        """Backend for the stored public context."""
        context = self.store.get(FHE_CONTEXT_KEY)
        public_key = self.store.get(FHE_PUBLIC_KEY_KEY)
        if context is None or public_key is None:
            raise ContextNotSetError(
                "FHE context or public key not set, run SET-PUBLIC-CONTEXT first"
            )
        with self._lock:
            if self._cached and self._cached[0] == context and self._cached[1] == public_key:
                return self._cached[2]
        backend = load_backend(PublicKey(context=context, key=public_key))
        with self._lock:
            self._cached = (context, public_key, backend)
        return backend

    def lookup(self, query: bytes, metrics: Optional[Metrics] = None) -> bytes:
        """
        Run the encrypted lookup over every stored row.

        Args:
            query: Serialized query ciphertext
            metrics: Optional phase metrics sink

        Returns:
            Serialized result ciphertext

        Raises:
            ContextNotSetError: if the reserved keys are missing
        """
        metrics = metrics or Metrics()
        backend = self.backend()
        with metrics.phase("load_entries"):
            table = []
            for key in self.entry_keys():
                value = self.store.get(key)
                if value is not None:
                    table.append((key, value))
        engine = ComputeEngine(backend, workers=self.workers)
        return engine.lookup_serialized(query, table, metrics=metrics)
