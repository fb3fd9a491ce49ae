"""Server-side components for privacy-preserving lookup."""
from hekv.server.compute import ComputeEngine, EncryptedTable, EqualityMaskEngine, LookupAggregator
from hekv.server.comparator import BitSerialComparator, from_bits, to_bits
from hekv.server.store import InMemoryStore, KeyValueStore, LookupService, RedisStore
from hekv.server.api import app, create_app, run_server

__all__ = [
    "ComputeEngine",
    "EncryptedTable",
    "EqualityMaskEngine",
    "LookupAggregator",
    "BitSerialComparator",
    "from_bits",
    "to_bits",
    "InMemoryStore",
    "KeyValueStore",
    "LookupService",
    "RedisStore",
    "app",
    "create_app",
    "run_server",
]
