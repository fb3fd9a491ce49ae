"""Shared utilities and protocol definitions."""
from hekv.shared.codec import SlotCodec
from hekv.shared.errors import (
    ConfigurationError,
    ContextNotSetError,
    HEKVError,
    KeyMaterialError,
    StaleEntryError,
    StoreError,
    TableFormatError,
    TextValidationError,
)
from hekv.shared.params import LookupParams
from hekv.shared.protocol import (
    FHE_CONTEXT_KEY,
    FHE_PUBLIC_KEY_KEY,
    NOT_FOUND_MESSAGE,
    EncryptedEntry,
    LookupResult,
    TableEntry,
)
from hekv.shared.utils import Metrics, Timer, read_table

__all__ = [
    "SlotCodec",
    "ConfigurationError",
    "ContextNotSetError",
    "HEKVError",
    "KeyMaterialError",
    "StaleEntryError",
    "StoreError",
    "TableFormatError",
    "TextValidationError",
    "LookupParams",
    "FHE_CONTEXT_KEY",
    "FHE_PUBLIC_KEY_KEY",
    "NOT_FOUND_MESSAGE",
    "EncryptedEntry",
    "LookupResult",
    "TableEntry",
    "Metrics",
    "Timer",
    "read_table",
]
