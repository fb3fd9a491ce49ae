"""
Protocol definitions for client-server communication.
"""
from dataclasses import dataclass, field
from typing import Any, Optional

# Reserved store keys holding the serialized algebra and public key material.
FHE_CONTEXT_KEY = b".fhe_context"
FHE_PUBLIC_KEY_KEY = b".fhe_public_key"
RESERVED_KEYS = frozenset({FHE_CONTEXT_KEY, FHE_PUBLIC_KEY_KEY})

NOT_FOUND_MESSAGE = (
    "Key not in the database."
    "\n*** Please make sure to enter the key exactly as stored"
    "\n*** (lookups are case sensitive)."
)


@dataclass(frozen=True)
class TableEntry:
    """One plaintext row of the source table."""
    key: str
    value: str


@dataclass
class EncryptedEntry:
    """
    One encrypted table row.

    Both fields are backend ciphertexts (Pyfhel PyCtxt or ClearCiphertext).
    """
    key: Any
    value: Any


@dataclass
class LookupResult:
    """Result of a privacy-preserving lookup."""
    query: str
    value: Optional[str]
    metrics: Any = None  # hekv.shared.utils.Metrics
    raw: Optional[list] = field(default=None, repr=False)

    @property
    def found(self) -> bool:
        return self.value is not None

    def __str__(self) -> str:
        return self.value if self.found else NOT_FOUND_MESSAGE
