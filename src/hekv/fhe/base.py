"""
FHE primitive layer interface.

Concrete backends wrap an encryption library and expose the slot-wise
algebra the lookup protocol needs. Rotation follows the "positive amount
moves slot i to slot i + k" convention; ``sum_slots`` leaves the total of
all slots in every slot.
"""
import heapq
import itertools
import pickle
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from hekv.shared.errors import KeyMaterialError

Vector = Union[Sequence[int], np.ndarray]


def encode_bundle(backend: str, **fields: Any) -> bytes:
    """Serialize key material tagged with the backend kind that produced it."""
    return pickle.dumps({"backend": backend, **fields})


def decode_bundle(data: bytes, what: str, backend: Optional[str] = None) -> Dict[str, Any]:
    """
    Inverse of encode_bundle.

    Args:
        data: Serialized bundle
        what: Name used in error messages ("context", "public key", ...)
        backend: Expected backend kind, None accepts any

    Raises:
        KeyMaterialError: if the bytes are not a bundle or the kind differs
    """
    try:
        bundle = pickle.loads(data)
    except Exception as e:  # pickle.loads raises arbitrary errors on crafted input
        raise KeyMaterialError(f"Malformed {what}: {e}") from e
    if not isinstance(bundle, dict) or "backend" not in bundle:
        raise KeyMaterialError(f"Malformed {what}: not a key bundle")
    if backend is not None and bundle["backend"] != backend:
        raise KeyMaterialError(
            f"{what.capitalize()} belongs to backend {bundle['backend']!r}, expected {backend!r}"
        )
    return bundle


@dataclass(frozen=True)
class PublicKey:
    """
    Everything a computing party needs.

    Attributes:
        context: Serialized algebra description
        key: Serialized public key plus evaluation (relin/rotation) keys
    """
    context: bytes
    key: bytes


@dataclass(frozen=True)
class KeyPair:
    """Public key material plus the secret key that only the querier holds."""
    public: PublicKey
    secret_key: bytes


class FHEBackend(ABC):
    """Slot-wise homomorphic algebra over a prime plaintext field."""

    name = "abstract"

    @property
    @abstractmethod
    def modulus(self) -> int:
        """Plaintext modulus t."""

    @property
    @abstractmethod
    def slot_count(self) -> int:
        """Logical slot window W."""

    @property
    @abstractmethod
    def has_secret_key(self) -> bool:
        """Whether this backend can decrypt."""

    @abstractmethod
    def encrypt(self, vector: Vector) -> Any:
        """Encrypt up to ``slot_count`` slot values (zero padded)."""

    @abstractmethod
    def decrypt(self, ctxt: Any) -> np.ndarray:
        """Decrypt to ``slot_count`` values in [0, modulus)."""

    @abstractmethod
    def add(self, ctxt: Any, other: Any) -> Any:
        pass

    @abstractmethod
    def sub(self, ctxt: Any, other: Any) -> Any:
        pass

    @abstractmethod
    def multiply(self, ctxt: Any, other: Any) -> Any:
        """Ciphertext product, relinearized. Consumes one level."""

    @abstractmethod
    def multiply_plain(self, ctxt: Any, vector: Vector) -> Any:
        pass

    @abstractmethod
    def negate(self, ctxt: Any) -> Any:
        pass

    @abstractmethod
    def add_constant(self, ctxt: Any, value: int) -> Any:
        """Add ``value`` to every slot."""

    @abstractmethod
    def rotate(self, ctxt: Any, amount: int) -> Any:
        """Cyclic rotation of the window: slot i moves to slot i + amount."""

    @abstractmethod
    def sum_slots(self, ctxt: Any) -> Any:
        """Total of all window slots, replicated in every slot."""

    @abstractmethod
    def serialize(self, ctxt: Any) -> bytes:
        pass

    @abstractmethod
    def deserialize(self, data: bytes) -> Any:
        pass

    @abstractmethod
    def export_context(self) -> bytes:
        pass

    @abstractmethod
    def export_public_key(self) -> bytes:
        pass

    @abstractmethod
    def export_secret_key(self) -> bytes:
        pass

    def depth(self, ctxt: Any) -> Optional[int]:
        """Multiplicative depth of ``ctxt`` when the backend tracks it."""
        return None

    def noise_budget(self, ctxt: Any) -> Optional[int]:
        """Remaining noise budget in bits when the backend can measure it."""
        return None

    def public_key(self) -> PublicKey:
        return PublicKey(context=self.export_context(), key=self.export_public_key())

    def keypair(self) -> KeyPair:
        if not self.has_secret_key:
            raise KeyMaterialError("Cannot export a key pair without the secret key")
        return KeyPair(public=self.public_key(), secret_key=self.export_secret_key())

    def zeros(self) -> Any:
        """Fresh encryption of the all-zero window."""
        return self.encrypt(np.zeros(self.slot_count, dtype=np.int64))

    def power(self, ctxt: Any, exponent: int) -> Any:
        """
        Raise ``ctxt`` to a positive integer power by square-and-multiply.

        Computes ``ctxt^(2^i)`` by repeated squaring for every set bit of the
        exponent, then multiplies the selected powers shallowest-first, for a
        total depth of ``ceil(log2(exponent))``.
        """
        if exponent < 1:
            raise ValueError(f"Exponent must be positive, got {exponent}")
        selected: List[Tuple[int, Any]] = []
        square = ctxt
        level = 0
        while True:
            if exponent & 1:
                selected.append((level, square))
            exponent >>= 1
            if not exponent:
                break
            square = self.multiply(square, square)
            level += 1
        return self._balanced_product(selected)

    def product(self, ctxts: Sequence[Any]) -> Any:
        """Multiply all ciphertexts together with a depth-balanced tree."""
        if not ctxts:
            raise ValueError("product() needs at least one ciphertext")
        return self._balanced_product([(self.depth(c) or 0, c) for c in ctxts])

    def _balanced_product(self, items: List[Tuple[int, Any]]) -> Any:
        counter = itertools.count()
        heap = [(level, next(counter), ctxt) for level, ctxt in items]
        heapq.heapify(heap)
        while len(heap) > 1:
            level_a, _, a = heapq.heappop(heap)
            level_b, _, b = heapq.heappop(heap)
            heapq.heappush(
                heap, (max(level_a, level_b) + 1, next(counter), self.multiply(a, b))
            )
        return heap[0][2]
