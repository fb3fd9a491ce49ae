"""
Plaintext simulation of the slot algebra.

Mirrors the SEAL backend slot for slot, tracks multiplicative depth, and
can emulate noise exhaustion: once a ciphertext exceeds ``max_depth`` its
slots are replaced with random field elements. Useful for fast tests and
dry runs of large tables; it provides no confidentiality.
"""
import logging
import pickle
import threading
import uuid
from dataclasses import dataclass
from typing import Optional

import numpy as np

from hekv.fhe.base import FHEBackend, Vector, decode_bundle, encode_bundle
from hekv.shared.errors import KeyMaterialError
from hekv.shared.params import LookupParams

logger = logging.getLogger(__name__)


@dataclass
class ClearCiphertext:
    """Slot values, the depth they were produced at, and the owning key."""
    slots: np.ndarray
    depth: int
    key_id: str


class ClearBackend(FHEBackend):
    name = "clear"

    def __init__(
        self,
        modulus: int,
        slot_count: int,
        key_id: Optional[str] = None,
        secret: bool = True,
        max_depth: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        """
        Args:
            modulus: Plaintext modulus t
            slot_count: Logical slot window W
            key_id: Identifier binding ciphertexts to one key pair (random if None)
            secret: Whether this instance may decrypt
            max_depth: Depth beyond which results turn into garbage (None: unlimited)
            seed: Seed for the garbage generator
        """
        self._modulus = modulus
        self._slot_count = slot_count
        self.key_id = key_id or uuid.uuid4().hex
        self._secret = secret
        self.max_depth = max_depth
        self._rng = np.random.default_rng(seed)
        self._rng_lock = threading.Lock()

    @classmethod
    def generate(cls, params: LookupParams, max_depth: Optional[int] = None) -> "ClearBackend":
        return cls(params.plaintext_modulus, params.slots, max_depth=max_depth)

    @classmethod
    def from_bytes(
        cls,
        context: bytes,
        public_key: bytes,
        secret_key: Optional[bytes] = None,
    ) -> "ClearBackend":
        ctx = decode_bundle(context, "context", cls.name)
        pk = decode_bundle(public_key, "public key", cls.name)
        if secret_key is not None:
            sk = decode_bundle(secret_key, "secret key", cls.name)
            if sk["key_id"] != pk["key_id"]:
                raise KeyMaterialError("Secret key does not match the public key")
        return cls(
            ctx["modulus"],
            ctx["slots"],
            key_id=pk["key_id"],
            secret=secret_key is not None,
            max_depth=ctx.get("max_depth"),
        )

    @property
    def modulus(self) -> int:
        return self._modulus

    @property
    def slot_count(self) -> int:
        return self._slot_count

    @property
    def has_secret_key(self) -> bool:
        return self._secret

    def _vector(self, vector: Vector) -> np.ndarray:
        values = np.asarray(vector, dtype=np.int64)[: self._slot_count]
        padded = np.zeros(self._slot_count, dtype=np.int64)
        padded[: len(values)] = values
        return padded % self._modulus

    def _wrap(self, slots: np.ndarray, depth: int) -> ClearCiphertext:
        if self.max_depth is not None and depth > self.max_depth:
            # numpy Generators are not thread-safe
            with self._rng_lock:
                slots = self._rng.integers(0, self._modulus, self._slot_count, dtype=np.int64)
        return ClearCiphertext(slots=slots % self._modulus, depth=depth, key_id=self.key_id)

    def _check(self, *ctxts: ClearCiphertext) -> None:
        for ctxt in ctxts:
            if ctxt.key_id != self.key_id:
                raise KeyMaterialError("Ciphertext was encrypted under a different key")

    def encrypt(self, vector: Vector) -> ClearCiphertext:
        return self._wrap(self._vector(vector), 0)

    def decrypt(self, ctxt: ClearCiphertext) -> np.ndarray:
        if not self._secret:
            raise KeyMaterialError("Cannot decrypt without the secret key")
        self._check(ctxt)
        return ctxt.slots.copy()

    def add(self, ctxt, other):
        self._check(ctxt, other)
        return self._wrap(ctxt.slots + other.slots, max(ctxt.depth, other.depth))

    def sub(self, ctxt, other):
        self._check(ctxt, other)
        return self._wrap(ctxt.slots - other.slots, max(ctxt.depth, other.depth))

    def multiply(self, ctxt, other):
        self._check(ctxt, other)
        # object dtype keeps products of large moduli exact
        product = ctxt.slots.astype(object) * other.slots.astype(object)
        return self._wrap(
            (product % self._modulus).astype(np.int64),
            max(ctxt.depth, other.depth) + 1,
        )

    def multiply_plain(self, ctxt, vector: Vector):
        self._check(ctxt)
        product = ctxt.slots.astype(object) * self._vector(vector).astype(object)
        return self._wrap((product % self._modulus).astype(np.int64), ctxt.depth)

    def negate(self, ctxt):
        self._check(ctxt)
        return self._wrap(-ctxt.slots, ctxt.depth)

    def add_constant(self, ctxt, value: int):
        self._check(ctxt)
        return self._wrap(ctxt.slots + value % self._modulus, ctxt.depth)

    def rotate(self, ctxt, amount: int):
        self._check(ctxt)
        return self._wrap(np.roll(ctxt.slots, amount), ctxt.depth)

    def sum_slots(self, ctxt):
        self._check(ctxt)
        total = int(ctxt.slots.sum()) % self._modulus
        return self._wrap(np.full(self._slot_count, total, dtype=np.int64), ctxt.depth)

    def depth(self, ctxt) -> Optional[int]:
        return ctxt.depth

    def noise_budget(self, ctxt) -> Optional[int]:
        if self.max_depth is None:
            return None
        return max(0, self.max_depth - ctxt.depth)

    def serialize(self, ctxt) -> bytes:
        self._check(ctxt)
        # fresh nonce: equal plaintexts must not serialize to equal bytes
        return pickle.dumps({
            "key_id": ctxt.key_id,
            "depth": ctxt.depth,
            "slots": ctxt.slots.tolist(),
            "nonce": uuid.uuid4().hex,
        })

    def deserialize(self, data: bytes) -> ClearCiphertext:
        try:
            raw = pickle.loads(data)
            ctxt = ClearCiphertext(
                slots=np.asarray(raw["slots"], dtype=np.int64),
                depth=int(raw["depth"]),
                key_id=raw["key_id"],
            )
        except Exception as e:  # pickle.loads raises arbitrary errors on crafted input
            raise ValueError(f"Malformed ciphertext: {e}") from e
        if ctxt.slots.shape != (self._slot_count,):
            raise ValueError(
                f"Ciphertext has {ctxt.slots.size} slots, expected {self._slot_count}"
            )
        self._check(ctxt)
        return ctxt

    def export_context(self) -> bytes:
        return encode_bundle(
            self.name,
            modulus=self._modulus,
            slots=self._slot_count,
            max_depth=self.max_depth,
        )

    def export_public_key(self) -> bytes:
        return encode_bundle(self.name, key_id=self.key_id)

    def export_secret_key(self) -> bytes:
        if not self._secret:
            raise KeyMaterialError("No secret key held")
        return encode_bundle(self.name, key_id=self.key_id, secret=True)
