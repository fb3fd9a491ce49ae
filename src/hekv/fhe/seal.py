"""
BFV backend on Microsoft SEAL through Pyfhel.

SEAL batches ``n`` plaintext slots as a 2 x n/2 matrix and rotates each
row independently. The logical window of ``W`` slots is tiled along both
rows, so any row rotation by k is a cyclic rotation of the window by k.
"""
import logging
from typing import Optional

import numpy as np
from Pyfhel import PyCtxt, Pyfhel

from hekv.fhe.base import FHEBackend, Vector, decode_bundle, encode_bundle
from hekv.shared.errors import ConfigurationError, KeyMaterialError
from hekv.shared.params import LookupParams

logger = logging.getLogger(__name__)


class SealBackend(FHEBackend):
    name = "seal"

    def __init__(self, he: Pyfhel, slot_count: int, secret: bool):
        """
        Args:
            he: Pyfhel instance with context, public and evaluation keys loaded
            slot_count: Logical slot window W
            secret: Whether ``he`` holds the secret key
        """
        self.he = he
        self._slot_count = slot_count
        self._secret = secret
        self._tiles = self.he.get_nSlots() // slot_count
        self._ones = self._plain(np.ones(slot_count, dtype=np.int64))

    @classmethod
    def generate(cls, params: LookupParams) -> "SealBackend":
        """Create a fresh context and key set (public, secret, relin, rotation)."""
        he = Pyfhel()
        status = he.contextGen(
            scheme="bfv",
            n=params.n,
            t=params.plaintext_modulus,
            sec=params.sec,
            qi_sizes=params.qi_sizes,
        )
        if isinstance(status, bytes):
            status = status.decode("utf-8", "replace")
        if "success" not in status:
            raise ConfigurationError(f"SEAL rejected the parameters: {status}")
        logger.debug("SEAL context: n=%d t=%d qi=%s", params.n, params.plaintext_modulus, params.qi_sizes)

        he.keyGen()
        he.relinKeyGen()
        he.rotateKeyGen()
        return cls(he, params.slots, secret=True)

    @classmethod
    def from_bytes(
        cls,
        context: bytes,
        public_key: bytes,
        secret_key: Optional[bytes] = None,
    ) -> "SealBackend":
        ctx = decode_bundle(context, "context", cls.name)
        pk = decode_bundle(public_key, "public key", cls.name)
        he = Pyfhel()
        try:
            he.from_bytes_context(ctx["context"])
            he.from_bytes_public_key(pk["public_key"])
            he.from_bytes_relin_key(pk["relin_key"])
            he.from_bytes_rotate_key(pk["rotate_key"])
            if secret_key is not None:
                sk = decode_bundle(secret_key, "secret key", cls.name)
                he.from_bytes_secret_key(sk["secret_key"])
        except (KeyError, RuntimeError, ValueError) as e:
            raise KeyMaterialError(f"Cannot load SEAL key material: {e}") from e
        return cls(he, ctx["slots"], secret=secret_key is not None)

    @property
    def modulus(self) -> int:
        return int(self.he.t)

    @property
    def slot_count(self) -> int:
        return self._slot_count

    @property
    def has_secret_key(self) -> bool:
        return self._secret

    def _tile(self, vector: Vector) -> np.ndarray:
        values = np.asarray(vector, dtype=np.int64)[: self._slot_count]
        window = np.zeros(self._slot_count, dtype=np.int64)
        window[: len(values)] = values
        return np.ascontiguousarray(np.tile(window % self.modulus, self._tiles))

    def _plain(self, vector: Vector):
        return self.he.encodeInt(self._tile(vector))

    def encrypt(self, vector: Vector) -> PyCtxt:
        return self.he.encryptInt(self._tile(vector))

    def decrypt(self, ctxt: PyCtxt) -> np.ndarray:
        if not self._secret:
            raise KeyMaterialError("Cannot decrypt without the secret key")
        # decryptInt returns centered representatives
        return self.he.decryptInt(ctxt)[: self._slot_count] % self.modulus

    def add(self, ctxt, other):
        return self.he.add(ctxt, other, in_new_ctxt=True)

    def sub(self, ctxt, other):
        return self.he.sub(ctxt, other, in_new_ctxt=True)

    def multiply(self, ctxt, other):
        result = self.he.multiply(ctxt, other, in_new_ctxt=True)
        self.he.relinearize(result)
        return result

    def multiply_plain(self, ctxt, vector: Vector):
        return self.he.multiply_plain(ctxt, self._plain(vector), in_new_ctxt=True)

    def negate(self, ctxt):
        return self.he.negate(ctxt, in_new_ctxt=True)

    def add_constant(self, ctxt, value: int):
        if value % self.modulus == 1:
            plain = self._ones
        else:
            plain = self._plain(np.full(self._slot_count, value, dtype=np.int64))
        return self.he.add_plain(ctxt, plain, in_new_ctxt=True)

    def rotate(self, ctxt, amount: int):
        # SEAL rotates rows to the left for positive steps
        steps = (-amount) % self._slot_count
        if steps == 0:
            return ctxt.copy()
        return self.he.rotate(ctxt, steps, in_new_ctxt=True)

    def sum_slots(self, ctxt):
        shift = 1
        total = ctxt
        while shift < self._slot_count:
            total = self.add(total, self.rotate(total, shift))
            shift *= 2
        return total

    def noise_budget(self, ctxt) -> Optional[int]:
        if not self._secret:
            return None
        return int(self.he.noise_level(ctxt))

    def serialize(self, ctxt) -> bytes:
        return ctxt.to_bytes()

    def deserialize(self, data: bytes) -> PyCtxt:
        try:
            return PyCtxt(pyfhel=self.he, bytestring=data)
        except (RuntimeError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed ciphertext: {e}") from e

    def export_context(self) -> bytes:
        return encode_bundle(
            self.name,
            slots=self._slot_count,
            context=self.he.to_bytes_context(),
        )

    def export_public_key(self) -> bytes:
        return encode_bundle(
            self.name,
            public_key=self.he.to_bytes_public_key(),
            relin_key=self.he.to_bytes_relin_key(),
            rotate_key=self.he.to_bytes_rotate_key(),
        )

    def export_secret_key(self) -> bytes:
        if not self._secret:
            raise KeyMaterialError("No secret key held")
        return encode_bundle(self.name, secret_key=self.he.to_bytes_secret_key())
