"""
Bit-serial homomorphic comparison of 16-bit integers.

Operands are encrypted one bit per slot, most significant bit in slot 0.
A ripple-carry adder is simulated with slot-wise products: each round
computes the carries ``x * y`` and the exact XOR ``x + y - 2xy`` and shifts
the carries one slot toward the most significant bit. Adding ``x`` to the
two's complement of ``y`` yields ``x - y``, whose bits answer both "equal?"
and "less than?".
"""
import logging
from typing import Any, List, Sequence

import numpy as np

from hekv.fhe.base import FHEBackend
from hekv.shared.errors import ConfigurationError
from hekv.shared.params import WORD_BITS

logger = logging.getLogger(__name__)

WORD_MASK = (1 << WORD_BITS) - 1
MIN_VALUE = -(1 << (WORD_BITS - 1))
MAX_VALUE = 1 << (WORD_BITS - 1)


def to_bits(value: int) -> List[int]:
    """
    Two's complement bits of ``value``, index 15 least significant.

    Accepts [-32768, 32768]; the two endpoints share one representation so
    that ``-y`` is encodable for every 16-bit ``y``.
    """
    if not MIN_VALUE <= value <= MAX_VALUE:
        raise ValueError(f"{value} is outside [{MIN_VALUE}, {MAX_VALUE}]")
    word = value & WORD_MASK
    return [(word >> (WORD_BITS - 1 - i)) & 1 for i in range(WORD_BITS)]


def from_bits(bits: Sequence[int], signed: bool = True) -> int:
    """Inverse of to_bits; slots beyond the word are ignored."""
    word = 0
    for bit in list(bits)[:WORD_BITS]:
        word = (word << 1) | (int(bit) & 1)
    if signed and word & (1 << (WORD_BITS - 1)):
        word -= 1 << WORD_BITS
    return word


class BitSerialComparator:
    """
    Ripple-carry adder over encrypted bit vectors.

    Circuit depth is one level per round plus the final selector product,
    17 in total.
    """

    ROUNDS = WORD_BITS

    def __init__(self, backend: FHEBackend):
        if backend.slot_count < WORD_BITS:
            raise ConfigurationError(
                f"Comparator needs a window of at least {WORD_BITS} slots, "
                f"got {backend.slot_count}"
            )
        self.backend = backend
        # carries out of slot 0 (the sign bit) are dropped
        self._keep = np.zeros(backend.slot_count, dtype=np.int64)
        self._keep[1:WORD_BITS] = 1

    def _selector(self, width: int) -> np.ndarray:
        selector = np.zeros(self.backend.slot_count, dtype=np.int64)
        selector[:width] = 1
        return selector

    def add(self, x_ctxt: Any, y_ctxt: Any) -> Any:
        """Encrypted bits of ``x + y mod 2^16``."""
        he = self.backend
        x, y = x_ctxt, y_ctxt
        for round_index in range(self.ROUNDS):
            carry = he.multiply(x, y)
            total = he.sub(he.add(x, y), he.add(carry, carry))
            carry = he.rotate(he.multiply_plain(carry, self._keep), -1)
            x, y = total, carry
            logger.debug("Comparator round %d done", round_index + 1)
        return x

    def _reduce(self, x_ctxt: Any, neg_y_ctxt: Any, width: int) -> Any:
        he = self.backend
        total = self.add(x_ctxt, neg_y_ctxt)
        selector = he.encrypt(self._selector(width))
        return he.sum_slots(he.multiply(total, selector))

    def difference_indicator(self, x_ctxt: Any, neg_y_ctxt: Any) -> Any:
        """
        Count of set bits of ``x - y``, replicated in every slot.

        Args:
            x_ctxt: Encrypted bits of x
            neg_y_ctxt: Encrypted bits of -y

        Returns:
            Ciphertext decrypting to 0 iff ``x == y (mod 2^16)``
        """
        return self._reduce(x_ctxt, neg_y_ctxt, WORD_BITS)

    def sign_indicator(self, x_ctxt: Any, neg_y_ctxt: Any) -> Any:
        """Sign bit of ``x - y``: decrypts to 1 iff x < y (no overflow)."""
        return self._reduce(x_ctxt, neg_y_ctxt, 1)
