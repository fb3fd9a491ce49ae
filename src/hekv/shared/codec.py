"""
Plaintext slot codec: text <-> one window of plaintext slots.
"""
from typing import Sequence, Union

import numpy as np

from hekv.shared.errors import TextValidationError


class SlotCodec:
    """
    Maps text to a vector of character codes packed into ``slot_count`` slots.

    Slot ``i`` holds ``ord(text[i])``; unused slots are zero, and zero in
    slot 0 is the "not found" sentinel.
    """

    def __init__(self, slot_count: int, modulus: int):
        """
        Args:
            slot_count: Number of slots in one plaintext window
            modulus: Plaintext modulus t, every slot value lies in [0, t)
        """
        self.slot_count = slot_count
        self.modulus = modulus

    def encode(self, text: str) -> np.ndarray:
        """
        Encode text into a slot vector.

        Text longer than the window is truncated to its first
        ``slot_count`` characters.
        """
        vector = np.zeros(self.slot_count, dtype=np.int64)
        codes = [ord(ch) for ch in text[: self.slot_count]]
        if codes:
            vector[: len(codes)] = codes
        return vector

    def decode(self, vector: Union[Sequence[int], np.ndarray]) -> str:
        """Decode slots up to the first zero."""
        chars = []
        for value in np.asarray(vector, dtype=np.int64)[: self.slot_count]:
            code = int(value) % self.modulus
            if code == 0:
                break
            chars.append(chr(code))
        return "".join(chars)

    @staticmethod
    def is_not_found(vector: Union[Sequence[int], np.ndarray]) -> bool:
        return len(vector) == 0 or int(vector[0]) == 0

    def validate(self, text: str, what: str = "text") -> str:
        """
        Check that text survives an encode/decode round trip unchanged.

        Args:
            text: Text to check
            what: Name used in the error message ("key", "value", "query")

        Returns:
            The text itself

        Raises:
            TextValidationError: on empty text, text longer than the window,
                or characters outside [1, modulus)
        """
        if not text:
            raise TextValidationError(f"{what} is empty")
        if len(text) > self.slot_count:
            raise TextValidationError(
                f"{what} {text!r} has {len(text)} characters, "
                f"window holds {self.slot_count}"
            )
        for ch in text:
            if not 0 < ord(ch) < self.modulus:
                raise TextValidationError(
                    f"{what} {text!r} contains {ch!r} (code {ord(ch)}) "
                    f"outside the plaintext field of size {self.modulus}"
                )
        return text
