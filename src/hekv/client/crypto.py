"""
Client-side cryptographic operations.

The querier owns the KeyPair: it encrypts table rows and queries and is
the only party able to decrypt lookup results.
"""
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

import numpy as np

from hekv.fhe import FHEBackend, KeyPair, PublicKey, create_backend, load_backend
from hekv.server.comparator import from_bits, to_bits
from hekv.shared.codec import SlotCodec
from hekv.shared.params import LookupParams
from hekv.shared.protocol import EncryptedEntry, TableEntry
from hekv.shared.utils import from_b64, to_b64


class CryptoClient:
    """
    Client-side cryptographic operations.

    Responsible for:
    - Generating the key pair
    - Encoding and encrypting table rows and queries
    - Decrypting and decoding lookup results
    - Exporting/importing key material
    """

    def __init__(self, backend: FHEBackend):
        """
        Initialize crypto client.

        Args:
            backend: Primitive layer, with the secret key for a querier
        """
        self.backend = backend
        self.codec = SlotCodec(backend.slot_count, backend.modulus)

    @classmethod
    def generate(cls, params: Optional[LookupParams] = None) -> "CryptoClient":
        """Create a client with fresh keys for ``params`` (defaults if None)."""
        return cls(create_backend(params or LookupParams()))

    @classmethod
    def from_keypair(cls, keypair: KeyPair) -> "CryptoClient":
        return cls(load_backend(keypair.public, keypair.secret_key))

    @classmethod
    def from_public_key(cls, public_key: PublicKey) -> "CryptoClient":
        """
        Create client with only public key material.

        Such a client can encrypt (e.g. a data owner filling the table) but
        not decrypt.
        """
        return cls(load_backend(public_key))

    @property
    def keypair(self) -> KeyPair:
        return self.backend.keypair()

    @property
    def public_key(self) -> PublicKey:
        """Public key material for sharing with the server."""
        return self.backend.public_key()

    @property
    def has_secret_key(self) -> bool:
        return self.backend.has_secret_key

    def encrypt_text(self, text: str, what: str = "query") -> Any:
        """
        Validate, encode and encrypt text.

        Raises:
            TextValidationError: if the text does not fit one window
        """
        self.codec.validate(text, what)
        return self.backend.encrypt(self.codec.encode(text))

    def encrypt_entry(self, entry: TableEntry) -> EncryptedEntry:
        return EncryptedEntry(
            key=self.encrypt_text(entry.key, "key"),
            value=self.encrypt_text(entry.value, "value"),
        )

    def encrypt_table(self, entries: List[TableEntry]) -> List[EncryptedEntry]:
        return [self.encrypt_entry(e) for e in entries]

    def encrypt_integer(self, value: int) -> Any:
        """Encrypt the 16 two's complement bits of ``value``, MSB in slot 0."""
        return self.backend.encrypt(to_bits(value))

    def encrypt_comparison_operands(self, x: int, y: int) -> Tuple[Any, Any]:
        """Encrypt ``x`` and ``-y`` for the bit-serial comparator."""
        return self.encrypt_integer(x), self.encrypt_integer(-y)

    def decrypt_vector(self, ctxt: Any) -> np.ndarray:
        """
        Decrypt a ciphertext to its slot values.

        Raises:
            KeyMaterialError: if no secret key is held
        """
        return self.backend.decrypt(ctxt)

    def decrypt_text(self, ctxt: Any) -> Optional[str]:
        """Decrypt a lookup result; None when slot 0 is zero (no match)."""
        vector = self.decrypt_vector(ctxt)
        if self.codec.is_not_found(vector):
            return None
        return self.codec.decode(vector)

    def decrypt_integer(self, ctxt: Any) -> int:
        return from_bits(self.decrypt_vector(ctxt))

    def decrypt_scalar(self, ctxt: Any) -> int:
        """Value of slot 0 (indicators are replicated in every slot)."""
        return int(self.decrypt_vector(ctxt)[0])

    def serialize(self, ctxt: Any) -> bytes:
        return self.backend.serialize(ctxt)

    def deserialize(self, data: bytes) -> Any:
        return self.backend.deserialize(data)

    def export_keypair(self, path: Union[str, Path]) -> None:
        """Write the full key pair (including the secret key) to a file."""
        keypair = self.keypair
        lines = [
            to_b64(keypair.public.context),
            to_b64(keypair.public.key),
            to_b64(keypair.secret_key),
        ]
        Path(path).write_text("\n".join(lines) + "\n", encoding="utf-8")

    @classmethod
    def from_key_file(cls, path: Union[str, Path]) -> "CryptoClient":
        """Load a key pair written by export_keypair."""
        context, key, secret = Path(path).read_text(encoding="utf-8").split()
        return cls.from_keypair(
            KeyPair(public=PublicKey(from_b64(context), from_b64(key)), secret_key=from_b64(secret))
        )
