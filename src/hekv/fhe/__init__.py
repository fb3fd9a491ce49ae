"""
FHE primitive layer.

``create_backend`` builds a fresh key set for the configured backend;
``load_backend`` rebuilds a backend from serialized public material (and,
for the querier, the secret key).
"""
from typing import Optional

from hekv.fhe.base import FHEBackend, KeyPair, PublicKey, decode_bundle, encode_bundle
from hekv.fhe.clear import ClearBackend, ClearCiphertext
from hekv.shared.errors import KeyMaterialError
from hekv.shared.params import LookupParams


def create_backend(params: LookupParams) -> FHEBackend:
    """Generate keys for ``params.backend`` after validating the parameters."""
    params.validate()
    if params.backend == "clear":
        return ClearBackend.generate(params)
    from hekv.fhe.seal import SealBackend
    return SealBackend.generate(params)


def load_backend(public_key: PublicKey, secret_key: Optional[bytes] = None) -> FHEBackend:
    """
    Rebuild a backend from exported key material.

    Args:
        public_key: Context and public/evaluation keys
        secret_key: Secret key bytes, omitted on computing parties

    Raises:
        KeyMaterialError: for malformed material or an unknown backend kind
    """
    kind = decode_bundle(public_key.context, "context")["backend"]
    if kind == ClearBackend.name:
        return ClearBackend.from_bytes(public_key.context, public_key.key, secret_key)
    if kind == "seal":
        from hekv.fhe.seal import SealBackend
        return SealBackend.from_bytes(public_key.context, public_key.key, secret_key)
    raise KeyMaterialError(f"Unknown backend kind {kind!r}")


__all__ = [
    "FHEBackend",
    "KeyPair",
    "PublicKey",
    "ClearBackend",
    "ClearCiphertext",
    "create_backend",
    "load_backend",
    "encode_bundle",
    "decode_bundle",
]
