"""Client-side components for privacy-preserving lookup."""
from hekv.client.crypto import CryptoClient
from hekv.client.lookup import LookupClient

__all__ = ["CryptoClient", "LookupClient"]
