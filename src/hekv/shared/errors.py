"""
Exception hierarchy shared by client, server and CLI.
"""
from typing import Optional


class HEKVError(Exception):
    """Base class for all hekv errors."""


class ConfigurationError(HEKVError):
    """Invalid algebra parameters or an unusable table source."""


class TableFormatError(ConfigurationError):
    """A row of the source table cannot be ingested."""

    def __init__(self, path: str, line_number: Optional[int], reason: str):
        self.path = path
        self.line_number = line_number
        self.reason = reason
        where = f"{path}:{line_number}" if line_number is not None else path
        super().__init__(f"{where}: {reason}")


class TextValidationError(HEKVError, ValueError):
    """Text that cannot be represented in one plaintext window."""


class KeyMaterialError(HEKVError, ValueError):
    """Missing or mismatched key material."""


class StoreError(HEKVError):
    """Base class for errors raised by the store command layer."""


class ContextNotSetError(StoreError):
    """The public context or public key has not been stored yet."""


class StaleEntryError(StoreError):
    """A stored entry cannot be read under the current public context."""
