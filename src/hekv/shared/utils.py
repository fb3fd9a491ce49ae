"""
Shared utility functions: timing, phase metrics and table ingestion.
"""
import base64
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from hekv.shared.codec import SlotCodec
from hekv.shared.errors import ConfigurationError, TableFormatError, TextValidationError
from hekv.shared.protocol import TableEntry

logger = logging.getLogger(__name__)


class Timer:
    """Context manager for timing operations."""

    def __init__(self, name: str = "Operation"):
        self.name = name
        self.start_time: Optional[float] = None
        self.elapsed: Optional[float] = None

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        self.elapsed = time.perf_counter() - self.start_time

    @property
    def elapsed_ms(self) -> float:
        """Get elapsed time in milliseconds."""
        if self.elapsed is None:
            if self.start_time is not None:
                return (time.perf_counter() - self.start_time) * 1000
            return 0.0
        return self.elapsed * 1000


class Metrics:
    """
    Named phase timings and counters for one run.

    Passed explicitly into each phase and handed back to the caller,
    instead of process-wide timers printed as a side effect.
    """

    def __init__(self):
        self.timings: Dict[str, float] = {}
        self.counters: Dict[str, int] = {}

    @contextmanager
    def phase(self, name: str) -> Iterator[Timer]:
        """Time a block and accumulate it under ``name`` (milliseconds)."""
        with Timer(name) as t:
            yield t
        self.record(name, t.elapsed_ms)

    def record(self, name: str, elapsed_ms: float) -> None:
        self.timings[name] = self.timings.get(name, 0.0) + elapsed_ms

    def count(self, name: str, amount: int = 1) -> None:
        self.counters[name] = self.counters.get(name, 0) + amount

    def merge(self, other: "Metrics") -> "Metrics":
        for name, value in other.timings.items():
            self.record(name, value)
        for name, value in other.counters.items():
            self.count(name, value)
        return self

    @property
    def total_ms(self) -> float:
        return sum(self.timings.values())

    def as_dict(self) -> dict:
        return {"timings_ms": dict(self.timings), "counters": dict(self.counters)}

    def report(self) -> str:
        lines = [f"  {name:<24} {value:10.2f} ms" for name, value in self.timings.items()]
        lines.extend(f"  {name:<24} {value:10d}" for name, value in self.counters.items())
        return "\n".join(lines)


def to_b64(data: bytes) -> str:
    """Encode bytes for JSON transport."""
    return base64.b64encode(data).decode("utf-8")


def from_b64(text: str) -> bytes:
    """Decode a base64 string, rejecting malformed input."""
    return base64.b64decode(text, validate=True)


def read_table(
    path: Union[str, Path],
    codec: Optional[SlotCodec] = None,
    unique_keys: bool = False,
) -> List[TableEntry]:
    """
    Read a two-column ``key,value`` table.

    The first comma separates key from value; everything after it is the
    value. Blank lines are skipped.

    Args:
        path: CSV file path
        codec: When given, keys and values must fit its slot window
        unique_keys: Reject repeated keys instead of warning

    Returns:
        Entries in file order

    Raises:
        ConfigurationError: if the file cannot be read
        TableFormatError: for a malformed or unrepresentable row
    """
    path = str(path)
    try:
        with open(path, "r", encoding="utf-8") as handle:
            lines = handle.read().splitlines()
    except OSError as e:
        raise ConfigurationError(f"Cannot read table file {path}: {e}") from e

    entries: List[TableEntry] = []
    seen: Dict[str, int] = {}
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        fields = line.split(",", 1)
        if len(fields) < 2:
            raise TableFormatError(path, line_number, "missing value column")
        key, value = fields
        if codec is not None:
            try:
                codec.validate(key, "key")
                codec.validate(value, "value")
            except TextValidationError as e:
                raise TableFormatError(path, line_number, str(e)) from e
        if key in seen:
            if unique_keys:
                raise TableFormatError(
                    path, line_number, f"duplicate key {key!r} (first on line {seen[key]})"
                )
            logger.warning(
                "%s:%d: duplicate key %r, lookups will return the sum of matching values",
                path, line_number, key,
            )
        else:
            seen[key] = line_number
        entries.append(TableEntry(key=key, value=value))
    return entries
