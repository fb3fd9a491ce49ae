"""Tests for table ingestion, metrics and transport helpers."""
import binascii
import logging
from pathlib import Path

import pytest

from hekv.shared.codec import SlotCodec
from hekv.shared.errors import ConfigurationError, TableFormatError
from hekv.shared.protocol import NOT_FOUND_MESSAGE, LookupResult, TableEntry
from hekv.shared.utils import Metrics, Timer, from_b64, read_table, to_b64

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


def write(tmp_path, text):
    path = tmp_path / "table.csv"
    path.write_bytes(text.encode("utf-8"))
    return path


class TestReadTable:

    def test_basic(self, table_file):
        entries = read_table(table_file)
        assert entries[0] == TableEntry("France", "Paris")
        assert [e.key for e in entries] == ["France", "Spain", "Italy"]

    def test_first_comma_splits(self, tmp_path):
        entries = read_table(write(tmp_path, "Bosnia,Sarajevo, BiH\n"))
        assert entries == [TableEntry("Bosnia", "Sarajevo, BiH")]

    def test_blank_lines_and_crlf(self, tmp_path):
        entries = read_table(write(tmp_path, "a,1\r\n\r\nb,2\r\n"))
        assert entries == [TableEntry("a", "1"), TableEntry("b", "2")]

    def test_missing_value_column(self, tmp_path):
        with pytest.raises(TableFormatError) as excinfo:
            read_table(write(tmp_path, "a,1\nbroken\n"))
        assert excinfo.value.line_number == 2
        assert "missing value column" in str(excinfo.value)

    def test_codec_validation(self, tmp_path):
        codec = SlotCodec(16, 257)
        with pytest.raises(TableFormatError, match=r"table.csv:1: .*window holds 16"):
            read_table(write(tmp_path, "a,this value is far too long\n"), codec=codec)

    def test_duplicate_keys_warn(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            entries = read_table(write(tmp_path, "k,1\nk,2\n"))
        assert len(entries) == 2
        assert "duplicate key" in caplog.text

    def test_duplicate_keys_rejected(self, tmp_path):
        with pytest.raises(TableFormatError, match="first on line 1"):
            read_table(write(tmp_path, "k,1\nk,2\n"), unique_keys=True)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            read_table(tmp_path / "nope.csv")

    def test_bundled_dataset_fits_default_window(self):
        entries = read_table(DATA_DIR / "countries_dataset.csv", codec=SlotCodec(16, 257), unique_keys=True)
        assert TableEntry("Spain", "Madrid") in entries


class TestMetrics:

    def test_phase_accumulates(self):
        metrics = Metrics()
        with metrics.phase("encrypt"):
            pass
        with metrics.phase("encrypt"):
            pass
        metrics.count("entries", 3)
        assert metrics.timings["encrypt"] >= 0
        assert metrics.counters == {"entries": 3}
        assert "encrypt" in metrics.report()

    def test_merge(self):
        a, b = Metrics(), Metrics()
        a.record("x", 1.0)
        b.record("x", 2.0)
        b.count("n")
        a.merge(b)
        assert a.as_dict() == {"timings_ms": {"x": 3.0}, "counters": {"n": 1}}
        assert a.total_ms == 3.0

    def test_timer(self):
        with Timer("op") as t:
            pass
        assert t.elapsed_ms >= 0


class TestTransportHelpers:

    def test_b64_round_trip(self):
        assert from_b64(to_b64(b"\x00\xffdata")) == b"\x00\xffdata"

    def test_b64_rejects_garbage(self):
        with pytest.raises(binascii.Error):
            from_b64("!!!")


class TestLookupResult:

    def test_found(self):
        result = LookupResult(query="Spain", value="Madrid")
        assert result.found
        assert str(result) == "Madrid"

    def test_not_found(self):
        result = LookupResult(query="Italy", value=None)
        assert not result.found
        assert str(result) == NOT_FOUND_MESSAGE
