"""Tests for algebra parameters and depth budgeting."""
import pytest

from hekv.shared.errors import ConfigurationError
from hekv.shared.params import LookupParams, ceil_log2, is_prime


class TestHelpers:

    def test_ceil_log2(self):
        assert ceil_log2(1) == 0
        assert ceil_log2(2) == 1
        assert ceil_log2(16) == 4
        assert ceil_log2(256) == 8
        assert ceil_log2(257) == 9

    def test_is_prime(self):
        assert is_prime(2)
        assert is_prime(257)
        assert is_prime(65537)
        assert not is_prime(1)
        assert not is_prime(91)
        assert not is_prime(256)


class TestLookupParams:
    """Defaults, derived depths and validation."""

    def test_defaults_validate(self):
        params = LookupParams()
        assert params.validate() is params
        assert params.n == 128
        assert params.plaintext_modulus == 257

    def test_depths(self):
        params = LookupParams()
        assert params.fermat_depth == 8
        assert params.mask_depth == 12
        assert params.lookup_depth == 13
        assert params.comparator_depth == 17
        assert params.required_depth == 17

    def test_small_window_skips_comparator_depth(self):
        params = LookupParams(slots=8)
        assert params.required_depth == params.lookup_depth == 12

    def test_modulus_chain(self):
        assert LookupParams().qi_sizes == [40] + [60] * 16
        assert LookupParams(bits=600).qi_sizes == [60] * 10

    def test_default_chain_covers_required_depth(self):
        params = LookupParams()
        assert params.estimated_depth >= params.required_depth

    @pytest.mark.parametrize("overrides, message", [
        ({"backend": "helib"}, "Unknown backend"),
        ({"p": 256}, "not prime"),
        ({"r": 2}, "Hensel"),
        ({"m": 100}, "power of two"),
        ({"p": 131}, "Batching"),
        ({"slots": 128}, "Slot window"),
        ({"slots": 12}, "Slot window"),
        ({"bits": 60}, "fewer than two"),
        ({"c": 0}, "Key-switching"),
        ({"nthreads": 0}, "nthreads"),
        ({"sec": 100}, "Security level"),
    ])
    def test_invalid(self, overrides, message):
        with pytest.raises(ConfigurationError, match=message):
            LookupParams(**overrides).validate()

    def test_summary_mentions_depths(self):
        summary = LookupParams().summary()
        assert "Lookup depth:     13" in summary
        assert "p=257" in summary

    def test_to_dict(self):
        assert LookupParams(backend="clear").to_dict()["backend"] == "clear"
