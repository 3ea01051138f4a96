"""
Tests for derived numeric ids
"""
import pytest

from supportchat.storage.identity import (
    NUMERIC_ID_SPACE,
    collision_probability,
    derive_numeric_id,
    new_native_id,
)


@pytest.mark.unit
class TestDeriveNumericId:
    """Tests for derive_numeric_id"""

    def test_uses_leading_eight_hex_digits(self):
        assert derive_numeric_id("0000000a" + "f" * 24) == 10
        assert derive_numeric_id("5f2b9c01" + "0" * 24) == 0x5F2B9C01

    def test_upper_bound(self):
        assert derive_numeric_id("ffffffff" + "0" * 24) == NUMERIC_ID_SPACE - 1

    def test_stable_for_same_key(self):
        native_id = new_native_id()
        assert derive_numeric_id(native_id) == derive_numeric_id(native_id)

    def test_new_native_id_is_hex(self):
        native_id = new_native_id()
        assert len(native_id) == 32
        assert 0 <= derive_numeric_id(native_id) < NUMERIC_ID_SPACE

    @pytest.mark.parametrize("bad", ["", "abc", "zzzzzzzz" + "0" * 24, "12-45678"])
    def test_rejects_non_hex_keys(self, bad):
        with pytest.raises(ValueError):
            derive_numeric_id(bad)


@pytest.mark.unit
class TestCollisionProbability:
    """The derived id space is small enough to collide at moderate counts"""

    def test_trivial_counts(self):
        assert collision_probability(0) == 0.0
        assert collision_probability(1) == 0.0

    def test_about_one_percent_at_9300_records(self):
        assert 0.009 < collision_probability(9_300) < 0.011

    def test_about_even_odds_at_77000_records(self):
        assert 0.45 < collision_probability(77_000) < 0.55

    def test_grows_with_record_count(self):
        assert collision_probability(1_000) < collision_probability(10_000) < 1.0
