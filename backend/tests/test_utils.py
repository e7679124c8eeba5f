"""Tests for numeric helpers and de-identified references."""

import pytest

from bundle_engine.utils.numbers import clamp, round_half_up, round_to, to_int
from bundle_engine.utils.refs import hashed_ref, patient_ref, staff_ref, user_ref


class TestRoundHalfUp:
    @pytest.mark.parametrize(
        "value,expected",
        [(2.5, 3), (3.5, 4), (2.4, 2), (0.5, 1), (0.49, 0), (7.0, 7)],
    )
    def test_halves_round_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_differs_from_builtin_round(self):
        assert round(2.5) == 2
        assert round_half_up(2.5) == 3


class TestRoundTo:
    def test_one_place(self):
        assert round_to(16.75, 1) == 16.8

    def test_default_two_places(self):
        assert round_to(10.125) == 10.13


class TestToInt:
    @pytest.mark.parametrize(
        "value,expected",
        [(None, 0), (True, 1), (False, 0), (3, 3), (3.9, 3), ("4", 4), (" 2.0 ", 2), ("n/a", 0)],
    )
    def test_coercion(self, value, expected):
        assert to_int(value) == expected


def test_clamp():
    assert clamp(7, 0, 6) == 6
    assert clamp(-1, 0, 6) == 0
    assert clamp(3, 0, 6) == 3


class TestRefs:
    def test_patient_ref_shape(self):
        ref = patient_ref(101, "salt")
        assert ref.startswith("P-")
        assert len(ref) == 6

    def test_stable_for_same_salt(self):
        assert patient_ref(101, "salt") == patient_ref(101, "salt")

    def test_salt_changes_reference(self):
        assert patient_ref(101, "salt-a") != patient_ref(101, "salt-b")

    def test_kind_is_part_of_hash(self):
        assert user_ref(5, "salt")[2:] == hashed_ref("U", "user", 5, "salt")[2:]
        assert hashed_ref("X", "user", 5, "salt")[2:] != hashed_ref("X", "staff", 5, "salt")[2:]

    def test_prefixes(self):
        assert user_ref(1, "s").startswith("U-")
        assert staff_ref(1, "s").startswith("S-")

    def test_reference_does_not_contain_id(self):
        assert "123456" not in patient_ref(123456, "salt")
