"""Tests for loose type conversion helpers."""

import pytest

from src.utils.type_conversion import is_truthy, safe_int


class TestSafeInt:
    @pytest.mark.parametrize(("value", "expected"), [("12", 12), (3, 3), (None, None), ("abc", None), ("", None)])
    def test_safe_int(self, value, expected):
        assert safe_int(value) == expected


class TestIsTruthy:
    @pytest.mark.parametrize("value", [True, "yes", "On", "enabled", "1", "true", "anything", 1])
    def test_truthy(self, value):
        assert is_truthy(value) is True

    @pytest.mark.parametrize("value", [False, None, "no", "OFF", "disabled", "0", "false", "", "  ", 0])
    def test_falsy(self, value):
        assert is_truthy(value) is False
