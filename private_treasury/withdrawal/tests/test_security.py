"""
Unit tests for secret handling.

Secrets must never appear in repr/str output and must only be readable
through an explicit reveal().
"""

import logging

import pytest

from private_treasury.withdrawal.security import (
    OperatorKey,
    SecretScalar,
    constant_time_compare,
)

OPERATOR_HEX = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


class TestSecretScalar:
    """Test the withdrawal secret wrapper."""

    def test_parse_decimal_and_hex(self):
        assert SecretScalar.parse("12345").reveal() == 12345
        assert SecretScalar.parse(" 0x3039 ").reveal() == 12345

    def test_masked_output(self, caplog):
        secret = SecretScalar(987654321)
        assert "987654321" not in repr(secret)
        assert "987654321" not in str(secret)
        with caplog.at_level(logging.INFO):
            logging.getLogger("test").info("secret=%s", secret)
        assert "987654321" not in caplog.text

    @pytest.mark.parametrize("value", [0, -5])
    def test_rejects_non_positive(self, value):
        with pytest.raises(ValueError):
            SecretScalar(value)

    def test_rejects_non_int(self):
        with pytest.raises(TypeError):
            SecretScalar(True)
        with pytest.raises(TypeError):
            SecretScalar("12")

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            SecretScalar.parse("")
        with pytest.raises(ValueError):
            SecretScalar.parse("not-a-number")

    def test_equality(self):
        assert SecretScalar(7) == SecretScalar(7)
        assert SecretScalar(7) != SecretScalar(8)
        assert hash(SecretScalar(7)) == hash(SecretScalar(7))


class TestOperatorKey:
    """Test the operator signing key wrapper."""

    def test_adds_prefix_and_masks(self):
        key = OperatorKey(OPERATOR_HEX)
        assert key.reveal() == "0x" + OPERATOR_HEX
        assert OPERATOR_HEX not in repr(key)

    @pytest.mark.parametrize("value", ["", "0x1234", "zz" * 32])
    def test_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            OperatorKey(value)


def test_constant_time_compare():
    assert constant_time_compare(b"abc", b"abc")
    assert not constant_time_compare(b"abc", b"abd")
