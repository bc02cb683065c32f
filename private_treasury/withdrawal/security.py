"""
Secret handling for the withdrawal pipeline.

The withdrawal scalar and the operator signing key come from process
configuration only. They are wrapped so that repr(), str() and logging never
print the underlying value; callers must ask for it explicitly.
"""

from __future__ import annotations

import hmac


def _mask(label: str) -> str:
    return f"<{label}:***>"


class SecretScalar:
    """
    Withdrawal secret α used in the ownership relation Q == α·P.

    Example:
        >>> alpha = SecretScalar.parse("12345")
        >>> str(alpha)
        '<SecretScalar:***>'
        >>> alpha.reveal()
        12345
    """

    __slots__ = ("_value",)

    def __init__(self, value: int) -> None:
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError("secret scalar must be an int")
        if value <= 0:
            raise ValueError("secret scalar must be positive")
        self._value = value

    @classmethod
    def parse(cls, raw: str) -> "SecretScalar":
        """Parse a decimal or 0x-prefixed hex string."""
        text = raw.strip()
        if not text:
            raise ValueError("secret scalar is empty")
        base = 16 if text.lower().startswith("0x") else 10
        return cls(int(text, base))

    def reveal(self) -> int:
        return self._value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecretScalar):
            return NotImplemented
        return constant_time_compare(
            self._value.to_bytes(32, "big"), other._value.to_bytes(32, "big")
        )

    def __hash__(self) -> int:
        return hash((SecretScalar, self._value))

    def __repr__(self) -> str:
        return _mask("SecretScalar")

    __str__ = __repr__


class OperatorKey:
    """Operator's Ethereum signing key (hex string), masked in output."""

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        text = value.strip()
        if not text:
            raise ValueError("operator key is empty")
        if not text.startswith("0x"):
            text = "0x" + text
        if len(text) != 66:
            raise ValueError("operator key must be 32 bytes of hex")
        try:
            int(text, 16)
        except ValueError as exc:
            raise ValueError("operator key must be hex") from exc
        self._value = text

    def reveal(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return _mask("OperatorKey")

    __str__ = __repr__


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """Compare two byte strings without early exit."""
    return hmac.compare_digest(a, b)
