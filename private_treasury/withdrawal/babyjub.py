"""
Baby Jubjub arithmetic for the deposit ownership relation.

Curve:
    a*x^2 + y^2 = 1 + d*x^2*y^2  over the BN254 scalar field
    a = 168700, d = 168696

Ownership relation:
    A depositor picks a random r and publishes P = r*B8 and Q = r*A where
    A = alpha*B8 is the treasury public key. The treasury, holding alpha,
    recognises its deposits because Q == alpha*P. The withdrawal circuit
    enforces the same relation, so the check here must agree with it exactly.

Points are plain (x, y) tuples of ints; the identity is (0, 1).
"""

from __future__ import annotations

from typing import Tuple

from .config import (
    BABYJUB_A,
    BABYJUB_BASE8,
    BABYJUB_D,
    BABYJUB_SUBORDER,
    SNARK_SCALAR_FIELD,
)

Point = Tuple[int, int]

IDENTITY: Point = (0, 1)
BASE8: Point = BABYJUB_BASE8

_P = SNARK_SCALAR_FIELD


def _inv(value: int) -> int:
    return pow(value, _P - 2, _P)


def is_on_curve(point: Point) -> bool:
    x, y = point
    if not (0 <= x < _P and 0 <= y < _P):
        return False
    x2 = x * x % _P
    y2 = y * y % _P
    return (BABYJUB_A * x2 + y2) % _P == (1 + BABYJUB_D * x2 * y2) % _P


def add(p1: Point, p2: Point) -> Point:
    """Twisted Edwards point addition (complete for Baby Jubjub)."""
    x1, y1 = p1
    x2, y2 = p2
    x1x2 = x1 * x2 % _P
    y1y2 = y1 * y2 % _P
    dxy = BABYJUB_D * x1x2 % _P * y1y2 % _P
    x3 = (x1 * y2 + y1 * x2) % _P * _inv((1 + dxy) % _P) % _P
    y3 = (y1y2 - BABYJUB_A * x1x2) % _P * _inv((1 - dxy) % _P) % _P
    return x3, y3


def mul(point: Point, scalar: int) -> Point:
    """Double-and-add scalar multiplication."""
    if scalar < 0:
        raise ValueError("scalar must be non-negative")
    result = IDENTITY
    addend = point
    while scalar:
        if scalar & 1:
            result = add(result, addend)
        addend = add(addend, addend)
        scalar >>= 1
    return result


def public_key(secret: int) -> Point:
    """A = secret * B8."""
    return mul(BASE8, secret % BABYJUB_SUBORDER)


def derive_masked_points(treasury_public: Point, blinding: int) -> Tuple[Point, Point]:
    """
    Depositor side: P = r*B8, Q = r*A.

    Used by tests and fixtures to produce deposits owned by a given key.
    """
    r = blinding % BABYJUB_SUBORDER
    if r == 0:
        raise ValueError("blinding must be non-zero modulo the subgroup order")
    return mul(BASE8, r), mul(treasury_public, r)


def check_q_derivation(P: Point, Q: Point, secret: int) -> bool:
    """True iff Q == secret * P and both points lie on the curve."""
    if not (is_on_curve(P) and is_on_curve(Q)):
        return False
    return mul(P, secret) == Q
