"""Tests for Baby Jubjub arithmetic and the ownership relation."""

import pytest

from private_treasury.withdrawal import babyjub
from private_treasury.withdrawal.config import BABYJUB_SUBORDER


def test_base_point_and_identity_on_curve():
    assert babyjub.is_on_curve(babyjub.BASE8)
    assert babyjub.is_on_curve(babyjub.IDENTITY)
    assert not babyjub.is_on_curve((1, 1))


def test_identity_is_neutral():
    assert babyjub.add(babyjub.BASE8, babyjub.IDENTITY) == babyjub.BASE8
    assert babyjub.mul(babyjub.BASE8, 0) == babyjub.IDENTITY
    assert babyjub.mul(babyjub.BASE8, 1) == babyjub.BASE8


def test_addition_commutes_and_stays_on_curve():
    p = babyjub.mul(babyjub.BASE8, 5)
    q = babyjub.mul(babyjub.BASE8, 9)
    assert babyjub.add(p, q) == babyjub.add(q, p)
    assert babyjub.add(p, q) == babyjub.mul(babyjub.BASE8, 14)
    assert babyjub.is_on_curve(babyjub.add(p, q))


def test_base8_has_suborder():
    assert babyjub.mul(babyjub.BASE8, BABYJUB_SUBORDER) == babyjub.IDENTITY


def test_mul_rejects_negative_scalar():
    with pytest.raises(ValueError):
        babyjub.mul(babyjub.BASE8, -1)


def test_masked_points_satisfy_relation_for_owner_only():
    alpha = 0xC0FFEE
    public = babyjub.public_key(alpha)
    P, Q = babyjub.derive_masked_points(public, 424242)

    assert babyjub.check_q_derivation(P, Q, alpha)
    assert not babyjub.check_q_derivation(P, Q, alpha + 1)
    assert not babyjub.check_q_derivation(Q, P, alpha)


def test_relation_rejects_off_curve_points():
    alpha = 77
    P = (1, 2)
    assert not babyjub.check_q_derivation(P, babyjub.mul(P, alpha), alpha)


def test_zero_blinding_is_rejected():
    with pytest.raises(ValueError):
        babyjub.derive_masked_points(babyjub.public_key(3), BABYJUB_SUBORDER)


# Points and results from circomlib's babyjub test suite
CIRCOMLIB_GENERATOR = (
    995203441582195749578291179787384436505546430278305826713579947235728471134,
    5472060717959818805561601436314318772137091100104008585924551046643952123905,
)
CIRCOMLIB_POINT = (
    17777552123799933955779906779655732241715742912184938656739573121738514868268,
    2626589144620713026669568689430873010625803728049924121243784502389097019475,
)


class TestCircomlibVectors:
    def test_base8_is_eight_times_generator(self):
        assert babyjub.is_on_curve(CIRCOMLIB_GENERATOR)
        assert babyjub.mul(CIRCOMLIB_GENERATOR, 8) == babyjub.BASE8

    def test_add_same_point(self):
        assert babyjub.add(CIRCOMLIB_POINT, CIRCOMLIB_POINT) == (
            6890855772600357754907169075114257697580319025794532037257385534741338397365,
            4338620300185947561074059802482547481416142213883829469920100239455078257889,
        )

    def test_mul_point_escalar_three(self):
        assert babyjub.mul(CIRCOMLIB_POINT, 3) == (
            19372461775513343691590086534037741906533799473648040012278229434133483800898,
            9458658722007214007257525444427903161243386465067105737478306991484593958249,
        )

    def test_public_key_is_base8_multiple(self):
        secret = 0x1D2C3B4A
        expected = babyjub.mul(CIRCOMLIB_GENERATOR, 8 * secret)
        assert babyjub.public_key(secret) == expected
        assert babyjub.public_key(secret + BABYJUB_SUBORDER) == expected
