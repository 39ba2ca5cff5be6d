import random
import sys

import pytest

from cronovm.f64bits import F64, INF, NAN, NEG_INF, NEG_ONE, NEG_ZERO, ONE, ZERO
from cronovm.f64math import add, div, mul, sub


def f(value):
    return F64.from_float(value)


def _pairs(seed, low, high, count=200, signed=True):
    rng = random.Random(seed)
    for _ in range(count):
        x = rng.uniform(low, high)
        y = rng.uniform(low, high)
        if signed:
            x *= rng.choice((-1.0, 1.0))
            y *= rng.choice((-1.0, 1.0))
        yield x, y


def test_worked_examples():
    assert add(f(1.5), f(2.0)).to_float() == 3.5
    assert mul(f(2.5), F64.from_i32(4)).to_float() == 10.0
    assert add(mul(ONE, F64.from_i32(3)), f(0.5)).to_float() == 3.5


def test_add_positive_truncates_toward_zero():
    for x, y in _pairs(2, 1e-3, 1e6, signed=False):
        ours = add(f(x), f(y)).to_bits()
        host = f(x + y).to_bits()
        assert host - 1 <= ours <= host, (x, y)


def test_sub_matches_negated_add():
    for x, y in _pairs(3, 1e-2, 1e4, count=50):
        assert sub(f(x), f(y)).to_bits() == add(f(x), -f(y)).to_bits()


def test_sub_self_is_positive_zero():
    result = sub(f(-2.5), f(-2.5))
    assert result.to_bits() == ZERO.to_bits()


def test_add_zero_returns_other_operand():
    assert add(ZERO, f(7.25)).to_bits() == f(7.25).to_bits()
    assert add(f(-7.25), NEG_ZERO).to_bits() == f(-7.25).to_bits()


def test_add_special_values():
    assert add(NAN, ONE).is_nan()
    assert add(INF, NEG_INF).is_nan()
    assert add(INF, ONE).to_bits() == INF.to_bits()
    assert add(ONE, NEG_INF).to_bits() == NEG_INF.to_bits()
    assert add(INF, INF).to_bits() == INF.to_bits()


def test_add_overflow_saturates_to_infinity():
    big = f(sys.float_info.max)
    assert add(big, big).to_bits() == INF.to_bits()
    assert add(-big, -big).to_bits() == NEG_INF.to_bits()


def test_add_tiny_operand_is_lost():
    one = ONE
    tiny = f(2.0 ** -70)
    assert add(one, tiny).to_bits() == one.to_bits()


def test_mul_positive_truncates_toward_zero():
    for x, y in _pairs(4, 1e-3, 1e3, signed=False):
        ours = mul(f(x), f(y)).to_bits()
        host = f(x * y).to_bits()
        assert host - 1 <= ours <= host, (x, y)


def test_mul_sign_rules():
    for x, y in _pairs(5, 1e-3, 1e3, count=50):
        assert mul(f(x), f(y)).sign == f(x * y).sign


def test_mul_exact_products_match_host():
    for x, y in [(1.5, 2.0), (-3.0, 0.25), (1024.0, -1024.0), (0.5, 0.5)]:
        assert mul(f(x), f(y)).to_float() == x * y


def test_mul_special_values():
    assert mul(NAN, ONE).is_nan()
    assert mul(INF, ZERO).is_nan()
    assert mul(ZERO, NEG_INF).is_nan()
    assert mul(INF, NEG_ONE).to_bits() == NEG_INF.to_bits()
    assert mul(NEG_ONE, ZERO).to_bits() == NEG_ZERO.to_bits()


def test_mul_overflow_and_underflow():
    assert mul(f(1e300), f(1e300)).to_bits() == INF.to_bits()
    assert mul(f(1e-300), f(-1e-300)).to_bits() == NEG_ZERO.to_bits()


def test_div_is_bit_exact():
    for x, y in _pairs(6, 1e-6, 1e6):
        assert div(f(x), f(y)).to_bits() == f(x / y).to_bits(), (x, y)


def test_div_is_bit_exact_for_integers():
    for x in range(1, 40):
        for y in range(1, 40):
            ours = div(F64.from_i32(x), F64.from_i32(-y))
            assert ours.to_bits() == f(x / -y).to_bits()


def test_div_special_values():
    assert div(NAN, ONE).is_nan()
    assert div(ZERO, ZERO).is_nan()
    assert div(INF, NEG_INF).is_nan()
    assert div(ONE, ZERO).to_bits() == INF.to_bits()
    assert div(NEG_ONE, ZERO).to_bits() == NEG_INF.to_bits()
    assert div(NEG_ONE, INF).to_bits() == NEG_ZERO.to_bits()
    assert div(INF, NEG_ONE).to_bits() == NEG_INF.to_bits()
    assert div(NEG_ZERO, ONE).to_bits() == NEG_ZERO.to_bits()


def test_div_overflow_and_underflow():
    assert div(f(1e300), f(1e-300)).to_bits() == INF.to_bits()
    assert div(f(1e-300), f(-1e300)).to_bits() == NEG_ZERO.to_bits()


@pytest.mark.parametrize("x", [1.0, 3.0, -0.1, 12345.678, 2.0 ** 40])
def test_div_by_self_is_one(x):
    assert div(f(x), f(x)).to_bits() == ONE.to_bits()