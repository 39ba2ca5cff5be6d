"""Software binary64 arithmetic on :class:`~cronovm.f64bits.F64` values.

Addition, subtraction and multiplication truncate toward zero, so they are
within one unit in the last place of IEEE 754 results. Division rounds to
nearest even and is bit-exact for normal results. Results below the normal
range are flushed to a signed zero, and any NaN operand gives the canonical
quiet NaN.
"""

from __future__ import annotations

from .f64bits import BIAS, F64, INF, NAN, NEG_INF, NEG_ZERO, ZERO

__all__ = ["add", "sub", "mul", "div"]

_U32_MASK = 0xFFFFFFFF
_MHI_MASK = 0x000FFFFF
_IMPLICIT_ONE = 1 << 52
_CARRY_BIT = 1 << 53
_MAX_EXP = 0x7FF


def _mantissa(x: F64) -> int:
    """The 53-bit significand with its implicit leading one."""
    return _IMPLICIT_ONE | (x.mhi << 32) | x.lo


def _signed_zero(sign: int) -> F64:
    return NEG_ZERO if sign else ZERO


def _signed_inf(sign: int) -> F64:
    return NEG_INF if sign else INF


def _pack(sign: int, exponent: int, significand: int) -> F64:
    return F64.pack(sign, exponent, (significand >> 32) & _MHI_MASK, significand & _U32_MASK)


def _magnitude_key(x: F64) -> tuple[int, int]:
    return (x.hi & 0x7FFFFFFF, x.lo)


def add(a: F64, b: F64) -> F64:
    """Return ``a + b``, truncating the result toward zero."""
    if a.is_nan() or b.is_nan():
        return NAN
    if a.is_inf():
        if b.is_inf() and a.sign != b.sign:
            return NAN
        return a
    if b.is_inf():
        return b
    if a.is_zero():
        return b
    if b.is_zero():
        return a

    if _magnitude_key(a) < _magnitude_key(b):
        a, b = b, a

    r_sign = a.sign
    subtracting = a.sign != b.sign
    exp_diff = a.exponent - b.exponent
    if exp_diff >= 64:
        return a

    a_m = _mantissa(a)
    b_m = _mantissa(b) >> exp_diff
    r_exp = a.exponent

    if subtracting:
        r = a_m - b_m
        if r == 0:
            return ZERO
        shift = 52 - (r.bit_length() - 1)
        if shift > 0:
            r <<= shift
            r_exp -= shift
            if r_exp <= 0:
                return _signed_zero(r_sign)
    else:
        r = a_m + b_m
        if r & _CARRY_BIT:
            r >>= 1
            r_exp += 1
            if r_exp >= _MAX_EXP:
                return _signed_inf(r_sign)

    return _pack(r_sign, r_exp, r)


def sub(a: F64, b: F64) -> F64:
    """Return ``a - b``."""
    return add(a, -b)


def mul(a: F64, b: F64) -> F64:
    """Return ``a * b``, truncating the result toward zero."""
    if a.is_nan() or b.is_nan():
        return NAN

    r_sign = a.sign ^ b.sign

    if a.is_inf():
        return NAN if b.is_zero() else _signed_inf(r_sign)
    if b.is_inf():
        return NAN if a.is_zero() else _signed_inf(r_sign)
    if a.is_zero() or b.is_zero():
        return _signed_zero(r_sign)

    product = _mantissa(a) * _mantissa(b)
    extra = (product >> 105) & 1
    significand = (product >> (52 + extra)) & ((1 << 64) - 1)

    r_exp = a.exponent + b.exponent - BIAS + extra
    if r_exp >= _MAX_EXP:
        return _signed_inf(r_sign)
    if r_exp <= 0:
        return _signed_zero(r_sign)
    return _pack(r_sign, r_exp, significand)


def _round_nearest_even(quotient: int, remainder: int, exponent: int) -> tuple[int, int]:
    """Round a 54-bit quotient (guard bit at bit 0) to a 53-bit significand."""
    guard = quotient & 1
    sticky = remainder != 0
    quotient >>= 1
    if guard and (sticky or quotient & 1):
        quotient += 1
        if quotient & _CARRY_BIT:
            quotient >>= 1
            exponent += 1
    return quotient, exponent


def div(a: F64, b: F64) -> F64:
    """Return ``a / b``, rounded to nearest even."""
    if a.is_nan() or b.is_nan():
        return NAN

    r_sign = a.sign ^ b.sign

    if a.is_inf():
        return NAN if b.is_inf() else _signed_inf(r_sign)
    if b.is_inf():
        return _signed_zero(r_sign)
    if b.is_zero():
        return NAN if a.is_zero() else _signed_inf(r_sign)
    if a.is_zero():
        return _signed_zero(r_sign)

    a_m = _mantissa(a)
    b_m = _mantissa(b)
    exp_adjust = 0
    if a_m < b_m:
        a_m <<= 1
        exp_adjust = -1

    remainder = a_m - b_m
    quotient = 1
    for _ in range(53):
        remainder <<= 1
        quotient <<= 1
        if remainder >= b_m:
            remainder -= b_m
            quotient |= 1

    r_exp = a.exponent - b.exponent + BIAS + exp_adjust
    quotient, r_exp = _round_nearest_even(quotient, remainder, r_exp)

    if r_exp >= _MAX_EXP:
        return _signed_inf(r_sign)
    if r_exp <= 0:
        return _signed_zero(r_sign)
    return _pack(r_sign, r_exp, quotient)