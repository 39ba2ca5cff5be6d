"""Bit-level IEEE 754 binary64 values held as two 32-bit halves.

Classification, sign handling, NaN-unordered comparisons and the
conversions to and from ``float32``, ``int32`` and ``uint32``. Subnormal
inputs and outputs of the conversions are flushed to zero, and NaN
payloads are never preserved.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

__all__ = [
    "BIAS",
    "F64",
    "INF",
    "NAN",
    "NEG_INF",
    "NEG_ONE",
    "NEG_ZERO",
    "ONE",
    "ZERO",
    "top_bit",
]

BIAS = 1023

_U32_MASK = 0xFFFFFFFF
_SIGN_BIT = 0x80000000
_MHI_MASK = 0x000FFFFF
_IMPLICIT_ONE = 0x100000
_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1


def _check_u32(name: str, value: int) -> int:
    if not 0 <= value <= _U32_MASK:
        raise ValueError(f"{name} must fit in 32 unsigned bits, got {value!r}")
    return value


def top_bit(value: int) -> int:
    """Return the index (0..31) of the most significant set bit of a u32."""
    if not 0 < value <= _U32_MASK:
        raise ValueError(f"top_bit needs a non-zero 32-bit value, got {value!r}")
    return value.bit_length() - 1


@dataclass(frozen=True, eq=False, slots=True)
class F64:
    """A binary64 bit pattern: ``hi`` holds sign, exponent and top 20 mantissa bits."""

    lo: int = 0
    hi: int = 0

    def __post_init__(self) -> None:
        _check_u32("lo", self.lo)
        _check_u32("hi", self.hi)

    # --- construction -----------------------------------------------------

    @classmethod
    def pack(cls, sign: int, exponent: int, mhi20: int, mlo32: int) -> F64:
        """Assemble a value from its sign, biased exponent and mantissa halves."""
        hi = ((sign & 1) << 31) | ((exponent & 0x7FF) << 20) | (mhi20 & _MHI_MASK)
        return cls(mlo32 & _U32_MASK, hi)

    @classmethod
    def from_bits(cls, bits: int) -> F64:
        """Build from a 64-bit unsigned bit pattern."""
        if not 0 <= bits < (1 << 64):
            raise ValueError(f"bits must fit in 64 unsigned bits, got {bits!r}")
        return cls(bits & _U32_MASK, bits >> 32)

    @classmethod
    def from_float(cls, value: float) -> F64:
        """Take the exact bit pattern of a host double."""
        (bits,) = struct.unpack("<Q", struct.pack("<d", value))
        return cls.from_bits(bits)

    def to_bits(self) -> int:
        return (self.hi << 32) | self.lo

    def to_float(self) -> float:
        (value,) = struct.unpack("<d", struct.pack("<Q", self.to_bits()))
        return value

    # --- fields -----------------------------------------------------------

    @property
    def sign(self) -> int:
        return (self.hi >> 31) & 1

    @property
    def exponent(self) -> int:
        return (self.hi >> 20) & 0x7FF

    @property
    def mhi(self) -> int:
        return self.hi & _MHI_MASK

    # --- classification ---------------------------------------------------

    def is_zero(self) -> bool:
        return self.exponent == 0 and self.mhi == 0 and self.lo == 0

    def is_inf(self) -> bool:
        return self.exponent == 0x7FF and self.mhi == 0 and self.lo == 0

    def is_nan(self) -> bool:
        return self.exponent == 0x7FF and (self.mhi != 0 or self.lo != 0)

    def is_finite(self) -> bool:
        return self.exponent != 0x7FF

    # --- sign ops ---------------------------------------------------------

    def copysign(self, sign_source: F64) -> F64:
        """Return this magnitude with the sign of ``sign_source``."""
        return F64(self.lo, (self.hi & 0x7FFFFFFF) | (sign_source.hi & _SIGN_BIT))

    def __neg__(self) -> F64:
        return F64(self.lo, self.hi ^ _SIGN_BIT)

    def __abs__(self) -> F64:
        return F64(self.lo, self.hi & 0x7FFFFFFF)

    # --- comparisons (NaN-unordered) ---------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, F64):
            return NotImplemented
        if self.is_nan() or other.is_nan():
            return False
        if self.is_zero() and other.is_zero():
            return True
        return self.lo == other.lo and self.hi == other.hi

    def __ne__(self, other: object) -> bool:
        if not isinstance(other, F64):
            return NotImplemented
        if self.is_nan() or other.is_nan():
            return True
        if self.is_zero() and other.is_zero():
            return False
        return self.lo != other.lo or self.hi != other.hi

    def __hash__(self) -> int:
        if self.is_zero():
            return hash(0)
        return hash(self.to_bits())

    def __lt__(self, other: F64) -> bool:
        if not isinstance(other, F64):
            return NotImplemented
        if self.is_nan() or other.is_nan():
            return False
        if self.is_zero() and other.is_zero():
            return False
        if self.sign != other.sign:
            return self.sign > other.sign
        if self.sign == 0:
            return (self.hi, self.lo) < (other.hi, other.lo)
        return (self.hi, self.lo) > (other.hi, other.lo)

    def __le__(self, other: F64) -> bool:
        if not isinstance(other, F64):
            return NotImplemented
        return self < other or self == other

    def __gt__(self, other: F64) -> bool:
        if not isinstance(other, F64):
            return NotImplemented
        return other < self

    def __ge__(self, other: F64) -> bool:
        if not isinstance(other, F64):
            return NotImplemented
        return other <= self

    # --- f32 conversions --------------------------------------------------

    @classmethod
    def from_f32(cls, value: float) -> F64:
        """Widen a single-precision value; subnormals flush to signed zero."""
        (bits,) = struct.unpack("<I", struct.pack("<f", value))
        sign = bits >> 31
        exp32 = (bits >> 23) & 0xFF
        m32 = bits & 0x7FFFFF
        if exp32 == 0:
            return NEG_ZERO if sign else ZERO
        if exp32 == 0xFF:
            if m32 == 0:
                return NEG_INF if sign else INF
            return NAN
        return cls.pack(sign, exp32 - 127 + BIAS, m32 >> 3, (m32 & 0x7) << 29)

    def to_f32(self) -> float:
        """Narrow to single precision, truncating the mantissa."""
        sign = self.sign
        exp64 = self.exponent
        if exp64 == 0:
            bits = sign << 31
        elif exp64 == 0x7FF:
            if self.mhi == 0 and self.lo == 0:
                bits = (sign << 31) | 0x7F800000
            else:
                bits = 0x7FC00000
        else:
            e32 = exp64 - BIAS + 127
            if e32 >= 0xFF:
                bits = (sign << 31) | 0x7F800000
            elif e32 <= 0:
                bits = sign << 31
            else:
                m23 = ((self.mhi << 3) | (self.lo >> 29)) & 0x7FFFFF
                bits = (sign << 31) | (e32 << 23) | m23
        (value,) = struct.unpack("<f", struct.pack("<I", bits))
        return value

    # --- integer conversions ----------------------------------------------

    @classmethod
    def from_u32(cls, value: int) -> F64:
        _check_u32("value", value)
        if value == 0:
            return ZERO
        top = top_bit(value)
        mantissa = (value ^ (1 << top)) << (52 - top)
        return cls.pack(0, BIAS + top, (mantissa >> 32) & _MHI_MASK, mantissa & _U32_MASK)

    @classmethod
    def from_i32(cls, value: int) -> F64:
        if not _INT32_MIN <= value <= _INT32_MAX:
            raise ValueError(f"value must fit in 32 signed bits, got {value!r}")
        if value == 0:
            return ZERO
        result = cls.from_u32(abs(value))
        return -result if value < 0 else result

    def _integer_part(self, e: int) -> int:
        full_hi = self.mhi | _IMPLICIT_ONE
        shift = 52 - e
        if shift >= 32:
            return full_hi >> (shift - 32)
        return ((full_hi << (32 - shift)) & _U32_MASK) | (self.lo >> shift)

    def to_i32(self) -> int:
        """Truncate toward zero, saturating to the int32 range; NaN gives 0."""
        if self.is_nan() or self.exponent == 0:
            return 0
        e = self.exponent - BIAS
        if e < 0:
            return 0
        if e >= 31:
            return _INT32_MIN if self.sign else _INT32_MAX
        result = self._integer_part(e)
        return -result if self.sign else result

    def to_u32(self) -> int:
        """Truncate toward zero, saturating; negatives and NaN give 0."""
        if self.is_nan() or self.sign or self.exponent == 0:
            return 0
        e = self.exponent - BIAS
        if e < 0:
            return 0
        if e >= 32:
            return _U32_MASK
        return self._integer_part(e)


ZERO = F64(0, 0x00000000)
NEG_ZERO = F64(0, 0x80000000)
ONE = F64(0, 0x3FF00000)
NEG_ONE = F64(0, 0xBFF00000)
INF = F64(0, 0x7FF00000)
NEG_INF = F64(0, 0xFFF00000)
NAN = F64(0, 0x7FF80000)