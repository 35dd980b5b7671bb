"""
GF(2^8) Arithmetic — the byte-sized Galois field behind Shamir sharing
=======================================================================

Addition is XOR. Multiplication goes through exp/log tables built from
the generator 0x03 over the irreducible polynomial
x^8 + x^4 + x^3 + x + 1 (0x11b).

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

# Irreducible polynomial: x^8 + x^4 + x^3 + x + 1 (0x11b)
_GF_POLY = 0x11b
_GF_GENERATOR = 0x03

# Precomputed tables for GF(2^8) multiply and inverse
_EXP_TABLE = [0] * 512
_LOG_TABLE = [0] * 256


def _xtime(x: int) -> int:
    x <<= 1
    if x & 0x100:
        x ^= _GF_POLY
    return x


def _init_gf_tables() -> None:
    """Initialize GF(2^8) exp and log lookup tables."""
    x = 1
    for i in range(255):
        _EXP_TABLE[i] = x
        _LOG_TABLE[x] = i
        # x * 3 == x * 2 + x
        x = _xtime(x) ^ x
    # Fill upper half of exp table for convenience
    for i in range(255, 512):
        _EXP_TABLE[i] = _EXP_TABLE[i - 255]


_init_gf_tables()


def gf_mul(a: int, b: int) -> int:
    """Multiply two elements in GF(2^8)."""
    if a == 0 or b == 0:
        return 0
    return _EXP_TABLE[_LOG_TABLE[a] + _LOG_TABLE[b]]


def gf_inv(a: int) -> int:
    """Multiplicative inverse in GF(2^8)."""
    if a == 0:
        raise ZeroDivisionError("No inverse for 0 in GF(2^8)")
    return _EXP_TABLE[255 - _LOG_TABLE[a]]


@dataclass(frozen=True, order=True)
class FieldElement:
    """An immutable element of GF(2^8)."""

    value: int

    ZERO: ClassVar["FieldElement"]
    ONE: ClassVar["FieldElement"]

    def __post_init__(self):
        if not 0 <= self.value <= 0xFF:
            raise ValueError(f"GF(2^8) element out of range: {self.value}")

    @classmethod
    def create(cls, value: int) -> "FieldElement":
        return cls(value)

    def add(self, other: "FieldElement") -> "FieldElement":
        return FieldElement(self.value ^ other.value)

    # Characteristic 2: subtraction and addition coincide
    subtract = add

    def multiply(self, other: "FieldElement") -> "FieldElement":
        return FieldElement(gf_mul(self.value, other.value))

    def mod_inverse(self) -> "FieldElement":
        """Raises ZeroDivisionError for ZERO."""
        return FieldElement(gf_inv(self.value))

    def divide(self, other: "FieldElement") -> "FieldElement":
        return self.multiply(other.mod_inverse())

    def is_zero(self) -> bool:
        return self.value == 0

    __add__ = add
    __sub__ = add
    __mul__ = multiply
    __truediv__ = divide

    def __int__(self) -> int:
        return self.value

    def __repr__(self) -> str:
        return f"FieldElement(0x{self.value:02x})"


FieldElement.ZERO = FieldElement(0)
FieldElement.ONE = FieldElement(1)


def elements_from_bytes(data: bytes) -> list[FieldElement]:
    return [FieldElement(b) for b in data]


def elements_to_bytes(elements: list[FieldElement]) -> bytes:
    return bytes(e.value for e in elements)
