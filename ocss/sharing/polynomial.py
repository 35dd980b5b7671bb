"""
Polynomials over GF(2^8)
========================

Coefficient index 0 is the constant term, which carries the secret byte
of a Shamir share-generating polynomial.

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

import secrets
from typing import Optional, Sequence

from ocss.sharing.field import FieldElement, gf_inv, gf_mul


class Polynomial:
    """
    Immutable polynomial with FieldElement coefficients.

    Usage:
        p = Polynomial.random(constant=FieldElement(42), degree=2)
        ys = [p.evaluate(FieldElement(x)) for x in (1, 2, 3)]
        q = Polynomial.interpolate(list(zip(alphas, ys)))
        assert q.constant_term() == FieldElement(42)
    """

    __slots__ = ("_coefficients",)

    def __init__(self, coefficients: Sequence[FieldElement]):
        if not coefficients:
            raise ValueError("A polynomial needs at least one coefficient")
        self._coefficients = tuple(coefficients)

    @classmethod
    def random(cls, constant: FieldElement, degree: int) -> "Polynomial":
        """Uniformly random coefficients above a fixed constant term."""
        if degree < 0:
            raise ValueError(f"Degree must be >= 0, got {degree}")
        coeffs = [constant] + [
            FieldElement(secrets.randbelow(256)) for _ in range(degree)
        ]
        return cls(coeffs)

    @classmethod
    def interpolate(
        cls, points: Sequence[tuple[FieldElement, FieldElement]]
    ) -> "Polynomial":
        """
        Lagrange interpolation: the unique polynomial of degree < len(points)
        through the given (x, y) pairs. The x values must be distinct.
        """
        if not points:
            raise ValueError("Cannot interpolate through zero points")
        n = len(points)
        result = [FieldElement.ZERO] * n

        for i, (xi, yi) in enumerate(points):
            # basis(x) = prod_{j != i} (x - xj), denom = prod_{j != i} (xi - xj)
            basis = [FieldElement.ONE]
            denom = FieldElement.ONE
            for j, (xj, _) in enumerate(points):
                if i == j:
                    continue
                basis = _mul_linear(basis, xj)
                denom = denom * (xi - xj)
            scale = yi / denom
            for k, c in enumerate(basis):
                result[k] = result[k] + scale * c

        return cls(result)

    @classmethod
    def decode(
        cls,
        points: Sequence[tuple[FieldElement, FieldElement]],
        degree: int,
    ) -> Optional["Polynomial"]:
        """
        Berlekamp-Welch decoding: the polynomial of degree <= ``degree``
        through all but at most (len(points) - degree - 1) // 2 of the
        points, or None when no such polynomial exists.

        Solves Q(x_i) = y_i * E(x_i) for a monic error locator E of degree
        e and Q of degree <= e + degree, then divides Q by E.
        """
        if len(points) <= degree:
            return None
        errors = (len(points) - degree - 1) // 2
        width = errors + degree + 1

        # Unknowns: q_0..q_{width-1}, then e_0..e_{errors-1}
        rows = []
        for x, y in points:
            powers = [1]
            for _ in range(width):
                powers.append(gf_mul(powers[-1], x.value))
            row = powers[:width] + [gf_mul(y.value, p) for p in powers[:errors]]
            row.append(gf_mul(y.value, powers[errors]))
            rows.append(row)

        solution = _solve(rows)
        if solution is None:
            return None
        q = solution[:width]
        locator = solution[width:] + [1]
        quotient, remainder = _divide(q, locator)
        if any(remainder):
            return None
        return cls([FieldElement(c) for c in quotient])

    @property
    def coefficients(self) -> tuple[FieldElement, ...]:
        return self._coefficients

    @property
    def degree(self) -> int:
        """Degree of the polynomial, ignoring leading zero coefficients."""
        for i in range(len(self._coefficients) - 1, 0, -1):
            if not self._coefficients[i].is_zero():
                return i
        return 0

    def constant_term(self) -> FieldElement:
        return self._coefficients[0]

    def evaluate(self, x: FieldElement) -> FieldElement:
        """Horner's method: sum(c_i * x^i)."""
        result = FieldElement.ZERO
        for coeff in reversed(self._coefficients):
            result = result * x + coeff
        return result

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Polynomial):
            return NotImplemented
        a, b = self._coefficients, other._coefficients
        width = max(len(a), len(b))
        pad = (FieldElement.ZERO,)
        return (a + pad * (width - len(a))) == (b + pad * (width - len(b)))

    def __hash__(self) -> int:
        return hash(self._coefficients[: self.degree + 1])

    def __repr__(self) -> str:
        return f"Polynomial({[c.value for c in self._coefficients]})"


def _mul_linear(
    coeffs: list[FieldElement], root: FieldElement
) -> list[FieldElement]:
    """Multiply a coefficient list by (x - root)."""
    out = [FieldElement.ZERO] * (len(coeffs) + 1)
    for k, c in enumerate(coeffs):
        out[k + 1] = out[k + 1] + c
        out[k] = out[k] - c * root
    return out


def _solve(rows: list[list[int]]) -> Optional[list[int]]:
    """
    Gauss-Jordan elimination of an augmented matrix over GF(2^8). Returns
    one solution with free variables set to zero, or None if inconsistent.
    """
    rows = [list(r) for r in rows]
    num_vars = len(rows[0]) - 1
    pivots: list[int] = []
    rank = 0
    for col in range(num_vars):
        if rank == len(rows):
            break
        pivot = next((i for i in range(rank, len(rows)) if rows[i][col]), None)
        if pivot is None:
            continue
        rows[rank], rows[pivot] = rows[pivot], rows[rank]
        inv = gf_inv(rows[rank][col])
        rows[rank] = [gf_mul(v, inv) for v in rows[rank]]
        for i, row in enumerate(rows):
            factor = row[col]
            if i != rank and factor:
                rows[i] = [a ^ gf_mul(factor, b) for a, b in zip(row, rows[rank])]
        pivots.append(col)
        rank += 1

    if any(row[-1] for row in rows[rank:]):
        return None
    solution = [0] * num_vars
    for row, col in zip(rows, pivots):
        solution[col] = row[-1]
    return solution


def _divide(
    numerator: list[int], divisor: list[int]
) -> tuple[list[int], list[int]]:
    """Long division by a monic divisor; returns (quotient, remainder)."""
    remainder = list(numerator)
    shift = len(divisor) - 1
    quotient = [0] * max(len(numerator) - shift, 1)
    for i in range(len(numerator) - 1, shift - 1, -1):
        coeff = remainder[i]
        if not coeff:
            continue
        quotient[i - shift] = coeff
        for j, d in enumerate(divisor):
            remainder[i - shift + j] ^= gf_mul(coeff, d)
    return quotient, remainder[:shift]
