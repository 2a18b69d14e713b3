"""
Zernike polynomial evaluation.

Convention: Z_n^m = R_n^|m|(rho) cos(m theta) for m >= 0 and
R_n^|m|(rho) sin(|m| theta) for m < 0, on the unit disk. Coefficients are
in micrometres of wavefront.
"""
from __future__ import annotations

from enum import StrEnum
import logging
from math import factorial
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np
import numba as nb

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


class ZernikeOrdering(StrEnum):
    FRINGE = "fringe"   # University of Arizona / Zemax Fringe, Z1..Z37
    NOLL = "noll"       # 1-based
    ANSI = "ansi"       # OSA/ANSI, 0-based


# Classical names of the low-order terms
TERM_NAMES: dict[tuple[int, int], str] = {
    (0, 0): "Piston",
    (1, 1): "Tilt X",
    (1, -1): "Tilt Y",
    (2, 0): "Defocus",
    (2, 2): "Astigmatism 0°",
    (2, -2): "Astigmatism 45°",
    (3, 1): "Coma X",
    (3, -1): "Coma Y",
    (4, 0): "Primary Spherical",
    (3, 3): "Trefoil X",
    (3, -3): "Trefoil Y",
    (6, 0): "Secondary Spherical",
}


def index_to_nm(j: int, ordering: ZernikeOrdering = ZernikeOrdering.FRINGE) -> tuple[int, int]:
    """
    Convert a single Zernike index to (n, m).

    Args:
        j: Term index (1-based for FRINGE and NOLL, 0-based for ANSI).
        ordering: Index convention.

    Raises:
        ValueError: If the index is out of range for the ordering.

    Returns:
        Radial degree n and signed azimuthal frequency m.
    """
    ordering = ZernikeOrdering(ordering)

    if ordering == ZernikeOrdering.ANSI:
        if j < 0:
            raise ValueError(f"ANSI index must be >= 0, got {j}.")
        n = 0
        while (n + 1) * (n + 2) // 2 <= j:
            n += 1
        return n, 2 * j - n * (n + 2)

    if j < 1:
        raise ValueError(f"{ordering.value} index must be >= 1, got {j}.")

    if ordering == ZernikeOrdering.NOLL:
        n = 0
        while (n + 1) * (n + 2) // 2 < j:
            n += 1
        p = j - n * (n + 1) // 2
        k = n % 2
        m = ((p + k) // 2) * 2 - k
        if m != 0 and j % 2 == 1:
            m = -m
        return n, m

    # FRINGE: terms are grouped by d = (n + |m|) / 2, group d spans d^2+1 .. (d+1)^2
    if j == 37:
        return 12, 0
    if j > 37:
        raise ValueError(f"Fringe index must be <= 37, got {j}.")
    d = int(np.sqrt(j - 1))
    while (d + 1) ** 2 < j:
        d += 1
    while d * d >= j:
        d -= 1
    p = j - d * d - 1
    m_abs = d - p // 2
    n = 2 * d - m_abs
    if m_abs != 0 and p % 2 == 1:
        return n, -m_abs
    return n, m_abs


def _radial_coefficients(n: int, m: int) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.int64]]:
    m_abs = abs(m)
    ks = range((n - m_abs) // 2 + 1)
    coeffs = np.array([
        (-1) ** k * factorial(n - k)
        / (factorial(k) * factorial((n + m_abs) // 2 - k) * factorial((n - m_abs) // 2 - k))
        for k in ks
    ], dtype=np.float64)
    powers = np.array([n - 2 * k for k in ks], dtype=np.int64)
    return coeffs, powers


@nb.njit(cache=True, fastmath=True)
def _radial_kernel(
    rho: npt.NDArray[np.float64],
    coeffs: npt.NDArray[np.float64],
    powers: npt.NDArray[np.int64]
) -> npt.NDArray[np.float64]:
    """
    Evaluate sum_k coeffs[k] rho^powers[k] for every rho.
    """
    out = np.empty(rho.size, np.float64)
    for i in range(rho.size):
        acc = 0.0
        for k in range(coeffs.size):
            acc += coeffs[k] * rho[i] ** powers[k]
        out[i] = acc
    return out


def radial_polynomial(
    n: int,
    m: int,
    rho: float | npt.NDArray[np.float64]
) -> float | npt.NDArray[np.float64]:
    """
    Radial Zernike polynomial R_n^|m|(rho).

    Raises:
        ValueError: If n < 0 or |m| > n.
    """
    if n < 0 or abs(m) > n:
        raise ValueError(f"Invalid Zernike indices (n={n}, m={m}).")

    rho_arr = np.atleast_1d(np.asarray(rho, dtype=np.float64))
    if (n - abs(m)) % 2:
        vals = np.zeros_like(rho_arr)
    else:
        coeffs, powers = _radial_coefficients(n, m)
        vals = _radial_kernel(rho_arr.ravel(), coeffs, powers).reshape(rho_arr.shape)

    if np.ndim(rho) == 0:
        return float(vals[0])
    return vals


def normalization(n: int, m: int) -> float:
    """Noll normalisation: unit RMS over the unit disk."""
    return float(np.sqrt(n + 1) if m == 0 else np.sqrt(2 * (n + 1)))


def zernike(
    n: int,
    m: int,
    rho: float | npt.NDArray[np.float64],
    theta: float | npt.NDArray[np.float64],
    normalized: bool = False
) -> float | npt.NDArray[np.float64]:
    """
    Zernike polynomial Z_n^m at polar coordinates on the unit disk.
    """
    radial = radial_polynomial(n, m, rho)
    if m > 0:
        value = radial * np.cos(m * np.asarray(theta))
    elif m < 0:
        value = radial * np.sin(-m * np.asarray(theta))
    else:
        value = radial * np.ones_like(np.asarray(theta, dtype=np.float64))
    if normalized:
        value = value * normalization(n, m)
    return value


class ZernikePolynomial:
    """
    A Zernike expansion over a circular aperture.
    """
    def __init__(
        self,
        coefficients: Sequence[float] | npt.NDArray[np.float64],
        ordering: ZernikeOrdering = ZernikeOrdering.FRINGE,
        radius: float = 1.0,
        normalized: bool = False,
    ) -> None:
        """
        Args:
            coefficients: One coefficient per term, in index order.
            ordering: Index convention of the coefficients.
            radius: Aperture radius (same unit as the evaluation radius).
            normalized: Use Noll-normalised polynomials.
        """
        if radius <= 0.0:
            raise ValueError(f"Aperture radius must be positive, got {radius}.")

        self.ordering = ZernikeOrdering(ordering)
        self.radius = radius
        self.normalized = normalized
        self.set_coefficients(coefficients)

    @property
    def first_index(self) -> int:
        return 0 if self.ordering == ZernikeOrdering.ANSI else 1

    def set_coefficients(self, coefficients: Sequence[float] | npt.NDArray[np.float64]) -> None:
        coefficients = np.asarray(coefficients, dtype=np.float64).ravel()
        self.indices: list[tuple[int, int]] = [
            index_to_nm(j + self.first_index, self.ordering) for j in range(coefficients.size)
        ]
        self.coefficients = coefficients

    def __len__(self) -> int:
        return self.coefficients.size

    def term_names(self) -> list[str]:
        return [TERM_NAMES.get(nm, f"Z(n={nm[0]}, m={nm[1]})") for nm in self.indices]

    def evaluate(
        self,
        r: float | npt.NDArray[np.float64],
        theta: Optional[float | npt.NDArray[np.float64]] = None
    ) -> float | npt.NDArray[np.float64]:
        """
        Evaluate the expansion.

        Without `theta` only the rotationally symmetric terms (m == 0)
        contribute. Points outside the aperture evaluate to NaN.

        Args:
            r: Radius.
            theta: Azimuth in radians.
        """
        rho = np.asarray(r, dtype=np.float64) / self.radius
        if theta is None:
            total = np.zeros_like(rho)
            for c, (n, m) in zip(self.coefficients, self.indices):
                if m == 0 and c != 0.0:
                    total = total + c * zernike(n, m, rho, 0.0, self.normalized)
        else:
            rho, theta_arr = np.broadcast_arrays(rho, np.asarray(theta, dtype=np.float64))
            total = np.zeros_like(rho)
            for c, (n, m) in zip(self.coefficients, self.indices):
                if c != 0.0:
                    total = total + c * zernike(n, m, rho, theta_arr, self.normalized)

        total = np.where(np.abs(rho) <= 1.0, total, np.nan)
        if total.ndim == 0:
            return float(total)
        return total


class ZOffsetZernikePolynomial(ZernikePolynomial):
    """
    Zernike expansion shifted along the optical axis by a constant offset.
    """
    def __init__(self, *args, offset_um: float = 0.0, **kwds) -> None:
        super().__init__(*args, **kwds)
        self.offset_um = offset_um

    def set_offset(self, offset_um: float) -> None:
        self.offset_um = offset_um

    def evaluate(
        self,
        r: float | npt.NDArray[np.float64],
        theta: Optional[float | npt.NDArray[np.float64]] = None
    ) -> float | npt.NDArray[np.float64]:
        return super().evaluate(r, theta) + self.offset_um
