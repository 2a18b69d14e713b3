"""
Clamped circular membrane eigenmodes.

The modes of a membrane of radius a, fixed at its rim, are
J_m(alpha_mn r / a) cos(m phi), where alpha_mn is the n-th positive zero
of the Bessel function J_m.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING

import numpy as np
import scipy as sp

if TYPE_CHECKING:
    import numpy.typing as npt


def bessel_zeros(m: int, count: int) -> npt.NDArray[np.float64]:
    """
    First `count` positive zeros of J_m.

    Raises:
        ValueError: If `m` is negative or `count` smaller than 1.
    """
    if m < 0:
        raise ValueError(f"Bessel order must be non-negative, got {m}.")
    if count < 1:
        raise ValueError(f"At least one zero must be requested, got {count}.")
    return np.asarray(sp.special.jn_zeros(m, count), dtype=np.float64)


@dataclass(frozen=True)
class EigenMode:
    """
    A single membrane eigenmode.

    Attributes:
        m: Azimuthal order.
        n: Radial index (1 = fundamental).
        alpha: n-th zero of J_m.
        radius: Membrane radius in metres.
    """
    m: int
    n: int
    alpha: float
    radius: float

    @property
    def wavenumber(self) -> float:
        return self.alpha / self.radius

    @property
    def norm(self) -> float:
        """Integral of J_m(k r)^2 r dr over [0, a]."""
        return 0.5 * self.radius**2 * sp.special.jv(self.m + 1, self.alpha)**2

    def radial(self, r: float | npt.NDArray[np.float64]) -> float | npt.NDArray[np.float64]:
        r_arr = np.asarray(r, dtype=np.float64)
        vals = np.where(np.abs(r_arr) <= self.radius, sp.special.jv(self.m, self.wavenumber * r_arr), 0.0)
        if np.ndim(r) == 0:
            return float(vals)
        return vals

    def value(
        self,
        r: float | npt.NDArray[np.float64],
        phi: float | npt.NDArray[np.float64] = 0.0
    ) -> float | npt.NDArray[np.float64]:
        """Mode shape at polar coordinates (r in metres, phi in radians)."""
        return self.radial(r) * np.cos(self.m * np.asarray(phi))

    def laplacian(
        self,
        r: float | npt.NDArray[np.float64],
        phi: float | npt.NDArray[np.float64] = 0.0
    ) -> float | npt.NDArray[np.float64]:
        """The mode is an eigenfunction of the Laplacian with eigenvalue -k^2."""
        return -self.wavenumber**2 * self.value(r, phi)


class EigenBasis:
    """
    The first `count` eigenmodes of azimuthal order `m`.
    """
    def __init__(self, radius: float, count: int, m: int = 0) -> None:
        if radius <= 0.0:
            raise ValueError(f"Membrane radius must be positive, got {radius}.")

        self.radius = radius
        self.count = count
        self.m = m

        alphas = bessel_zeros(m, count)
        self.modes: list[EigenMode] = [
            EigenMode(m=m, n=i + 1, alpha=float(alpha), radius=radius)
            for i, alpha in enumerate(alphas)
        ]

    def __len__(self) -> int:
        return self.count

    def __getitem__(self, index: int) -> EigenMode:
        return self.modes[index]

    @cached_property
    def alphas(self) -> npt.NDArray[np.float64]:
        return np.array([mode.alpha for mode in self.modes])

    @cached_property
    def wavenumbers(self) -> npt.NDArray[np.float64]:
        return self.alphas / self.radius

    @cached_property
    def norms(self) -> npt.NDArray[np.float64]:
        return np.array([mode.norm for mode in self.modes])

    def evaluate(self, r: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Radial parts of all modes.

        Args:
            r: Radii in metres, shape (n,).

        Returns:
            Matrix of shape (n, count).
        """
        r_arr = np.atleast_1d(np.asarray(r, dtype=np.float64))
        vals = sp.special.jv(self.m, np.outer(r_arr, self.wavenumbers))
        vals[np.abs(r_arr) > self.radius, :] = 0.0
        return vals
