"""
Matrix Element Integration
==========================
Radial integrals of products of membrane eigenmodes with a weight function.

    A_ij = int_0^a phi_i(r) phi_j(r) W(r) r dr

These are the entries of the linear system linking the electrostatic forcing
to the modal amplitudes. Two integration schemes are available: adaptive
quadrature to a fractional accuracy (one integral per element), and a
vectorised composite Gauss-Legendre rule (all elements at once).
"""
from __future__ import annotations

from enum import StrEnum
import logging
from typing import TYPE_CHECKING, Callable, Iterable

import numpy as np
import scipy as sp

from membranemirror.analysis.gauss import composite_gauss

if TYPE_CHECKING:
    import numpy.typing as npt

    from membranemirror.analysis.eigenmodes import EigenBasis

logger = logging.getLogger(__name__)

RadialFunction = Callable[["npt.NDArray[np.float64]"], "npt.NDArray[np.float64]"]


class IntegrationMethod(StrEnum):
    ADAPTIVE = "adaptive"
    GAUSS = "gauss"


class MatrixElementIntegrator:
    """
    Integrates weighted eigenmode products over the membrane radius.
    """
    def __init__(
        self,
        basis: EigenBasis,
        eps: float = 1e-6,
        method: IntegrationMethod = IntegrationMethod.ADAPTIVE,
        breakpoints: Iterable[float] = (),
        n_points: int = 8,
        n_intervals: int = 64,
    ) -> None:
        """
        Args:
            basis: Eigenmodes to integrate.
            eps: Fractional accuracy of the adaptive integration.
            method: Integration scheme.
            breakpoints: Radii where the weight function is discontinuous.
            n_points: Gauss points per sub-interval (GAUSS only).
            n_intervals: Number of sub-intervals (GAUSS only).
        """
        self.basis = basis
        self.eps = eps
        self.method = IntegrationMethod(method)
        self.breakpoints = sorted(p for p in set(breakpoints) if 0.0 < p < basis.radius)

        self._nodes: npt.NDArray[np.float64] | None = None
        self._weights: npt.NDArray[np.float64] | None = None
        self._phi: npt.NDArray[np.float64] | None = None

        if self.method == IntegrationMethod.GAUSS:
            self._nodes, self._weights = composite_gauss(
                0.0, basis.radius, n_points=n_points, n_intervals=n_intervals, breakpoints=self.breakpoints
            )
            # (n_nodes, count) mode values at the quadrature nodes
            self._phi = basis.evaluate(self._nodes)

    @property
    def radius(self) -> float:
        return self.basis.radius

    def integrand(self, i: int, j: int, weight: RadialFunction) -> RadialFunction:
        """
        The kernel phi_i(r) phi_j(r) W(r) r of element (i, j).
        """
        mode_i = self.basis[i]
        mode_j = self.basis[j]

        def kernel(r):
            return mode_i.radial(r) * mode_j.radial(r) * weight(r) * r

        return kernel

    def _quad(self, fn: Callable[[float], float], epsabs: float = 0.0) -> float:
        value, abserr = sp.integrate.quad(
            fn,
            0.0,
            self.radius,
            epsabs=epsabs,
            epsrel=self.eps,
            limit=200,
            points=self.breakpoints or None,
        )
        logger.debug(f"quad: value={value:.6e}, abserr={abserr:.2e}")
        return value

    def element(self, i: int, j: int, weight: RadialFunction, epsabs: float = 0.0) -> float:
        """
        Single matrix element A_ij.

        Args:
            i: Row mode index.
            j: Column mode index.
            weight: W(r), vectorised over radii in metres.
            epsabs: Absolute accuracy of the adaptive integration. Elements
                that vanish by orthogonality need one, as a fractional
                accuracy cannot be met for them.
        """
        if self.method == IntegrationMethod.GAUSS:
            w = self._weights * weight(self._nodes) * self._nodes
            return float(np.sum(w * self._phi[:, i] * self._phi[:, j]))

        kernel = self.integrand(i, j, weight)
        return self._quad(lambda r: float(kernel(np.array([r]))[0]), epsabs=epsabs)

    def matrix(self, weight: RadialFunction) -> npt.NDArray[np.float64]:
        """
        Full symmetric matrix A for the given weight function.

        Args:
            weight: W(r), vectorised over radii in metres.

        Returns:
            Matrix of shape (count, count).
        """
        n = len(self.basis)

        if self.method == IntegrationMethod.GAUSS:
            w = self._weights * weight(self._nodes) * self._nodes
            return self._phi.T @ (w[:, None] * self._phi)

        A = np.empty((n, n), dtype=np.float64)
        for i in range(n):
            A[i, i] = self.element(i, i, weight)

        # Off-diagonal accuracy is relative to the diagonal
        for i in range(n):
            for j in range(i + 1, n):
                scale = np.sqrt(abs(A[i, i] * A[j, j]))
                A[i, j] = self.element(i, j, weight, epsabs=self.eps * scale)
                A[j, i] = A[i, j]
        return A

    def projection(self, fn: RadialFunction) -> npt.NDArray[np.float64]:
        """
        Projections int_0^a fn(r) phi_i(r) r dr of a radial function.
        """
        if self.method == IntegrationMethod.GAUSS:
            w = self._weights * fn(self._nodes) * self._nodes
            return self._phi.T @ w

        samples = np.asarray(fn(np.linspace(0.0, self.radius, 65)), dtype=np.float64)
        epsabs = self.eps * self.radius**2 * float(np.max(np.abs(samples)))

        out = np.empty(len(self.basis), dtype=np.float64)
        for i, mode in enumerate(self.basis.modes):
            out[i] = self._quad(lambda r, mode=mode: float(fn(np.array([r]))[0]) * mode.radial(r) * r, epsabs=epsabs)
        return out

    @staticmethod
    def tabulate(
        fn: RadialFunction,
        r_low: float,
        r_high: float,
        num: int
    ) -> npt.NDArray[np.float64]:
        """
        Dump a radial function over [r_low, r_high] to the debug log.

        Returns:
            Array of shape (num, 2) with columns (r, fn(r)).
        """
        r = np.linspace(r_low, r_high, int(num))
        values = np.asarray(fn(r), dtype=np.float64)
        table = np.column_stack((r, values))
        for ri, vi in table:
            logger.debug(f"{ri:.6e}\t{vi:.6e}")
        return table
