from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import TYPE_CHECKING, Callable

import numpy as np
import scipy as sp
import matplotlib.pyplot as plt

from membranemirror.analysis.eigenmodes import EigenBasis
from membranemirror.analysis.electrodes import ElectrodeArray
from membranemirror.analysis.matrix_elements import MatrixElementIntegrator
from membranemirror.utils import m_to_um

if TYPE_CHECKING:
    import numpy.typing as npt

    from membranemirror.model.state import SimulationParameters

logger = logging.getLogger(__name__)


class MembraneShape(ABC):
    """
    Abstract base class for axisymmetric membrane shapes.

    All lengths are in metres. The azimuth is accepted for a uniform
    interface but does not change the result.
    """
    NAME: str = "Membrane"

    def __init__(self, radius: float) -> None:
        self.radius = radius

    @abstractmethod
    def deformation(
        self,
        r: float | npt.NDArray[np.float64],
        phi: float | npt.NDArray[np.float64] = 0.0
    ) -> float | npt.NDArray[np.float64]:
        """
        Get the deformation at given polar coordinates.

        Args:
            r: Radius in metres.
            phi: Azimuth in radians.

        Returns:
            Deformation in metres, zero outside the membrane.
        """
        pass

    @abstractmethod
    def laplacian(
        self,
        r: float | npt.NDArray[np.float64],
        phi: float | npt.NDArray[np.float64] = 0.0
    ) -> float | npt.NDArray[np.float64]:
        """
        Get the Laplacian of the deformation (1/m).
        """
        pass

    def peak(self) -> float:
        """Deformation at the membrane centre."""
        return float(self.deformation(0.0))

    def plot(self, num: int = 200) -> None:
        """
        Plot the radial deformation profile.
        """
        r = np.linspace(0.0, self.radius, num)
        w = self.deformation(r)

        plt.rcParams["figure.constrained_layout.use"] = True
        fig = plt.figure(figsize=(7, 5))

        plt.plot(r * 1e3, m_to_um(w), 'b', lw=2)

        plt.grid(visible=True, which='major', axis='both', linestyle='-', color='gray', lw=0.5)
        plt.minorticks_on()
        plt.grid(visible=True, which='minor', axis='both', linestyle=':', color='gray', lw=0.5)

        plt.title(f"{self.NAME} Deformation")
        plt.xlabel("Radius (mm)")
        plt.ylabel("Deformation (µm)")

        plt.xlim(0.0, self.radius * 1e3)
        plt.show()


class ParabolicShape(MembraneShape):
    """
    Closed-form shape of a membrane under uniform pressure.
    """
    NAME = "Parabolic"

    def __init__(self, peak: float, radius: float) -> None:
        super().__init__(radius)
        self.peak_deformation = peak

    def deformation(
        self,
        r: float | npt.NDArray[np.float64],
        phi: float | npt.NDArray[np.float64] = 0.0
    ) -> float | npt.NDArray[np.float64]:
        r_arr = np.asarray(r, dtype=np.float64)
        rho = r_arr / self.radius
        w = np.where(np.abs(rho) <= 1.0, self.peak_deformation * (1.0 - rho * rho), 0.0)
        if np.ndim(r) == 0:
            return float(w)
        return w

    def laplacian(
        self,
        r: float | npt.NDArray[np.float64],
        phi: float | npt.NDArray[np.float64] = 0.0
    ) -> float | npt.NDArray[np.float64]:
        r_arr = np.asarray(r, dtype=np.float64)
        lap = np.where(np.abs(r_arr) <= self.radius, -4.0 * self.peak_deformation / self.radius**2, 0.0)
        if np.ndim(r) == 0:
            return float(lap)
        return lap


class EigenfunctionExpansion(MembraneShape):
    """
    Membrane shape expanded in clamped-membrane eigenmodes.
    """
    NAME = "Bessel Expansion"

    def __init__(self, basis: EigenBasis, coefficients: npt.NDArray[np.float64]) -> None:
        super().__init__(basis.radius)
        coefficients = np.asarray(coefficients, dtype=np.float64)
        if coefficients.shape != (len(basis),):
            raise ValueError(f"Expected {len(basis)} coefficients, got shape {coefficients.shape}.")
        self.basis = basis
        self.coefficients = coefficients

    @classmethod
    def from_parabolic(cls, peak: float, radius: float, count: int) -> EigenfunctionExpansion:
        """
        Expansion of w0 (1 - r^2/a^2) in J0 modes.

        The coefficients follow from the Bessel-J-zero identity
        1 - x^2 = sum_n 8 J0(alpha_n x) / (alpha_n^3 J1(alpha_n)).
        """
        basis = EigenBasis(radius=radius, count=count, m=0)
        alphas = basis.alphas
        coefficients = 8.0 * peak / (alphas**3 * sp.special.j1(alphas))
        return cls(basis, coefficients)

    @classmethod
    def from_function(
        cls,
        fn: Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]],
        integrator: MatrixElementIntegrator
    ) -> EigenfunctionExpansion:
        """
        Project an arbitrary radial profile onto the basis by quadrature.
        """
        basis = integrator.basis
        coefficients = integrator.projection(fn) / basis.norms
        return cls(basis, coefficients)

    def _modes(self, r: float | npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        return self.basis.evaluate(np.ravel(np.asarray(r, dtype=np.float64)))

    def deformation(
        self,
        r: float | npt.NDArray[np.float64],
        phi: float | npt.NDArray[np.float64] = 0.0
    ) -> float | npt.NDArray[np.float64]:
        w = self._modes(r) @ self.coefficients
        if np.ndim(r) == 0:
            return float(w[0])
        return w.reshape(np.shape(r))

    def laplacian(
        self,
        r: float | npt.NDArray[np.float64],
        phi: float | npt.NDArray[np.float64] = 0.0
    ) -> float | npt.NDArray[np.float64]:
        lap = -(self._modes(r) @ (self.coefficients * self.basis.wavenumbers**2))
        if np.ndim(r) == 0:
            return float(lap[0])
        return lap.reshape(np.shape(r))


class Membrane:
    """
    Clamped circular membrane described by a set of simulation parameters.
    """
    def __init__(self, params: SimulationParameters) -> None:
        params.validate()
        self.params = params
        self.radius = params.radius_m
        self.tension = params.membrane_tension_N_per_m
        self.electrodes = ElectrodeArray.from_parameters(params)

    def parabolic_shape(self) -> ParabolicShape:
        return ParabolicShape(peak=self.params.peak_deformation_m, radius=self.radius)

    def expansion_shape(self) -> EigenfunctionExpansion:
        return EigenfunctionExpansion.from_parabolic(
            peak=self.params.peak_deformation_m,
            radius=self.radius,
            count=self.params.number_of_eigenfunctions,
        )

    def uniform_pressure_peak(self, pressure: float) -> float:
        """Centre deflection of the membrane under uniform pressure: P a^2 / 4T."""
        return pressure * self.radius**2 / (4.0 * self.tension)

    def compare_expansion(self, r_low: float, r_high: float, num: int) -> npt.NDArray[np.float64]:
        """
        Tabulate the parabolic shape against its Bessel expansion.

        Args:
            r_low: First radius in metres.
            r_high: Last radius in metres.
            num: Number of radii.

        Returns:
            Array of shape (num, 4): r, parabolic, expansion, difference.
        """
        parabolic = self.parabolic_shape()
        expansion = self.expansion_shape()

        r = np.linspace(r_low, r_high, int(num))
        w_p = parabolic.deformation(r)
        w_e = expansion.deformation(r)
        table = np.column_stack((r, w_p, w_e, w_e - w_p))

        logger.info(f"Expansion with {self.params.number_of_eigenfunctions} eigenfunctions: "
                    f"max |error| = {m_to_um(np.max(np.abs(w_e - w_p))):.3e} um")
        for row in table:
            logger.debug("r = %.4e m, parabolic = %.6e m, expansion = %.6e m, diff = %.3e m", *row)
        return table

    def deformation_at_electrodes(self, shape: MembraneShape) -> npt.NDArray[np.float64]:
        """
        Deformation (m) at the centre of every electrode ring.
        """
        centers = self.electrodes.centers()
        w = np.atleast_1d(shape.deformation(centers))
        for k, (rc, wk) in enumerate(zip(centers, w)):
            logger.info(f"Electrode {k + 1}: r = {rc * 1e3:.3f} mm, w = {m_to_um(wk):.4f} um")
        return w
