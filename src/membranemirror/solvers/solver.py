"""
Membrane Equilibrium Solver
===========================
Deformation of the membrane under electrostatic load and its stability.

The deformation is expanded in J0 eigenmodes, w = sum c_n phi_n. Projecting
T lap(w) + P(r, w) = 0 onto the modes gives the Galerkin system

    K c = F(c),   K_n = T k_n^2 N_n,   F_n = int P(r, w) phi_n r dr

which is solved by Newton-Raphson with the Jacobian J = diag(K) - A, where
A_ij = int dP/dw phi_i phi_j r dr are the matrix elements. The equilibrium
is stable while J is positive definite; pull-in happens when its smallest
eigenvalue reaches zero.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np
import scipy as sp

from membranemirror.analysis.electrodes import Electrostatics
from membranemirror.analysis.matrix_elements import IntegrationMethod, MatrixElementIntegrator
from membranemirror.analysis.membrane import EigenfunctionExpansion, Membrane
from membranemirror.analysis.eigenmodes import EigenBasis
from membranemirror.utils import m_to_um

if TYPE_CHECKING:
    import numpy.typing as npt

    from membranemirror.model.state import SimulationParameters

logger = logging.getLogger(__name__)


class PullInError(RuntimeError):
    """The membrane touched an electrode during the equilibrium iteration."""


@dataclass
class StabilityResult:
    """
    Eigenvalues of the stiffness-normalised Jacobian.

    A value of 1.0 means no electrostatic softening of that mode, 0.0 means
    the mode has lost all stiffness (pull-in).
    """
    eigenvalues: npt.NDArray[np.float64]

    @property
    def margin(self) -> float:
        return float(np.min(self.eigenvalues))

    @property
    def stable(self) -> bool:
        return self.margin > 0.0


@dataclass
class DeformationResult:
    """
    Converged equilibrium of the membrane.
    """
    shape: EigenfunctionExpansion
    iterations: int
    residual_norm: float
    stability: StabilityResult
    voltage_a_V: float
    voltage_t_V: float
    electrode_deformation: npt.NDArray[np.float64] = field(default_factory=lambda: np.empty(0))

    @property
    def coefficients(self) -> npt.NDArray[np.float64]:
        return self.shape.coefficients

    @property
    def peak_deformation(self) -> float:
        """Largest |w| over the membrane, in metres."""
        r = np.linspace(0.0, self.shape.radius, 401)
        w = self.shape.deformation(r)
        return float(w[np.argmax(np.abs(w))])

    @property
    def stable(self) -> bool:
        return self.stability.stable


class Solver:
    """
    Newton-Raphson solver for the electrostatically loaded membrane.
    """

    def __init__(
        self,
        params: SimulationParameters,
        method: IntegrationMethod = IntegrationMethod.ADAPTIVE,
        tolerance: Optional[float] = None,
        max_iterations: int = 100,
    ) -> None:
        """
        Initialize the solver.

        Args:
            params: Simulation parameters (validated here).
            method: Integration scheme for loads and matrix elements.
            tolerance: Relative size of the Newton update at convergence,
                defaults to the fractional integration accuracy `eps`.
            max_iterations: Iteration limit.
        """
        self.params = params
        self.membrane = Membrane(params)
        self.electrostatics = Electrostatics(params)

        self.basis = EigenBasis(radius=params.radius_m, count=params.number_of_eigenfunctions, m=0)
        self.integrator = MatrixElementIntegrator(
            basis=self.basis,
            eps=params.eps,
            method=method,
            breakpoints=self.electrostatics.electrodes.breakpoints(),
        )

        self.tolerance = params.eps if tolerance is None else tolerance
        self.max_iterations = max_iterations

        # Diagonal modal stiffness of the membrane
        self.stiffness = self.membrane.tension * self.basis.wavenumbers**2 * self.basis.norms

    def _deformation_fn(self, c: npt.NDArray[np.float64]) -> Callable[[npt.NDArray[np.float64]], npt.NDArray[np.float64]]:
        basis = self.basis

        def w(r):
            return basis.evaluate(r) @ c

        return w

    def load_vector(self, c: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Modal electrostatic load F(c).
        """
        w = self._deformation_fn(c)
        return self.integrator.projection(lambda r: self.electrostatics.pressure(r, w(r)))

    def load_tangent(self, c: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """
        Matrix elements A(c) of the electrostatic stiffness.
        """
        w = self._deformation_fn(c)
        return self.integrator.matrix(lambda r: self.electrostatics.stiffness(r, w(r)))

    def _check_gap(self, c: npt.NDArray[np.float64]) -> None:
        r = np.linspace(0.0, self.basis.radius, 201)
        w = self.basis.evaluate(r) @ c
        if self.electrostatics.gap_closed(w):
            raise PullInError(f"Membrane touched an electrode (max |w| = {m_to_um(np.max(np.abs(w))):.3f} um) "
                              f"at V_A = {self.params.voltage_a_V:.3f} V.")

    def stability(self, c: npt.NDArray[np.float64]) -> StabilityResult:
        """
        Stability of the membrane at modal amplitudes c.
        """
        J = np.diag(self.stiffness) - self.load_tangent(c)
        s = 1.0 / np.sqrt(self.stiffness)
        eigenvalues = sp.linalg.eigvalsh(s[:, None] * J * s[None, :])
        return StabilityResult(eigenvalues=eigenvalues)

    def solve(self, callback: Optional[Callable[[int, float], None]] = None) -> DeformationResult:
        """
        Solve for the equilibrium deformation.

        Args:
            callback: Called after every iteration with (iteration, update norm).

        Raises:
            PullInError: If the membrane touches an electrode.
            RuntimeError: If Newton-Raphson does not converge.

        Returns:
            The converged deformation with its stability.
        """
        n = len(self.basis)
        c = np.zeros(n, dtype=np.float64)
        K = self.stiffness

        logger.info(f"Solving membrane equilibrium: V_A = {self.params.voltage_a_V:.3f} V, "
                    f"V_T = {self.params.voltage_t_V:.3f} V, {n} eigenfunctions, "
                    f"method = {self.integrator.method}")

        F = self.load_vector(c)
        R = K * c - F
        r_norm = float(np.linalg.norm(R, ord=np.inf))

        iteration = 0
        while r_norm > 0.0:
            if iteration == self.max_iterations:
                raise RuntimeError(f"Newton-Raphson did not converge after {iteration} iterations "
                                   f"at V_A = {self.params.voltage_a_V:.3f} V.")

            # solve J * delta = -R
            J = np.diag(K) - self.load_tangent(c)
            try:
                delta = sp.linalg.solve(J, -R, assume_a="sym")
            except (np.linalg.LinAlgError, ValueError) as e:
                raise RuntimeError(f"Singular Newton-Raphson system at iteration {iteration + 1}: {e}") from e
            c = c + delta
            iteration += 1

            if not np.all(np.isfinite(c)):
                raise RuntimeError(f"Newton-Raphson diverged at iteration {iteration}.")
            self._check_gap(c)

            F = self.load_vector(c)
            R = K * c - F
            r_norm = float(np.linalg.norm(R, ord=np.inf))

            d_norm = float(np.linalg.norm(delta, ord=np.inf))
            c_norm = float(np.linalg.norm(c, ord=np.inf))
            logger.debug(f"Iteration {iteration}: |delta| = {d_norm:.3e}, |c| = {c_norm:.3e}, |R| = {r_norm:.3e}")

            if callback is not None:
                callback(iteration, d_norm)

            if d_norm <= self.tolerance * max(c_norm, np.finfo(np.float64).tiny):
                break

        shape = EigenfunctionExpansion(self.basis, c)
        stability = self.stability(c)
        result = DeformationResult(
            shape=shape,
            iterations=iteration,
            residual_norm=r_norm,
            stability=stability,
            voltage_a_V=self.params.voltage_a_V,
            voltage_t_V=self.params.voltage_t_V,
            electrode_deformation=self.membrane.deformation_at_electrodes(shape),
        )

        logger.info(f"Converged after {iteration} iterations: peak = {m_to_um(result.peak_deformation):.4f} um, "
                    f"stability margin = {stability.margin:.4f}")
        return result


def find_pull_in_voltage(
    params: SimulationParameters,
    v_high: float,
    tolerance: float = 0.1,
    method: IntegrationMethod = IntegrationMethod.GAUSS,
    callback: Optional[Callable[[float, bool], None]] = None,
) -> float:
    """
    Bisect the array voltage for the onset of pull-in.

    The search starts from 0 V on the array, which must be stable. A voltage
    counts as unstable when the equilibrium iteration fails or the converged
    state is not stable. With per-ring voltages the ring pattern is kept and
    scaled so that its largest magnitude equals the trial voltage.

    Args:
        params: Parameters of the membrane; the array voltage is varied.
        v_high: A voltage above pull-in.
        tolerance: Width of the final voltage bracket in volts.
        method: Integration scheme.
        callback: Called with (voltage, stable) after every trial voltage.

    Raises:
        ValueError: If the membrane is unstable at 0 V, still stable at
            `v_high`, or all per-ring voltages are zero.

    Returns:
        Highest voltage found stable (within `tolerance` of pull-in).
    """
    pattern: Optional[npt.NDArray[np.float64]] = None
    if params.electrode_voltages_V is not None:
        ring_voltages = np.asarray(params.electrode_voltages_V, dtype=np.float64)
        v_max = float(np.max(np.abs(ring_voltages)))
        if v_max == 0.0:
            raise ValueError("All per-ring voltages are zero; the ring pattern cannot be scaled.")
        pattern = ring_voltages / v_max

    def is_stable(voltage: float) -> bool:
        rings = None if pattern is None else tuple(float(v) for v in voltage * pattern)
        trial = replace(params, voltage_a_V=voltage, electrode_voltages_V=rings)
        try:
            stable = Solver(trial, method=method).solve().stable
        except RuntimeError as e:
            logger.debug(f"V_A = {voltage:.3f} V unstable: {e}")
            stable = False
        if callback is not None:
            callback(voltage, stable)
        return stable

    v_low = 0.0
    if not is_stable(v_low):
        raise ValueError(f"Membrane is already unstable with 0 V on the array "
                         f"(V_T = {params.voltage_t_V:.3f} V).")
    if is_stable(v_high):
        raise ValueError(f"Membrane is still stable at {v_high:.3f} V; increase the upper voltage.")

    while v_high - v_low > tolerance:
        v_mid = 0.5 * (v_low + v_high)
        if is_stable(v_mid):
            v_low = v_mid
        else:
            v_high = v_mid

    logger.info(f"Pull-in voltage: {v_low:.3f} V < V_pull-in < {v_high:.3f} V")
    return v_low
