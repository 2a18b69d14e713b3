from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING

import numpy as np
import numba as nb

from membranemirror.config import EPSILON_0
from membranemirror.utils import um_to_m

if TYPE_CHECKING:
    import numpy.typing as npt

    from membranemirror.model.state import SimulationParameters

logger = logging.getLogger(__name__)


@nb.njit(cache=True, fastmath=True)
def _ring_voltages(
    r: npt.NDArray[np.float64],
    inner: npt.NDArray[np.float64],
    outer: npt.NDArray[np.float64],
    voltages: npt.NDArray[np.float64]
) -> npt.NDArray[np.float64]:
    """
    Voltage seen by the membrane at each radius.

    Args:
        r:        Radii in metres, shape (n,).
        inner:    Inner edge of each ring, shape (k,).
        outer:    Outer edge of each ring, shape (k,).
        voltages: Ring voltages, shape (k,).

    Returns:
        Voltage per radius (0.0 between rings), shape (n,).
    """
    n = r.size
    out = np.zeros(n, np.float64)
    for i in range(n):
        ri = abs(r[i])
        for k in range(inner.size):
            if inner[k] <= ri <= outer[k]:
                out[i] = voltages[k]
                break
    return out


@dataclass
class ElectrodeArray:
    """
    Concentric ring electrodes under the membrane.

    Ring k covers [k (w + s), k (w + s) + w]. With no rings the array is a
    single continuous electrode covering the whole membrane.
    """
    width: float           # m
    spacing: float         # m
    voltages: tuple[float, ...]
    radius: float          # membrane radius, m

    @classmethod
    def from_parameters(cls, params: SimulationParameters) -> ElectrodeArray:
        if params.num_electrodes == 0:
            return cls(width=params.radius_m, spacing=0.0, voltages=(params.voltage_a_V,), radius=params.radius_m)

        if params.electrode_voltages_V is not None:
            voltages = tuple(float(v) for v in params.electrode_voltages_V)
        else:
            voltages = (params.voltage_a_V,) * params.num_electrodes

        return cls(
            width=um_to_m(params.electrode_width_um),
            spacing=um_to_m(params.electrode_spacing_um),
            voltages=voltages,
            radius=params.radius_m,
        )

    @property
    def count(self) -> int:
        return len(self.voltages)

    def edges(self) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """Inner and outer ring edges in metres."""
        pitch = self.width + self.spacing
        inner = pitch * np.arange(self.count, dtype=np.float64)
        outer = np.minimum(inner + self.width, self.radius)
        return inner, outer

    def centers(self) -> npt.NDArray[np.float64]:
        """Radius of the middle of every ring (0.0 for the central disk)."""
        inner, outer = self.edges()
        centers = 0.5 * (inner + outer)
        centers[inner == 0.0] = 0.0
        return centers

    def breakpoints(self) -> list[float]:
        """Radii where the applied voltage jumps."""
        inner, outer = self.edges()
        points = {float(p) for p in np.concatenate((inner, outer)) if 0.0 < p < self.radius}
        return sorted(points)

    def voltage_at(self, r: float | npt.NDArray[np.float64]) -> float | npt.NDArray[np.float64]:
        inner, outer = self.edges()
        r_arr = np.atleast_1d(np.asarray(r, dtype=np.float64))
        vals = _ring_voltages(
            np.ascontiguousarray(r_arr.ravel()), inner, outer, np.asarray(self.voltages, dtype=np.float64)
        ).reshape(r_arr.shape)
        if np.ndim(r) == 0:
            return float(vals[0])
        return vals


class Electrostatics:
    """
    Electrostatic pressure acting on the membrane.

    The deformation w is positive toward the electrode array. The array pulls
    the membrane down across the gap d_A - w, the transparent electrode pulls
    it up across d_T + w.
    """
    def __init__(self, params: SimulationParameters) -> None:
        self.electrodes = ElectrodeArray.from_parameters(params)
        self.voltage_t = params.voltage_t_V
        self.dist_t = params.dist_t_m
        self.dist_a = params.dist_a_m

    def gap_closed(self, w: float | npt.NDArray[np.float64]) -> bool:
        """True if the membrane touches either electrode."""
        w_arr = np.asarray(w)
        return bool(np.any(w_arr >= self.dist_a) or np.any(w_arr <= -self.dist_t))

    def pressure(
        self,
        r: npt.NDArray[np.float64],
        w: npt.NDArray[np.float64]
    ) -> npt.NDArray[np.float64]:
        """
        Net electrostatic pressure in Pa.

        Args:
            r: Radii in metres.
            w: Membrane deformation at r in metres.
        """
        va = self.electrodes.voltage_at(r)
        gap_a = self.dist_a - w
        gap_t = self.dist_t + w
        return 0.5 * EPSILON_0 * (va * va / (gap_a * gap_a) - self.voltage_t**2 / (gap_t * gap_t))

    def stiffness(
        self,
        r: npt.NDArray[np.float64],
        w: npt.NDArray[np.float64]
    ) -> npt.NDArray[np.float64]:
        """
        Derivative of the pressure with respect to the deformation, in Pa/m.

        Both electrodes contribute a positive (destabilising) term.
        """
        va = self.electrodes.voltage_at(r)
        gap_a = self.dist_a - w
        gap_t = self.dist_t + w
        return EPSILON_0 * (va * va / gap_a**3 + self.voltage_t**2 / gap_t**3)
