from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import numpy as np
    import numpy.typing as npt

MICRONS_PER_METER = 1.0e6
MILLIMETERS_PER_METER = 1.0e3


def um_to_m(value: float | npt.NDArray[np.float64]) -> float | npt.NDArray[np.float64]:
    """Convert micrometres to metres."""
    return value / MICRONS_PER_METER

def m_to_um(value: float | npt.NDArray[np.float64]) -> float | npt.NDArray[np.float64]:
    """Convert metres to micrometres."""
    return value * MICRONS_PER_METER

def mm_to_m(value: float | npt.NDArray[np.float64]) -> float | npt.NDArray[np.float64]:
    """Convert millimetres to metres."""
    return value / MILLIMETERS_PER_METER
