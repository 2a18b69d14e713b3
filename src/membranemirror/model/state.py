"""
Project State (Data Model)
==========================
This module defines the central data structures for a simulation session.

Why is this file needed?
------------------------
1. Parameters: The membrane, electrode and accuracy constants live in one
   explicit dataclass which is passed to every numerical routine.
2. Persistence: ProjectState is what gets serialized when saving a project.
3. Editing: Parameter edits are validated as a whole and either applied
   completely or rejected.

Classes:
    SimulationParameters: Physical and numerical constants of a run.
    ProjectState: The main container class.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict, replace
import logging
from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING

import numpy as np

from membranemirror.config import NUMBER_OF_ZERNIKES
from membranemirror.utils import mm_to_m, um_to_m

if TYPE_CHECKING:
    import numpy.typing as npt

    from membranemirror.solvers.solver import DeformationResult

logger = logging.getLogger(__name__)


@dataclass
class SimulationParameters:
    """
    Physical constants of the membrane mirror and the accuracy settings
    of the numerical model. Units are encoded in the field names.
    """
    membrane_stress_MPa: float = 100.0
    membrane_thickness_um: float = 0.5
    membrane_radius_mm: float = 7.5

    voltage_t_V: float = 0.0     # transparent electrode voltage
    voltage_a_V: float = 150.0   # electrode array voltage
    dist_t_um: float = 300.0     # transparent electrode -- membrane distance
    dist_a_um: float = 70.0      # electrode array -- membrane distance

    peak_deformation_um: float = 5.0

    eps: float = 1e-6            # fractional accuracy of integration
    number_of_eigenfunctions: int = 20

    electrode_width_um: float = 1000.0
    electrode_spacing_um: float = 50.0
    num_electrodes: int = 0
    electrode_voltages_V: Optional[tuple[float, ...]] = None

    @property
    def membrane_tension_N_per_m(self) -> float:
        """Tension = stress * thickness (MPa * um == N/m)."""
        return self.membrane_stress_MPa * self.membrane_thickness_um

    @property
    def radius_m(self) -> float:
        return mm_to_m(self.membrane_radius_mm)

    @property
    def dist_t_m(self) -> float:
        return um_to_m(self.dist_t_um)

    @property
    def dist_a_m(self) -> float:
        return um_to_m(self.dist_a_um)

    @property
    def peak_deformation_m(self) -> float:
        return um_to_m(self.peak_deformation_um)

    def validate(self) -> None:
        """
        Check the parameters for physical consistency.

        Raises:
            ValueError: If any parameter is out of its valid range.
        """
        positive = {
            "membrane_stress_MPa": self.membrane_stress_MPa,
            "membrane_thickness_um": self.membrane_thickness_um,
            "membrane_radius_mm": self.membrane_radius_mm,
            "dist_t_um": self.dist_t_um,
            "dist_a_um": self.dist_a_um,
            "eps": self.eps,
        }
        for name, value in positive.items():
            if not np.isfinite(value) or value <= 0.0:
                raise ValueError(f"'{name}' must be positive, got {value}.")

        if self.number_of_eigenfunctions < 1:
            raise ValueError(f"'number_of_eigenfunctions' must be at least 1, "
                             f"got {self.number_of_eigenfunctions}.")

        if self.num_electrodes < 0:
            raise ValueError(f"'num_electrodes' must not be negative, got {self.num_electrodes}.")

        if self.num_electrodes > 0:
            if self.electrode_width_um <= 0.0 or self.electrode_spacing_um < 0.0:
                raise ValueError("Electrode width must be positive and spacing non-negative.")

            outer_edge_um = (self.num_electrodes * self.electrode_width_um
                             + (self.num_electrodes - 1) * self.electrode_spacing_um)
            if outer_edge_um > self.membrane_radius_mm * 1000.0:
                raise ValueError(f"Electrode array ({outer_edge_um:.1f} um) exceeds the membrane "
                                 f"radius ({self.membrane_radius_mm * 1000.0:.1f} um).")

        if self.electrode_voltages_V is not None:
            if len(self.electrode_voltages_V) != self.num_electrodes:
                raise ValueError(f"Expected {self.num_electrodes} electrode voltages, "
                                 f"got {len(self.electrode_voltages_V)}.")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> SimulationParameters:
        """Build parameters from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(SimulationParameters)}
        values = {key: val for key, val in data.items() if key in known}
        voltages = values.get("electrode_voltages_V")
        if voltages is not None:
            values["electrode_voltages_V"] = tuple(float(v) for v in voltages)
        return SimulationParameters(**values)


# Fields exposed by the membrane editing operation
MEMBRANE_FIELDS: tuple[str, ...] = (
    "membrane_stress_MPa",
    "membrane_thickness_um",
    "dist_a_um",
    "voltage_t_V",
    "dist_t_um",
)


@dataclass
class ProjectState:
    """
    Holds the entire state of an open simulation project.
    Pass this instance to the IO manager and the command-line runner.
    """
    project_name: str = "Untitled Project"
    filepath: Optional[str] = None

    parameters: SimulationParameters = field(default_factory=SimulationParameters)

    zernike_coefficients: npt.NDArray[np.float64] = field(
        default_factory=lambda: np.zeros(NUMBER_OF_ZERNIKES)
    )
    coefficient_source: Optional[str] = None

    result: Optional[DeformationResult] = None

    def reset(self) -> None:
        """Clear all data for a new project"""
        self.project_name = "Untitled Project"
        self.filepath = None
        self.parameters = SimulationParameters()
        self.zernike_coefficients = np.zeros(NUMBER_OF_ZERNIKES)
        self.coefficient_source = None
        self.result = None
        logger.info("Project state has been reset.")

    def edit_membrane(self, values: Mapping[str, str | float]) -> bool:
        """
        Apply edited membrane parameters.

        Text values are converted to float. The edit is all-or-nothing: on any
        failure the current parameters are kept and False is returned.

        Args:
            values: Mapping of parameter field name to new value.

        Returns:
            True if the edit was accepted.
        """
        known = {f.name for f in fields(SimulationParameters)}
        try:
            changes: Dict[str, Any] = {}
            for name, raw in values.items():
                if name not in known:
                    raise ValueError(f"Unknown parameter '{name}'.")
                if isinstance(raw, str):
                    raw = raw.strip().replace(",", ".")
                if name in ("number_of_eigenfunctions", "num_electrodes"):
                    changes[name] = int(raw)
                elif name == "electrode_voltages_V":
                    changes[name] = None if raw is None else tuple(float(v) for v in raw)
                else:
                    changes[name] = float(raw)

            candidate = replace(self.parameters, **changes)
            candidate.validate()
        except (ValueError, TypeError) as e:
            logger.warning(f"Membrane parameters rejected: {e}")
            return False

        self.parameters = candidate
        self.result = None
        logger.info(f"Membrane parameters updated: {changes}")
        return True
