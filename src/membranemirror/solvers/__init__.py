"""
Membrane Solver Engine
======================
Equilibrium deformation and electrostatic stability of the membrane.

Note: This package should be pure Python/NumPy/SciPy and should NOT plot.
"""
from membranemirror.solvers.solver import (
    DeformationResult,
    PullInError,
    Solver,
    StabilityResult,
    find_pull_in_voltage,
)
