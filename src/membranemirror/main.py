"""
Application Initialization
==========================
This module builds the simulation project from the command line and runs
the requested analysis.

Why is this file needed?
------------------------
It acts as the orchestration root. It:
1. Sets up logging (console + the simulation log file).
2. Instantiates the Data Model (ProjectState) and applies parameter overrides.
3. Runs the solver / stability analysis / Zernike fit.
4. Optionally saves the project to HDF5.
"""
import argparse
import logging
import sys
from dataclasses import fields
from typing import Optional, Sequence

import numpy as np

from membranemirror.config import DEFAULT_LOG_FILE, NUMBER_OF_ZERNIKES
from membranemirror.logging_config import setup_logging
from membranemirror.model.io import IOManager
from membranemirror.model.state import MEMBRANE_FIELDS, ProjectState, SimulationParameters
from membranemirror.analysis.matrix_elements import IntegrationMethod
from membranemirror.analysis.membrane import Membrane
from membranemirror.optics.wavefront import AberratedWavefront, surface_to_zernike
from membranemirror.optics.zernike import ZernikePolynomial
from membranemirror.solvers.solver import Solver, find_pull_in_voltage
from membranemirror.utils import m_to_um

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="membranemirror",
        description="Electrostatic membrane mirror simulation and Zernike wavefront analysis.",
    )
    parser.add_argument("command", choices=["simulate", "stability", "fit"])
    parser.add_argument("--log-file", default=DEFAULT_LOG_FILE, help="Simulation log file ('' disables it).")
    parser.add_argument("--verbose", action="store_true", help="Log debug messages.")
    parser.add_argument("--load", metavar="H5", help="Load a project before applying overrides.")
    parser.add_argument("--save", metavar="H5", help="Save the project after the run.")
    parser.add_argument("--zernike-file", metavar="CSV", help="Zernike coefficient table of the incoming wavefront.")
    parser.add_argument("--terms", type=int, default=NUMBER_OF_ZERNIKES, help="Zernike terms to fit.")
    parser.add_argument("--method", choices=[m.value for m in IntegrationMethod], default=IntegrationMethod.ADAPTIVE.value)
    parser.add_argument("--v-max", type=float, default=500.0, help="Upper voltage of the pull-in search.")

    # One flag per scalar simulation parameter, e.g. --voltage-a-V 150
    defaults = SimulationParameters()
    for f in fields(SimulationParameters):
        if f.name == "electrode_voltages_V":
            continue
        parser.add_argument(
            "--" + f.name.replace("_", "-"),
            dest=f.name,
            type=type(getattr(defaults, f.name)),
            default=None,
        )
    parser.add_argument("--electrode-voltages-V", dest="electrode_voltages_V", type=float, nargs="+", default=None)
    return parser


def apply_overrides(project: ProjectState, args: argparse.Namespace) -> None:
    changes = {
        f.name: getattr(args, f.name)
        for f in fields(SimulationParameters)
        if getattr(args, f.name) is not None
    }
    if changes and not project.edit_membrane(changes):
        raise ValueError(f"Invalid simulation parameters: {changes}")

    membrane = ", ".join(f"{name} = {getattr(project.parameters, name)}" for name in MEMBRANE_FIELDS)
    logger.info(f"Membrane: {membrane}")


def run_simulate(project: ProjectState, method: IntegrationMethod, n_terms: int) -> None:
    solver = Solver(project.parameters, method=method)
    result = solver.solve()
    project.result = result

    logger.info(f"Peak deformation: {m_to_um(result.peak_deformation):.4f} um, "
                f"stable: {result.stable} (margin {result.stability.margin:.4f})")

    surface = surface_to_zernike(result.shape, n_terms=n_terms)
    for name, c in zip(surface.term_names(), surface.coefficients):
        if abs(c) > 1e-6:
            logger.info(f"  {name:<24s} {c: .6f} um")

    if np.any(project.zernike_coefficients):
        incoming = ZernikePolynomial(project.zernike_coefficients, radius=result.shape.radius)
        AberratedWavefront(incoming).correct(result.shape)


def run_stability(project: ProjectState, method: IntegrationMethod, v_max: float) -> None:
    def report(voltage: float, stable: bool) -> None:
        logger.info(f"V_A = {voltage:8.3f} V: {'stable' if stable else 'unstable'}")

    v_pull_in = find_pull_in_voltage(project.parameters, v_high=v_max, method=method, callback=report)
    logger.info(f"Pull-in voltage: {v_pull_in:.3f} V")


def run_fit(project: ProjectState, n_terms: int) -> None:
    membrane = Membrane(project.parameters)
    membrane.compare_expansion(0.0, membrane.radius, 11)
    surface = surface_to_zernike(membrane.parabolic_shape(), n_terms=n_terms)
    for name, c in zip(surface.term_names(), surface.coefficients):
        logger.info(f"  {name:<24s} {c: .6f} um")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # 1. Setup Logging (Console + Simulation log file)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO, log_file=args.log_file or None)

    # 2. Initialize the Data Model
    project = ProjectState()

    try:
        if args.load:
            IOManager.load_project(project, args.load)
        apply_overrides(project, args)
        if args.zernike_file:
            IOManager.load_zernike_coefficients(project, args.zernike_file)

        # 3. Run the analysis
        method = IntegrationMethod(args.method)
        if args.command == "simulate":
            run_simulate(project, method, args.terms)
        elif args.command == "stability":
            run_stability(project, method, args.v_max)
        else:
            run_fit(project, args.terms)

        # 4. Persist
        if args.save:
            IOManager.save_project(project, args.save)

    except (ValueError, RuntimeError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
