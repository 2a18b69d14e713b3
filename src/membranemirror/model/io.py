"""
Input/Output Manager
Reads Zernike coefficient tables (CSV) and saves/loads the ProjectState
to .h5 files.
"""
import csv
import json
import logging
import os
from typing import Optional
from importlib.metadata import version, PackageNotFoundError

import h5py
import numpy as np

from membranemirror.config import NUMBER_OF_ZERNIKES
from membranemirror.model.state import ProjectState, SimulationParameters
from membranemirror.analysis.eigenmodes import EigenBasis
from membranemirror.analysis.membrane import EigenfunctionExpansion
from membranemirror.solvers.solver import DeformationResult, StabilityResult
from membranemirror.utils import m_to_um

# Get module logger
logger = logging.getLogger(__name__)

try:
    APP_VERSION = version("membranemirror")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"

# Coefficient column name (dBase field names are limited to 10 characters)
COEFFICIENT_FIELD = "COEFFICIEN"


class IOManager:

    @staticmethod
    def read_zernike_coefficients(filepath: str, expected: int = NUMBER_OF_ZERNIKES) -> np.ndarray:
        """
        Read Zernike coefficients from a table.

        The table needs a header row with a COEFFICIEN column; one data row per
        term, in index order. Fields are separated by ';' or ',' (taken from the
        header). A table with only the COEFFICIEN column is read line by line,
        so decimal commas are allowed there too.

        Args:
            filepath: Path to the CSV file.
            expected: Number of data rows the table must have.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the table is malformed or has the wrong number of rows.

        Returns:
            Coefficients of shape (expected,).
        """
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Zernike coefficient file not found: {filepath}")

        with open(filepath, mode='r', encoding='utf-8-sig', newline='') as f:
            line = f.readline()
            if ';' in line:
                delimiter = ';'
            elif ',' in line:
                delimiter = ','
            else:
                # Single column: rows are read whole so decimal commas survive
                delimiter = '\t'
            f.seek(0)
            reader = csv.DictReader(f, delimiter=delimiter)

            fieldnames = [name.strip().upper() for name in (reader.fieldnames or [])]
            if COEFFICIENT_FIELD not in fieldnames:
                msg = f"Error reading Zernikes file: no '{COEFFICIENT_FIELD}' column in {filepath}"
                logger.error(msg)
                raise ValueError(msg)
            column = (reader.fieldnames or [])[fieldnames.index(COEFFICIENT_FIELD)]

            rows = [row for row in reader if any(isinstance(v, str) and v.strip() for v in row.values())]

        # Number of records in data file should be the same as the number of terms
        if len(rows) != expected:
            msg = (f"Error reading Zernikes file: Wrong number of data rows "
                   f"(expected {expected}, found {len(rows)})")
            logger.error(msg)
            raise ValueError(msg)

        coefficients = np.empty(expected, dtype=np.float64)
        for i, row in enumerate(rows):
            extra = [v for v in (row.get(None) or []) if v.strip()]
            if extra:
                msg = (f"Error reading Zernikes file: data row {i + 1} has more fields than the header "
                       f"({', '.join(extra)})")
                logger.error(msg)
                raise ValueError(msg)
            raw = (row[column] or "").strip().replace(',', '.')
            try:
                coefficients[i] = float(raw)
            except ValueError:
                msg = f"Error reading Zernikes file: invalid coefficient '{raw}' in data row {i + 1}"
                logger.error(msg)
                raise ValueError(msg)

        logger.info(f"Entered {len(rows)} Zernike coefficients from file: {filepath}")
        return coefficients

    @staticmethod
    def load_zernike_coefficients(state: ProjectState, filepath: str, expected: int = NUMBER_OF_ZERNIKES) -> None:
        """Read a coefficient table into the project. The state is unchanged on failure."""
        state.zernike_coefficients = IOManager.read_zernike_coefficients(filepath, expected)
        state.coefficient_source = filepath

    @staticmethod
    def write_zernike_coefficients(filepath: str, coefficients: np.ndarray) -> None:
        with open(filepath, mode='w', encoding='utf-8', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(["TERM", COEFFICIENT_FIELD])
            for j, c in enumerate(np.ravel(coefficients), start=1):
                writer.writerow([j, repr(float(c))])
        logger.info(f"Wrote {np.size(coefficients)} Zernike coefficients to: {filepath}")

    @staticmethod
    def save_project(state: ProjectState, filepath: str) -> None:
        logger.info(f"Saving project to: {filepath}")
        try:
            with h5py.File(filepath, "w") as f:
                f.attrs["version"] = APP_VERSION
                f.attrs["project_name"] = state.project_name

                # --- 1. SAVE PARAMETERS ---
                # Stored as JSON to keep the optional voltage list intact
                grp_par = f.create_group("parameters")
                grp_par.attrs["json"] = json.dumps(state.parameters.to_dict())

                # --- 2. SAVE ZERNIKE COEFFICIENTS ---
                grp_z = f.create_group("zernike")
                grp_z.create_dataset("coefficients", data=np.asarray(state.zernike_coefficients, dtype=np.float64))
                if state.coefficient_source:
                    grp_z.attrs["source"] = state.coefficient_source

                # --- 3. SAVE RESULTS ---
                if state.result is not None:
                    result = state.result
                    grp_res = f.create_group("results")
                    grp_res.create_dataset("coefficients", data=result.coefficients)
                    grp_res.create_dataset("stability_eigenvalues", data=result.stability.eigenvalues)
                    grp_res.create_dataset("electrode_deformation", data=result.electrode_deformation)
                    grp_res.attrs["radius"] = result.shape.radius
                    grp_res.attrs["iterations"] = result.iterations
                    grp_res.attrs["residual_norm"] = result.residual_norm
                    grp_res.attrs["voltage_a_V"] = result.voltage_a_V
                    grp_res.attrs["voltage_t_V"] = result.voltage_t_V
                    logger.debug(f"Saved result with {result.coefficients.size} modal coefficients.")

            state.filepath = filepath
            logger.info(f"Project saved to: {filepath}")

        except Exception as e:
            logger.exception(f"Failed to save project: {e}")
            raise e

    @staticmethod
    def load_project(state: ProjectState, filepath: str) -> None:
        logger.info(f"Loading project from: {filepath}")
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Project file not found: {filepath}")
        if not h5py.is_hdf5(filepath):
            msg = f"File '{filepath}' is not a valid HDF5 file."
            logger.error(msg)
            raise ValueError(msg)

        try:
            with h5py.File(filepath, "r") as f:
                # reset the state to clear existing data
                state.reset()

                if "project_name" in f.attrs:
                    state.project_name = str(f.attrs["project_name"])

                # --- 1. LOAD PARAMETERS ---
                if "parameters" in f:
                    raw = f["parameters"].attrs["json"]
                    if isinstance(raw, bytes):
                        raw = raw.decode('utf-8')
                    state.parameters = SimulationParameters.from_dict(json.loads(raw))

                # --- 2. LOAD ZERNIKE COEFFICIENTS ---
                if "zernike" in f:
                    grp_z = f["zernike"]
                    state.zernike_coefficients = grp_z["coefficients"][:]
                    if "source" in grp_z.attrs:
                        state.coefficient_source = str(grp_z.attrs["source"])

                # --- 3. LOAD RESULTS ---
                if "results" in f:
                    state.result = IOManager._load_result(f["results"])
                    logger.debug(f"Loaded result with {state.result.coefficients.size} modal coefficients.")

            state.filepath = filepath
            logger.info(f"Project loaded from: {filepath}")

        except Exception as e:
            logger.exception(f"Failed to load project: {e}")
            raise e

    @staticmethod
    def _load_result(grp_res: h5py.Group) -> DeformationResult:
        coefficients = grp_res["coefficients"][:]
        basis = EigenBasis(radius=float(grp_res.attrs["radius"]), count=coefficients.size, m=0)
        return DeformationResult(
            shape=EigenfunctionExpansion(basis, coefficients),
            iterations=int(grp_res.attrs["iterations"]),
            residual_norm=float(grp_res.attrs["residual_norm"]),
            stability=StabilityResult(eigenvalues=grp_res["stability_eigenvalues"][:]),
            voltage_a_V=float(grp_res.attrs["voltage_a_V"]),
            voltage_t_V=float(grp_res.attrs["voltage_t_V"]),
            electrode_deformation=grp_res["electrode_deformation"][:],
        )

    # ---- EXPORT HELPERS ----
    @staticmethod
    def export_profile_csv(result: Optional[DeformationResult], filepath: str, n_points: int = 101) -> None:
        """
        Export the radial deformation profile as CSV (r in mm, w in um).
        """
        if result is None:
            raise ValueError("No results to export.")

        r = np.linspace(0.0, result.shape.radius, n_points)
        w = result.shape.deformation(r)

        with open(filepath, mode='w', encoding='utf-8', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(["r_mm", "w_um"])
            for ri, wi in zip(r, w):
                writer.writerow([f"{ri * 1e3:.6f}", f"{m_to_um(wi):.9e}"])

        logger.info(f"Deformation profile exported to: {filepath}")
