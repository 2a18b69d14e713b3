"""
Unit tests for the Zernike coefficient tables and project files.
"""
import logging

import numpy as np
import pytest

from membranemirror.config import DEFAULT_ZCOEFF_PATH, NUMBER_OF_ZERNIKES
from membranemirror.model.io import IOManager
from membranemirror.model.state import ProjectState, SimulationParameters
from membranemirror.analysis.matrix_elements import IntegrationMethod
from membranemirror.solvers.solver import Solver


def write_table(path, values, delimiter=","):
    lines = [f"TERM{delimiter}COEFFICIEN"]
    lines += [f"{j}{delimiter}{v}" for j, v in enumerate(values, start=1)]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


class TestZernikeTable:

    def test_read_complete_table(self, tmp_path):
        values = np.linspace(-1.0, 1.0, NUMBER_OF_ZERNIKES)
        path = tmp_path / "z.csv"
        IOManager.write_zernike_coefficients(str(path), values)

        state = ProjectState()
        IOManager.load_zernike_coefficients(state, str(path))

        np.testing.assert_allclose(state.zernike_coefficients, values)
        assert state.coefficient_source == str(path)

    def test_wrong_row_count(self, tmp_path, caplog):
        path = tmp_path / "short.csv"
        write_table(path, [0.1] * 30)

        state = ProjectState()
        with caplog.at_level(logging.ERROR, logger="membranemirror"):
            with pytest.raises(ValueError, match="Wrong number of data rows"):
                IOManager.load_zernike_coefficients(state, str(path))

        assert "expected 37, found 30" in caplog.text
        np.testing.assert_array_equal(state.zernike_coefficients, np.zeros(NUMBER_OF_ZERNIKES))
        assert state.coefficient_source is None

    def test_semicolon_and_decimal_comma(self, tmp_path):
        path = tmp_path / "eu.csv"
        write_table(path, ["0,5"] + ["0"] * 36, delimiter=";")

        coeffs = IOManager.read_zernike_coefficients(str(path))
        assert coeffs[0] == pytest.approx(0.5)
        assert np.all(coeffs[1:] == 0.0)

    def test_single_column_with_decimal_comma(self, tmp_path):
        path = tmp_path / "single.csv"
        path.write_text("COEFFICIEN\n" + "0,5\n" * NUMBER_OF_ZERNIKES, encoding="utf-8")

        coeffs = IOManager.read_zernike_coefficients(str(path))
        np.testing.assert_allclose(coeffs, np.full(NUMBER_OF_ZERNIKES, 0.5))

    def test_extra_fields_are_rejected(self, tmp_path):
        path = tmp_path / "split.csv"
        path.write_text("TERM,COEFFICIEN\n" + "".join(f"{j},0,5\n" for j in range(1, 38)), encoding="utf-8")

        with pytest.raises(ValueError, match="more fields than the header"):
            IOManager.read_zernike_coefficients(str(path))

    def test_blank_lines_are_ignored(self, tmp_path):
        path = tmp_path / "blank.csv"
        write_table(path, [1.0] * NUMBER_OF_ZERNIKES)
        with open(path, "a", encoding="utf-8") as f:
            f.write("\n,\n")

        assert IOManager.read_zernike_coefficients(str(path)).size == NUMBER_OF_ZERNIKES

    def test_missing_column(self, tmp_path):
        path = tmp_path / "nocol.csv"
        path.write_text("TERM,VALUE\n1,0.0\n", encoding="utf-8")
        with pytest.raises(ValueError, match="COEFFICIEN"):
            IOManager.read_zernike_coefficients(str(path))

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "bad.csv"
        write_table(path, ["abc"] + ["0"] * 36)
        with pytest.raises(ValueError, match="invalid coefficient"):
            IOManager.read_zernike_coefficients(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            IOManager.read_zernike_coefficients(str(tmp_path / "nope.csv"))

    def test_bundled_table(self):
        coeffs = IOManager.read_zernike_coefficients(DEFAULT_ZCOEFF_PATH)
        assert coeffs.shape == (NUMBER_OF_ZERNIKES,)
        assert coeffs[3] == pytest.approx(0.25)


class TestProjectFile:

    @pytest.fixture
    def solved_state(self):
        state = ProjectState(project_name="Mirror")
        state.parameters = SimulationParameters(
            voltage_a_V=100.0,
            number_of_eigenfunctions=6,
            num_electrodes=3,
            electrode_voltages_V=(100.0, 80.0, 60.0),
        )
        state.zernike_coefficients = np.arange(NUMBER_OF_ZERNIKES, dtype=np.float64)
        state.coefficient_source = "table.csv"
        state.result = Solver(state.parameters, method=IntegrationMethod.GAUSS).solve()
        return state

    def test_round_trip(self, tmp_path, solved_state):
        path = str(tmp_path / "project.h5")
        IOManager.save_project(solved_state, path)

        loaded = ProjectState()
        IOManager.load_project(loaded, path)

        assert loaded.project_name == "Mirror"
        assert loaded.filepath == path
        assert loaded.parameters == solved_state.parameters
        assert loaded.coefficient_source == "table.csv"
        np.testing.assert_array_equal(loaded.zernike_coefficients, solved_state.zernike_coefficients)

        result = loaded.result
        assert result is not None
        assert result.iterations == solved_state.result.iterations
        assert result.voltage_a_V == pytest.approx(100.0)
        np.testing.assert_allclose(result.coefficients, solved_state.result.coefficients)
        np.testing.assert_allclose(result.electrode_deformation, solved_state.result.electrode_deformation)
        assert result.peak_deformation == pytest.approx(solved_state.result.peak_deformation)

    def test_round_trip_without_result(self, tmp_path):
        path = str(tmp_path / "empty.h5")
        IOManager.save_project(ProjectState(), path)

        loaded = ProjectState()
        IOManager.load_project(loaded, path)
        assert loaded.result is None
        assert loaded.parameters == SimulationParameters()

    def test_not_hdf5(self, tmp_path):
        path = tmp_path / "fake.h5"
        path.write_text("not an hdf5 file", encoding="utf-8")
        with pytest.raises(ValueError):
            IOManager.load_project(ProjectState(), str(path))

    def test_missing_project(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            IOManager.load_project(ProjectState(), str(tmp_path / "missing.h5"))


class TestProfileExport:

    def test_export(self, tmp_path):
        params = SimulationParameters(voltage_a_V=50.0, number_of_eigenfunctions=4)
        result = Solver(params, method=IntegrationMethod.GAUSS).solve()

        path = tmp_path / "profile.csv"
        IOManager.export_profile_csv(result, str(path), n_points=11)

        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "r_mm,w_um"
        assert len(lines) == 12
        r_last, w_last = (float(v) for v in lines[-1].split(","))
        assert r_last == pytest.approx(7.5)
        assert w_last == pytest.approx(0.0, abs=1e-9)

    def test_export_without_result(self, tmp_path):
        with pytest.raises(ValueError):
            IOManager.export_profile_csv(None, str(tmp_path / "p.csv"))
