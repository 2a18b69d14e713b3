"""
End-to-end tests of the command-line runner.
"""
import logging

import h5py
import pytest

from membranemirror.config import DEFAULT_ZCOEFF_PATH
from membranemirror.main import build_parser, main
from membranemirror.model.io import IOManager
from membranemirror.model.state import ProjectState


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger("membranemirror")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


class TestParser:

    def test_parameter_flags(self):
        args = build_parser().parse_args([
            "simulate", "--voltage-a-V", "120", "--number-of-eigenfunctions", "8",
            "--electrode-voltages-V", "1", "2",
        ])
        assert args.voltage_a_V == 120.0
        assert args.number_of_eigenfunctions == 8
        assert args.electrode_voltages_V == [1.0, 2.0]
        assert args.membrane_stress_MPa is None

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["explode"])


class TestMain:

    def test_fit(self, tmp_path):
        log_file = tmp_path / "LogFile.txt"
        assert main(["fit", "--log-file", str(log_file), "--terms", "9"]) == 0
        text = log_file.read_text(encoding="utf-8")
        assert "Fitted 9 Zernike terms" in text
        assert f"simulation log: {log_file}" in text

    def test_membrane_fields_are_logged(self, tmp_path):
        log_file = tmp_path / "LogFile.txt"
        assert main(["fit", "--log-file", str(log_file), "--dist-a-um", "65", "--terms", "4"]) == 0

        text = log_file.read_text(encoding="utf-8")
        assert "membrane_stress_MPa = 100.0" in text
        assert "dist_a_um = 65.0" in text

    def test_simulate_and_save(self, tmp_path):
        log_file = tmp_path / "LogFile.txt"
        project = tmp_path / "run.h5"
        code = main([
            "simulate",
            "--log-file", str(log_file),
            "--method", "gauss",
            "--number-of-eigenfunctions", "8",
            "--voltage-a-V", "120",
            "--zernike-file", DEFAULT_ZCOEFF_PATH,
            "--save", str(project),
        ])
        assert code == 0
        assert h5py.is_hdf5(project)

        text = log_file.read_text(encoding="utf-8")
        assert "Entered 37 Zernike coefficients" in text
        assert "Corrected wavefront" in text

        state = ProjectState()
        IOManager.load_project(state, str(project))
        assert state.parameters.voltage_a_V == 120.0
        assert state.result is not None
        assert state.result.peak_deformation > 0.0

    def test_load_and_rerun(self, tmp_path):
        project = tmp_path / "run.h5"
        assert main(["fit", "--log-file", "", "--membrane-stress-MPa", "80", "--save", str(project)]) == 0
        assert main(["fit", "--log-file", "", "--load", str(project), "--terms", "4"]) == 0

        state = ProjectState()
        IOManager.load_project(state, str(project))
        assert state.parameters.membrane_stress_MPa == 80.0

    def test_invalid_parameter(self, tmp_path):
        log_file = tmp_path / "LogFile.txt"
        assert main(["fit", "--log-file", str(log_file), "--membrane-stress-MPa", "-5"]) == 1
        assert "Invalid simulation parameters" in log_file.read_text(encoding="utf-8")

    def test_bad_zernike_file(self, tmp_path):
        table = tmp_path / "short.csv"
        table.write_text("TERM,COEFFICIEN\n1,0.5\n", encoding="utf-8")
        assert main(["fit", "--log-file", "", "--zernike-file", str(table)]) == 1

    def test_stability(self, tmp_path):
        code = main([
            "stability", "--log-file", str(tmp_path / "LogFile.txt"),
            "--method", "gauss", "--number-of-eigenfunctions", "4", "--v-max", "600",
        ])
        assert code == 0
        assert "Pull-in voltage" in (tmp_path / "LogFile.txt").read_text(encoding="utf-8")
