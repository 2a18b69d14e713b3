"""
Configuration & Path Management
===============================
This module serves as the central registry for file paths and global constants.

Why is this file needed?
------------------------
1. Abstraction: It prevents hardcoded paths (e.g., "C:/Users/...") scattered
   throughout the code.
2. Deployment: It handles the logic required by PyInstaller (sys._MEIPASS) to
   find assets (coefficient tables) when the app is frozen into an .exe.

Exports:
    ASSETS_PATH (str): Absolute path to the assets directory.
    DEFAULT_ZCOEFF_PATH (str): Absolute path to the default Zernike coefficient table.
    DEFAULT_LOG_FILE (str): Name of the log file written during simulation runs.
    NUMBER_OF_ZERNIKES (int): Expected number of rows in a coefficient table.
    EPSILON_0 (float): Vacuum permittivity in F/m.
"""
import logging
import sys
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def get_resource_path(relative_path: str) -> str:
    """
    Get absolute path to resource, works for dev and for PyInstaller.
    """
    if hasattr(sys, '_MEIPASS'):
        # PyInstaller temp folder
        base_path: str = getattr(sys, '_MEIPASS')
        return os.path.join(base_path, relative_path)

    # Development mode: resolve relative to this file
    # config.py is in src/membranemirror/
    current_file_path: Path = Path(__file__)
    project_root: Path = current_file_path.parent.parent.parent
    return os.path.join(str(project_root), relative_path)


# Global Constants
ASSETS_PATH: str = get_resource_path("assets")
DEFAULT_ZCOEFF_PATH: str = os.path.join(ASSETS_PATH, "zernike_coefficients.csv")
DEFAULT_LOG_FILE: str = "LogFile.txt"

# Fringe set: Z1 ... Z37
NUMBER_OF_ZERNIKES: int = 37

EPSILON_0: float = 8.8541878128e-12  # F/m

if not os.path.exists(ASSETS_PATH):
    logger.warning(f"Assets path not found at {ASSETS_PATH}")
