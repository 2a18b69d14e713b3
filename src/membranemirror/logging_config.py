"""
Logging Configuration
Console output plus the simulation log file (LogFile.txt by default) that
records parameter edits, coefficient loads and solver progress of a run.
"""
import logging
import sys
from typing import Optional


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configures the 'membranemirror' logger for one simulation run.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Simulation log path; rewritten on every run. None logs to the console only.
    """
    logger = logging.getLogger("membranemirror")
    logger.setLevel(level)

    # Repeated runs in one process (tests, --load then rerun) must not stack handlers
    if logger.hasHandlers():
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.info(f"Logging initialized, simulation log: {log_file}")
    else:
        logger.info("Logging initialized.")
