"""Electrostatic membrane mirror simulation and Zernike wavefront analysis."""
