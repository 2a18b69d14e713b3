"""
Numerical membrane model: eigenmodes, electrostatics, quadrature and
matrix elements.
"""
