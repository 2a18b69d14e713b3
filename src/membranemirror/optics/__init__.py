"""
Zernike polynomials and wavefront analysis.
"""
