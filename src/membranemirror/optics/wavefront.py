"""
Wavefront maps, Zernike fitting and mirror correction.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING

import numpy as np
import matplotlib.pyplot as plt

from membranemirror.config import NUMBER_OF_ZERNIKES
from membranemirror.optics.zernike import ZernikeOrdering, ZernikePolynomial, index_to_nm, zernike
from membranemirror.utils import m_to_um

if TYPE_CHECKING:
    import numpy.typing as npt

    from membranemirror.analysis.membrane import MembraneShape

logger = logging.getLogger(__name__)


def polar_grid(n_radial: int = 32, n_angular: int = 64) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Sample points on the unit disk, uniform in radius and azimuth.

    Returns:
        rho, theta arrays of shape (n_radial * n_angular,).
    """
    rho = (np.arange(n_radial) + 0.5) / n_radial
    theta = 2.0 * np.pi * np.arange(n_angular) / n_angular
    rr, tt = np.meshgrid(rho, theta, indexing="ij")
    return rr.ravel(), tt.ravel()


def cartesian_grid(n: int = 128) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64], npt.NDArray[np.bool_]]:
    """
    Square n x n grid over [-1, 1]^2 in polar form.

    Returns:
        rho, theta and the aperture mask (rho <= 1), each of shape (n, n).
    """
    x = np.linspace(-1.0, 1.0, n)
    xx, yy = np.meshgrid(x, x, indexing="xy")
    rho = np.hypot(xx, yy)
    theta = np.arctan2(yy, xx)
    return rho, theta, rho <= 1.0


def fit_zernike(
    rho: npt.NDArray[np.float64],
    theta: npt.NDArray[np.float64],
    values: npt.NDArray[np.float64],
    n_terms: int = NUMBER_OF_ZERNIKES,
    ordering: ZernikeOrdering = ZernikeOrdering.FRINGE,
    normalized: bool = False,
) -> npt.NDArray[np.float64]:
    """
    Least-squares Zernike coefficients of sampled wavefront values.

    Samples outside the unit disk or with NaN values are ignored.

    Args:
        rho: Normalised radii.
        theta: Azimuths in radians.
        values: Wavefront at (rho, theta).
        n_terms: Number of terms to fit.
        ordering: Index convention of the returned coefficients.
        normalized: Fit Noll-normalised polynomials.

    Returns:
        Coefficients of shape (n_terms,).
    """
    rho = np.ravel(rho)
    theta = np.ravel(theta)
    values = np.ravel(values)
    valid = np.isfinite(values) & (rho <= 1.0)
    if np.count_nonzero(valid) < n_terms:
        raise ValueError(f"Not enough valid samples ({np.count_nonzero(valid)}) to fit {n_terms} terms.")

    first = 0 if ZernikeOrdering(ordering) == ZernikeOrdering.ANSI else 1
    design = np.column_stack([
        zernike(*index_to_nm(j + first, ordering), rho[valid], theta[valid], normalized)
        for j in range(n_terms)
    ])
    coefficients, _, rank, _ = np.linalg.lstsq(design, values[valid], rcond=None)
    if rank < n_terms:
        logger.warning(f"Zernike fit is rank deficient ({rank} < {n_terms}); increase the sampling.")
    return coefficients


def surface_to_zernike(
    shape: MembraneShape,
    n_terms: int = NUMBER_OF_ZERNIKES,
    ordering: ZernikeOrdering = ZernikeOrdering.FRINGE,
    normalized: bool = False,
    n_radial: int = 32,
    n_angular: int = 64,
) -> ZernikePolynomial:
    """
    Fit a membrane surface over its full aperture.

    Returns:
        Zernike expansion of the surface in micrometres, aperture radius in metres.
    """
    rho, theta = polar_grid(n_radial, n_angular)
    values = m_to_um(shape.deformation(rho * shape.radius, theta))
    coefficients = fit_zernike(rho, theta, values, n_terms, ordering, normalized)
    logger.info(f"Fitted {n_terms} Zernike terms to the membrane surface.")
    return ZernikePolynomial(coefficients, ordering=ordering, radius=shape.radius, normalized=normalized)


@dataclass
class Wavefront:
    """
    Wavefront map on a square grid, NaN outside the aperture. Values in um.
    """
    values: npt.NDArray[np.float64]
    radius: float

    def rms(self) -> float:
        """Root mean square deviation from the mean (piston removed)."""
        v = self.values[np.isfinite(self.values)]
        return float(np.sqrt(np.mean((v - v.mean()) ** 2)))

    def peak_to_valley(self) -> float:
        v = self.values[np.isfinite(self.values)]
        return float(v.max() - v.min())

    def plot(self, title: str = "Wavefront") -> None:
        """
        Plot the wavefront map.
        """
        extent = (-self.radius * 1e3, self.radius * 1e3, -self.radius * 1e3, self.radius * 1e3)

        plt.rcParams["figure.constrained_layout.use"] = True
        fig, axs = plt.subplots(1, 1, figsize=(6, 5))
        im = axs.imshow(self.values, origin="lower", extent=extent, cmap="jet")
        fig.colorbar(im, ax=axs, label="OPD (µm)")

        axs.set_title(f"{title}: RMS = {self.rms():.4f} µm, P-V = {self.peak_to_valley():.4f} µm")
        axs.set_xlabel("x (mm)")
        axs.set_ylabel("y (mm)")
        plt.show()


class AberratedWavefront:
    """
    Incoming wavefront described by Zernike coefficients (um), corrected by
    reflection from the deformed membrane.
    """
    def __init__(self, zernike_polynomial: ZernikePolynomial) -> None:
        self.zernike = zernike_polynomial

    def sample(self, n: int = 128) -> Wavefront:
        rho, theta, mask = cartesian_grid(n)
        values = self.zernike.evaluate(rho * self.zernike.radius, theta)
        return Wavefront(values=np.where(mask, values, np.nan), radius=self.zernike.radius)

    def correct(self, shape: MembraneShape, n: int = 128) -> Wavefront:
        """
        Wavefront after reflection: W - 2 w. The Zernike aperture is mapped
        onto the membrane aperture.
        """
        rho, theta, mask = cartesian_grid(n)
        incoming = self.zernike.evaluate(rho * self.zernike.radius, theta)
        surface = m_to_um(shape.deformation(np.where(mask, rho, 0.0) * shape.radius, theta))
        corrected = np.where(mask, incoming - 2.0 * surface, np.nan)

        result = Wavefront(values=corrected, radius=shape.radius)
        logger.info(f"Corrected wavefront: RMS = {result.rms():.4f} um, P-V = {result.peak_to_valley():.4f} um")
        return result
