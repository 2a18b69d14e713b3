"""
Unit tests for Zernike fitting and wavefront correction.
"""
import numpy as np
import pytest

from membranemirror.analysis.membrane import ParabolicShape
from membranemirror.optics.wavefront import (
    AberratedWavefront,
    Wavefront,
    cartesian_grid,
    fit_zernike,
    polar_grid,
    surface_to_zernike,
)
from membranemirror.optics.zernike import ZernikeOrdering, ZernikePolynomial, zernike

RADIUS = 7.5e-3
PEAK = 5e-6


class TestGrids:

    def test_polar_grid(self):
        rho, theta = polar_grid(4, 8)
        assert rho.shape == theta.shape == (32,)
        assert np.all((rho > 0.0) & (rho < 1.0))

    def test_cartesian_grid(self):
        rho, theta, mask = cartesian_grid(5)
        assert rho.shape == (5, 5)
        assert rho[2, 2] == 0.0
        assert not mask[0, 0]
        assert mask[2, 4]


class TestFit:

    def test_parabola(self):
        shape = ParabolicShape(peak=PEAK, radius=RADIUS)
        surface = surface_to_zernike(shape, n_terms=9)

        # w0 (1 - rho^2) = w0/2 Z1 - w0/2 Z4, in um
        expected = np.zeros(9)
        expected[0] = 2.5
        expected[3] = -2.5
        np.testing.assert_allclose(surface.coefficients, expected, atol=1e-9)
        assert surface.radius == RADIUS

    def test_normalized_noll(self):
        rho, theta = polar_grid(24, 48)
        truth = np.array([0.1, -0.2, 0.05, 0.3, 0.0, 0.0, 0.02, 0.0, 0.0, 0.0, -0.04])
        values = sum(
            c * zernike(n, m, rho, theta, normalized=True)
            for c, (n, m) in zip(truth, ZernikePolynomial(truth, ordering=ZernikeOrdering.NOLL).indices)
        )
        fitted = fit_zernike(rho, theta, values, n_terms=11, ordering=ZernikeOrdering.NOLL, normalized=True)
        np.testing.assert_allclose(fitted, truth, atol=1e-10)

    def test_ignores_samples_outside(self):
        rho = np.array([0.0, 0.5, 1.0, 1.5, 0.7])
        theta = np.zeros(5)
        values = np.array([1.0, 1.0, 1.0, 50.0, np.nan])
        np.testing.assert_allclose(fit_zernike(rho, theta, values, n_terms=1), [1.0])

    def test_too_few_samples(self):
        with pytest.raises(ValueError):
            fit_zernike(np.array([0.1, 0.2]), np.zeros(2), np.ones(2), n_terms=4)


class TestWavefront:

    def test_piston_has_no_rms(self):
        values = np.full((4, 4), 3.0)
        values[0, 0] = np.nan
        wf = Wavefront(values=values, radius=1.0)
        assert wf.rms() == pytest.approx(0.0)
        assert wf.peak_to_valley() == pytest.approx(0.0)

    def test_rms(self):
        wf = Wavefront(values=np.array([1.0, -1.0, 1.0, -1.0]), radius=1.0)
        assert wf.rms() == pytest.approx(1.0)
        assert wf.peak_to_valley() == pytest.approx(2.0)

    def test_sample_is_nan_outside(self):
        wf = AberratedWavefront(ZernikePolynomial([1.0], radius=RADIUS)).sample(9)
        assert np.isnan(wf.values[0, 0])
        assert wf.values[4, 4] == pytest.approx(1.0)

    def test_perfect_correction(self):
        # Incoming defocus equal to twice the membrane sag is cancelled on reflection
        shape = ParabolicShape(peak=PEAK, radius=RADIUS)
        incoming = ZernikePolynomial([5.0, 0.0, 0.0, -5.0], radius=RADIUS)

        corrected = AberratedWavefront(incoming).correct(shape, n=64)
        assert corrected.rms() == pytest.approx(0.0, abs=1e-9)
        assert AberratedWavefront(incoming).sample(64).rms() > 1.0

    def test_partial_correction(self):
        shape = ParabolicShape(peak=PEAK, radius=RADIUS)
        coeffs = np.zeros(9)
        coeffs[3] = -5.0
        coeffs[8] = 0.5
        incoming = ZernikePolynomial(coeffs, radius=RADIUS)

        before = AberratedWavefront(incoming).sample(64).rms()
        after = AberratedWavefront(incoming).correct(shape, n=64).rms()
        assert after < 0.2 * before
