"""
Unit tests for Zernike polynomial evaluation.
"""
import numpy as np
import pytest

from membranemirror.optics.zernike import (
    ZernikeOrdering,
    ZernikePolynomial,
    ZOffsetZernikePolynomial,
    index_to_nm,
    radial_polynomial,
    zernike,
)


class TestIndexConversion:

    def test_fringe_first_terms(self):
        expected = [(0, 0), (1, 1), (1, -1), (2, 0), (2, 2), (2, -2), (3, 1), (3, -1), (4, 0),
                    (3, 3), (3, -3), (4, 2), (4, -2), (5, 1), (5, -1), (6, 0)]
        assert [index_to_nm(j, ZernikeOrdering.FRINGE) for j in range(1, 17)] == expected

    def test_fringe_last_terms(self):
        assert index_to_nm(36, ZernikeOrdering.FRINGE) == (10, 0)
        assert index_to_nm(37, ZernikeOrdering.FRINGE) == (12, 0)

    def test_fringe_out_of_range(self):
        with pytest.raises(ValueError):
            index_to_nm(38, ZernikeOrdering.FRINGE)
        with pytest.raises(ValueError):
            index_to_nm(0, ZernikeOrdering.FRINGE)

    def test_noll(self):
        expected = [(0, 0), (1, 1), (1, -1), (2, 0), (2, -2), (2, 2), (3, -1), (3, 1),
                    (3, -3), (3, 3), (4, 0)]
        assert [index_to_nm(j, ZernikeOrdering.NOLL) for j in range(1, 12)] == expected

    def test_ansi(self):
        expected = [(0, 0), (1, -1), (1, 1), (2, -2), (2, 0), (2, 2), (3, -3)]
        assert [index_to_nm(j, ZernikeOrdering.ANSI) for j in range(7)] == expected

    def test_ansi_negative_index(self):
        with pytest.raises(ValueError):
            index_to_nm(-1, ZernikeOrdering.ANSI)


class TestRadialPolynomial:

    def test_reference_values(self):
        assert radial_polynomial(3, 3, 0.333) == pytest.approx(0.036926037, rel=1e-9)
        assert radial_polynomial(3, 1, 0.333) == pytest.approx(-0.555221889, rel=1e-9)
        assert radial_polynomial(5, 3, 0.12345) == pytest.approx(-0.007382104685237683, rel=1e-9)

    def test_unity_at_edge(self):
        for n in range(9):
            for m in range(-n, n + 1, 2):
                assert radial_polynomial(n, m, 1.0) == pytest.approx(1.0)

    def test_odd_difference_is_zero(self):
        rho = np.linspace(0.0, 1.0, 5)
        np.testing.assert_array_equal(radial_polynomial(3, 0, rho), np.zeros(5))

    def test_invalid_indices(self):
        with pytest.raises(ValueError):
            radial_polynomial(2, 4, 0.5)
        with pytest.raises(ValueError):
            radial_polynomial(-1, 0, 0.5)

    def test_array_shape_is_kept(self):
        rho = np.linspace(0.0, 1.0, 12).reshape(3, 4)
        assert radial_polynomial(4, 0, rho).shape == (3, 4)


class TestZernike:

    def test_reference_values(self):
        assert zernike(5, 3, 0.12345, 1.0) == pytest.approx(0.0073082282475042991, rel=1e-9)
        assert zernike(3, 1, 0.333, 5.0) == pytest.approx(-0.15749545445076085, rel=1e-9)

    def test_sine_term(self):
        assert zernike(1, -1, 0.5, np.pi / 2) == pytest.approx(0.5)

    def test_noll_normalisation(self):
        # sqrt(3) (2 rho^2 - 1)
        assert zernike(2, 0, 0.0, 0.0, normalized=True) == pytest.approx(-np.sqrt(3.0))
        assert zernike(2, 2, 1.0, 0.0, normalized=True) == pytest.approx(np.sqrt(6.0))


class TestZernikePolynomial:

    def test_defocus(self):
        coeffs = np.zeros(37)
        coeffs[3] = 1.0  # Z4
        z = ZernikePolynomial(coeffs, radius=2.0)
        assert z.evaluate(0.0) == pytest.approx(-1.0)
        assert z.evaluate(2.0) == pytest.approx(1.0)
        assert z.evaluate(1.0, 0.3) == pytest.approx(2.0 * 0.25 - 1.0)

    def test_outside_aperture_is_nan(self):
        z = ZernikePolynomial([1.0, 0.5], radius=1.0)
        assert np.isnan(z.evaluate(1.5))
        assert np.isnan(z.evaluate(1.5, 0.0))

    def test_radius_only_uses_symmetric_terms(self):
        z = ZernikePolynomial([0.5, 2.0, 3.0], radius=1.0)  # piston, tilt x, tilt y
        assert z.evaluate(0.7) == pytest.approx(0.5)
        assert z.evaluate(0.7, 0.0) == pytest.approx(0.5 + 2.0 * 0.7)

    def test_vectorised(self):
        z = ZernikePolynomial([0.0, 1.0], radius=1.0)
        r = np.array([0.0, 0.5, 1.0])
        np.testing.assert_allclose(z.evaluate(r, np.zeros(3)), r)

    def test_term_names(self):
        z = ZernikePolynomial(np.zeros(9))
        names = z.term_names()
        assert names[0] == "Piston"
        assert names[3] == "Defocus"
        assert names[8] == "Primary Spherical"

    def test_ansi_starts_at_zero(self):
        z = ZernikePolynomial([1.0, 0.0, 0.0, 0.0, 1.0], ordering=ZernikeOrdering.ANSI)
        assert z.indices[0] == (0, 0)
        assert z.indices[4] == (2, 0)
        assert z.evaluate(1.0) == pytest.approx(2.0)

    def test_invalid_radius(self):
        with pytest.raises(ValueError):
            ZernikePolynomial([1.0], radius=0.0)


class TestZOffsetZernikePolynomial:

    def test_offset_is_added(self):
        z = ZOffsetZernikePolynomial([0.0, 0.0, 0.0, 1.0], radius=1.0)
        z.set_offset(0.25)
        assert z.evaluate(0.0) == pytest.approx(-0.75)
        assert z.evaluate(1.0, 1.2) == pytest.approx(1.25)

    def test_offset_keyword(self):
        z = ZOffsetZernikePolynomial([1.0], offset_um=-2.0)
        assert z.evaluate(0.5) == pytest.approx(-1.0)

    def test_outside_aperture_stays_nan(self):
        z = ZOffsetZernikePolynomial([1.0], offset_um=1.0)
        assert np.isnan(z.evaluate(2.0))
