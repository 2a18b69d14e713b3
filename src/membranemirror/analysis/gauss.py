from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt


def gauss_points_weights_edge(n_points: int) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Generate Gauss points and weights for a 1D Gaussian integration on [-1, 1].

    Args:
        n_points: Number of integration points.

    Raises:
        ValueError: If `n_points` is smaller than 1.

    Returns:
        A tuple containing the Gauss points and weights.
    """
    if n_points == 1:
        return np.array([0.0]), np.array([2.0])
    elif n_points == 2:
        return np.array([-1/np.sqrt(3), 1/np.sqrt(3)]), np.array([1.0, 1.0])
    elif n_points == 3:
        return np.array([-np.sqrt(3/5), 0.0, np.sqrt(3/5)]), np.array([5/9, 8/9, 5/9])
    elif n_points > 3:
        return np.polynomial.legendre.leggauss(n_points)
    else:
        raise ValueError(f"Unsupported number of Gauss points: {n_points}. "
                         f"'n_points' must be at least 1.")


def composite_gauss(
    a: float,
    b: float,
    n_points: int,
    n_intervals: int,
    breakpoints: Iterable[float] = ()
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    Nodes and weights of a composite Gauss-Legendre rule on [a, b].

    The interval is first split at the breakpoints lying strictly inside it
    (discontinuities of the integrand), then every piece is divided into
    sub-intervals proportional to its length, at least one per piece.

    Args:
        a: Lower integration limit.
        b: Upper integration limit.
        n_points: Gauss points per sub-interval.
        n_intervals: Total number of sub-intervals on [a, b].
        breakpoints: Points where the integrand is not smooth.

    Returns:
        A tuple containing the nodes and weights, both of shape (n,).
    """
    if b <= a:
        raise ValueError(f"Invalid integration interval [{a}, {b}].")
    if n_intervals < 1:
        raise ValueError(f"'n_intervals' must be at least 1, got {n_intervals}.")

    xi, wi = gauss_points_weights_edge(n_points)

    inner = sorted(p for p in set(breakpoints) if a < p < b)
    edges = np.array([a, *inner, b], dtype=np.float64)

    nodes: list[npt.NDArray[np.float64]] = []
    weights: list[npt.NDArray[np.float64]] = []
    for lo, hi in zip(edges[:-1], edges[1:]):
        n_sub = max(1, int(round(n_intervals * (hi - lo) / (b - a))))
        sub_edges = np.linspace(lo, hi, n_sub + 1)
        half = 0.5 * np.diff(sub_edges)
        mid = 0.5 * (sub_edges[:-1] + sub_edges[1:])

        # (n_sub, n_points) -> flat
        nodes.append((mid[:, None] + half[:, None] * xi[None, :]).ravel())
        weights.append((half[:, None] * wi[None, :]).ravel())

    return np.concatenate(nodes), np.concatenate(weights)
