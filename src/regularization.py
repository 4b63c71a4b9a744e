"""
Edge-Preserving Regularization for the Contrast Field
=====================================================

The real and imaginary parts of the contrast are penalized separately:

    R(C) = λ_r² Σ φ(|∇Re C|/δ_r) + λ_i² Σ φ(|∇Im C|/δ_i)

where φ is an edge-preserving potential: quadratic for small gradients,
growing slowly (or saturating) for large ones so that material boundaries
are not smoothed away.

Half-quadratic linearization
----------------------------
With the weights b = φ'(t)/(2t) frozen at the current contrast, the penalty
is replaced by the quadratic surrogate

    λ_r²/δ_r² Σ b_r |∇Re C|² + λ_i²/δ_i² Σ b_i |∇Im C|²

which has the same gradient as R at the current contrast. The gradient is
expressed with the weighted Laplacian div(b∇·), and the step-length solve
uses the surrogate's cross-sums between the search direction and the
contrast.

Discretization
--------------
∇ uses forward differences with a Neumann boundary (no difference past the
last row/column), scaled by dx along axis 0 and dy along axis 1. The
weighted Laplacian is built with the exact adjoint of that operator so that
gradient and step length are consistent.
"""

import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Tuple


# =============================================================================
# POTENTIALS
# =============================================================================

class EdgePreservingPotential(ABC):
    """Potential φ(t) and its half-quadratic weight φ'(t)/(2t)."""

    name = "potential"

    @abstractmethod
    def phi(self, t: np.ndarray) -> np.ndarray:
        pass

    @abstractmethod
    def weight(self, t: np.ndarray) -> np.ndarray:
        """φ'(t)/(2t), extended continuously to t = 0."""
        pass


class GemanMcClure(EdgePreservingPotential):
    """φ(t) = t²/(1+t²); saturates at 1 for large gradients."""

    name = "geman_mcclure"

    def phi(self, t):
        t2 = np.square(t)
        return t2 / (1 + t2)

    def weight(self, t):
        return 1.0 / np.square(1 + np.square(t))


class HebertLeahy(EdgePreservingPotential):
    """φ(t) = log(1+t²)."""

    name = "hebert_leahy"

    def phi(self, t):
        return np.log1p(np.square(t))

    def weight(self, t):
        return 1.0 / (1 + np.square(t))


class GreenPotential(EdgePreservingPotential):
    """φ(t) = 2√(1+t²) - 2; behaves like total variation for large t."""

    name = "green"

    def phi(self, t):
        return 2 * np.sqrt(1 + np.square(t)) - 2

    def weight(self, t):
        return 1.0 / np.sqrt(1 + np.square(t))


class QuadraticPotential(EdgePreservingPotential):
    """φ(t) = t² (Tikhonov smoothing, no edge preservation)."""

    name = "quadratic"

    def phi(self, t):
        return np.square(t)

    def weight(self, t):
        return np.ones_like(np.asarray(t, dtype=float))


POTENTIALS = {
    cls.name: cls for cls in (GemanMcClure, HebertLeahy, GreenPotential, QuadraticPotential)
}


def get_potential(name: str) -> EdgePreservingPotential:
    """Instantiate a potential by name."""
    if name not in POTENTIALS:
        available = ', '.join(POTENTIALS.keys())
        raise ValueError(f"Unknown potential '{name}'. Available: {available}")
    return POTENTIALS[name]()


# =============================================================================
# DISCRETE DIFFERENTIAL OPERATORS
# =============================================================================

def _forward_difference(f: np.ndarray, h: float, axis: int) -> np.ndarray:
    f = np.moveaxis(f, axis, 0)
    out = np.zeros_like(f)
    out[:-1] = (f[1:] - f[:-1]) / h
    return np.moveaxis(out, 0, axis)


def _forward_difference_adjoint(p: np.ndarray, h: float, axis: int) -> np.ndarray:
    p = np.moveaxis(p, axis, 0)
    out = np.zeros_like(p)
    out[1:] += p[:-1]
    out[:-1] -= p[:-1]
    return np.moveaxis(out, 0, axis) / h


def grid_gradient(f: np.ndarray, dx: float = 1.0, dy: float = 1.0) -> Tuple[np.ndarray, np.ndarray]:
    """
    Forward-difference gradient of a grid field.

    Parameters
    ----------
    f : array, shape (I, J)
        Real or complex field
    dx, dy : float
        Grid spacing along axis 0 and axis 1

    Returns
    -------
    fx, fy : arrays, shape (I, J)
        Differences along x and y (zero on the last row/column)
    """
    return _forward_difference(f, dx, 0), _forward_difference(f, dy, 1)


def grid_gradient_adjoint(px: np.ndarray, py: np.ndarray,
                          dx: float = 1.0, dy: float = 1.0) -> np.ndarray:
    """Adjoint of ``grid_gradient``: returns ∇ᵀ(px, py)."""
    return _forward_difference_adjoint(px, dx, 0) + _forward_difference_adjoint(py, dy, 1)


def gradient_magnitude(f: np.ndarray, dx: float = 1.0, dy: float = 1.0) -> np.ndarray:
    """|∇f| on each cell for a real field."""
    fx, fy = grid_gradient(f, dx, dy)
    return np.sqrt(fx**2 + fy**2)


def norm_grad(tau: np.ndarray, dx: float = 1.0, dy: float = 1.0) -> Tuple[np.ndarray, np.ndarray]:
    """Gradient magnitudes of the real and imaginary parts of a complex grid."""
    return (gradient_magnitude(np.real(tau), dx, dy),
            gradient_magnitude(np.imag(tau), dx, dy))


def weighted_laplacian(f: np.ndarray, b: np.ndarray,
                       dx: float = 1.0, dy: float = 1.0) -> np.ndarray:
    """
    Anisotropic diffusion div(b ∇f) of a real grid field.

    Computed as -∇ᵀ(b ∇f), so that Σ b|∇f|² has gradient -2·div(b∇f).
    """
    fx, fy = grid_gradient(f, dx, dy)
    return -grid_gradient_adjoint(b * fx, b * fy, dx, dy)


def _weighted_inner(b: np.ndarray, f: np.ndarray, h: np.ndarray,
                    dx: float, dy: float) -> float:
    """Σ b (∇f · ∇h) for real grid fields."""
    fx, fy = grid_gradient(f, dx, dy)
    hx, hy = grid_gradient(h, dx, dy)
    return float(np.sum(b * (fx * hx + fy * hy)))


# =============================================================================
# REGULARIZER
# =============================================================================

@dataclass
class RegularizationWeights:
    """Quantities derived from the contrast at the start of an iteration."""
    re_grad: np.ndarray     # |∇Re C|, shape (I, J)
    im_grad: np.ndarray     # |∇Im C|, shape (I, J)
    b_r: np.ndarray         # Weights of the real part
    b_i: np.ndarray         # Weights of the imaginary part
    re_wl: np.ndarray       # div(b_r ∇Re C)
    im_wl: np.ndarray       # div(b_i ∇Im C)


@dataclass
class RegularizationCrossSums:
    """
    Sums needed by the step-length solve for a direction D = P + jQ and a
    contrast C = X + jY, with κ = λ²/δ²:

        dd_r = κ_r Σ b_r|∇P|² + κ_i Σ b_i|∇Q|²
        dd_i = κ_r Σ b_r|∇Q|² + κ_i Σ b_i|∇P|²
        dd_x = κ_i Σ b_i ∇P·∇Q - κ_r Σ b_r ∇P·∇Q
        dc   = κ_r Σ b_r ∇X·∇P + κ_i Σ b_i ∇Y·∇Q
               + j (κ_i Σ b_i ∇Y·∇P - κ_r Σ b_r ∇X·∇Q)
    """
    dd_r: float
    dd_i: float
    dd_x: float
    dc: complex


class EdgePreservingRegularizer:
    """
    Edge-preserving penalty on an I x J contrast grid.

    Parameters
    ----------
    shape : (I, J)
        Grid dimensions
    dx, dy : float
        Cell sizes
    lambda_r, lambda_i : float
        Regularization strengths of the real / imaginary part
    delta_r, delta_i : float
        Gradient scales of the real / imaginary part
    potential : str or EdgePreservingPotential
        Potential φ (default: Geman-McClure)
    """

    def __init__(self, shape: Tuple[int, int], dx: float = 1.0, dy: float = 1.0,
                 lambda_r: float = 1e-7, lambda_i: float = None,
                 delta_r: float = 1e-4, delta_i: float = None,
                 potential='geman_mcclure'):
        self.shape = tuple(shape)
        self.dx = dx
        self.dy = dy
        self.lambda_r = lambda_r
        self.lambda_i = lambda_r if lambda_i is None else lambda_i
        self.delta_r = delta_r
        self.delta_i = delta_r if delta_i is None else delta_i
        if isinstance(potential, str):
            potential = get_potential(potential)
        self.potential = potential

    @property
    def kappa_r(self) -> float:
        return self.lambda_r**2 / self.delta_r**2

    @property
    def kappa_i(self) -> float:
        return self.lambda_i**2 / self.delta_i**2

    def _grid(self, contrast: np.ndarray) -> np.ndarray:
        return np.reshape(contrast, self.shape, order='F')

    def weights(self, contrast: np.ndarray) -> RegularizationWeights:
        """Gradient magnitudes, weights and weighted Laplacians of a contrast vector."""
        tau = self._grid(contrast)
        re_grad, im_grad = norm_grad(tau, self.dx, self.dy)
        b_r = self.potential.weight(re_grad / self.delta_r)
        b_i = self.potential.weight(im_grad / self.delta_i)
        re_wl = weighted_laplacian(np.real(tau), b_r, self.dx, self.dy)
        im_wl = weighted_laplacian(np.imag(tau), b_i, self.dx, self.dy)
        return RegularizationWeights(re_grad, im_grad, b_r, b_i, re_wl, im_wl)

    def penalty(self, contrast: np.ndarray) -> float:
        """λ_r² Σ φ(|∇Re C|/δ_r) + λ_i² Σ φ(|∇Im C|/δ_i)."""
        re_grad, im_grad = norm_grad(self._grid(contrast), self.dx, self.dy)
        return float(self.lambda_r**2 * np.sum(self.potential.phi(re_grad / self.delta_r))
                     + self.lambda_i**2 * np.sum(self.potential.phi(im_grad / self.delta_i)))

    def gradient(self, weights: RegularizationWeights) -> np.ndarray:
        """Gradient of the penalty w.r.t. Re C + j Im C, as a cell vector."""
        grad = (-2 * self.lambda_r**2 * weights.re_wl / self.delta_r**2
                - 2j * self.lambda_i**2 * weights.im_wl / self.delta_i**2)
        return np.reshape(grad, -1, order='F')

    def cross_sums(self, direction: np.ndarray, contrast: np.ndarray,
                   weights: RegularizationWeights) -> RegularizationCrossSums:
        """Cross-sums of the quadratic surrogate along ``direction``."""
        d = self._grid(direction)
        c = self._grid(contrast)
        P, Q = np.real(d), np.imag(d)
        X, Y = np.real(c), np.imag(c)
        b_r, b_i = weights.b_r, weights.b_i
        kr, ki = self.kappa_r, self.kappa_i
        h = (self.dx, self.dy)

        pp_r = _weighted_inner(b_r, P, P, *h)
        qq_r = _weighted_inner(b_r, Q, Q, *h)
        pq_r = _weighted_inner(b_r, P, Q, *h)
        pp_i = _weighted_inner(b_i, P, P, *h)
        qq_i = _weighted_inner(b_i, Q, Q, *h)
        pq_i = _weighted_inner(b_i, P, Q, *h)

        dc_real = kr * _weighted_inner(b_r, X, P, *h) + ki * _weighted_inner(b_i, Y, Q, *h)
        dc_imag = ki * _weighted_inner(b_i, Y, P, *h) - kr * _weighted_inner(b_r, X, Q, *h)

        return RegularizationCrossSums(
            dd_r=kr * pp_r + ki * qq_i,
            dd_i=kr * qq_r + ki * pp_i,
            dd_x=ki * pq_i - kr * pq_r,
            dc=complex(dc_real, dc_imag),
        )

    def surrogate(self, contrast: np.ndarray, weights: RegularizationWeights) -> float:
        """Half-quadratic surrogate of the penalty with frozen weights."""
        tau = self._grid(contrast)
        return (self.kappa_r * _weighted_inner(weights.b_r, np.real(tau), np.real(tau), self.dx, self.dy)
                + self.kappa_i * _weighted_inner(weights.b_i, np.imag(tau), np.imag(tau), self.dx, self.dy))
