"""
Step Length Along the Conjugate Direction
=========================================

Closed form
-----------
For a direction D and complex step α = a + jb, the cost is approximated by
the quadratic model

    Q(α) = ||rho - α v||² + surrogate penalty of (C + α D)

where v is the sensitivity of the model field along D and the penalty uses
the half-quadratic weights of the current contrast. Writing the stationarity
conditions ∂Q/∂a = ∂Q/∂b = 0 gives a 2x2 real system

    | h_aa  h_ab | |a|   |r_a|
    | h_ab  h_bb | |b| = |r_b|

solved by Cramer's rule, i.e. two numerators over one shared denominator.

Golden section
--------------
Derivative-free alternative: real step t along D minimizing the true cost
J(C + tD), found with ``scipy.optimize.minimize_scalar(method='golden')``.
"""

import numpy as np
from dataclasses import dataclass
from typing import Callable, Tuple
from scipy.optimize import bracket, minimize_scalar

from .exceptions import InversionError, StepLengthError
from .regularization import RegularizationCrossSums


@dataclass
class StepLengthTerms:
    """Scalar sums entering the closed-form step."""
    normv_sum: float        # Σ_l ||v_l||²
    vrho_sum: complex       # Σ v ⊙ conj(rho)
    reg_dd_r: float         # Penalty curvature along a (real step)
    reg_dd_i: float         # Penalty curvature along b (imaginary step)
    reg_dd_x: float         # Penalty coupling between a and b
    reg_dc: complex         # Penalty slope at α = 0

    @classmethod
    def from_fields(cls, v: np.ndarray, rho: np.ndarray,
                    cross: RegularizationCrossSums) -> 'StepLengthTerms':
        return cls(
            normv_sum=float(np.sum(np.abs(v)**2)),
            vrho_sum=complex(np.sum(v * np.conj(rho))),
            reg_dd_r=cross.dd_r,
            reg_dd_i=cross.dd_i,
            reg_dd_x=cross.dd_x,
            reg_dc=cross.dc,
        )


def step_coefficients(terms: StepLengthTerms) -> Tuple[float, float, float]:
    """
    Numerators and denominator of the closed-form step.

    Returns
    -------
    num_alpha_r, num_alpha_i, den_alpha : float
    """
    h_aa = terms.normv_sum + terms.reg_dd_r
    h_bb = terms.normv_sum + terms.reg_dd_i
    h_ab = terms.reg_dd_x
    r_a = terms.vrho_sum.real - terms.reg_dc.real
    r_b = -terms.vrho_sum.imag - terms.reg_dc.imag

    den_alpha = h_aa * h_bb - h_ab**2
    num_alpha_r = r_a * h_bb - h_ab * r_b
    num_alpha_i = h_aa * r_b - h_ab * r_a
    return num_alpha_r, num_alpha_i, den_alpha


def closed_form_step(terms: StepLengthTerms) -> complex:
    """
    Complex step minimizing the quadratic model.

    Raises
    ------
    StepLengthError
        If the denominator is not strictly positive (the quadratic model
        has no unique minimum) or the step is not finite.
    """
    num_alpha_r, num_alpha_i, den_alpha = step_coefficients(terms)
    if not np.isfinite(den_alpha) or den_alpha <= 0:
        raise StepLengthError(
            f"Closed-form step has non-positive denominator (den_alpha={den_alpha:.3e})")
    alpha = complex(num_alpha_r / den_alpha, num_alpha_i / den_alpha)
    if not np.isfinite(alpha):
        raise StepLengthError(f"Closed-form step is not finite (alpha={alpha})")
    return alpha


def quadratic_model(terms: StepLengthTerms, alpha: complex) -> float:
    """
    Q(α) - Q(0) for the quadratic model described by ``terms``.
    """
    a, b = alpha.real, alpha.imag
    data = -2 * (a * terms.vrho_sum.real - b * terms.vrho_sum.imag) + (a**2 + b**2) * terms.normv_sum
    reg = (a**2 * terms.reg_dd_r + b**2 * terms.reg_dd_i + 2 * a * b * terms.reg_dd_x
           + 2 * a * terms.reg_dc.real + 2 * b * terms.reg_dc.imag)
    return float(data + reg)


def golden_section_step(cost: Callable[[float], float], direction: np.ndarray,
                        initial_step: float = None, tol: float = 1e-6,
                        maxiter: int = 100) -> complex:
    """
    Real step along ``direction`` minimizing ``cost`` by golden-section search.

    Parameters
    ----------
    cost : callable
        t -> J(C + t·D)
    direction : array
        Search direction D (only used to scale the initial bracket)
    initial_step : float, optional
        Second bracket point. Defaults to a step changing the largest
        cell of the contrast by 0.1.
    tol : float
        Relative tolerance of the search
    maxiter : int
        Maximum number of golden-section iterations

    Returns
    -------
    alpha : complex
        Step (with zero imaginary part)

    Raises
    ------
    StepLengthError
        If no bracket or no finite minimum is found.
    """
    d_max = np.max(np.abs(direction))
    if d_max == 0:
        raise StepLengthError("Golden-section search along a zero direction")
    if initial_step is None:
        initial_step = 0.1 / d_max

    def objective(t):
        try:
            return cost(t)
        except InversionError:
            # Trial points that make the forward operator singular are
            # simply excluded from the search.
            return np.inf

    cost0 = objective(0.0)
    try:
        xa, xb, xc = bracket(objective, xa=0.0, xb=initial_step)[:3]
        res = minimize_scalar(objective, bracket=(xa, xb, xc), method='golden',
                              tol=tol, options={'maxiter': maxiter})
    except (RuntimeError, ValueError) as exc:
        # scipy's BracketError derives from RuntimeError; a flat bracket
        # rejected by the golden search raises ValueError
        raise StepLengthError(f"Golden-section search found no bracket: {exc}") from exc
    if not np.isfinite(res.fun):
        raise StepLengthError("Golden-section search found no finite cost")
    if res.fun > cost0:
        return 0j
    return complex(res.x)
