"""
Forward Operator for the Discretized Scattering Integral Equations
===================================================================

State equation (inside the investigation domain D):

    E = ei + gd·C·E    =>    E = LC·ei,   LC = (I - gd·C)⁻¹

Data equation (at the sensors S):

    es_model = gs·C·E = gs·C·LC·ei

C is the diagonal contrast operator, stored as its diagonal (N,). The residual
used by the inversion is rho = es - es_model.

The dense inversion of (I - gd·C) is the most expensive step of an
iteration: O(N³).
"""

import numpy as np
from dataclasses import dataclass

from .exceptions import SingularOperatorError
from .problem import ScatteringProblem


@dataclass
class ForwardState:
    """Forward quantities for a given contrast."""
    contrast: np.ndarray                # C, shape (N,)
    total_field_operator: np.ndarray    # LC, shape (N, N)
    total_field: np.ndarray             # LC·ei, shape (N, L)
    residual: np.ndarray                # rho, shape (M, L)

    @property
    def misfit(self) -> float:
        """||rho||² (Frobenius)."""
        return float(np.sum(np.abs(self.residual)**2))


def total_field_operator(gd: np.ndarray, contrast: np.ndarray) -> np.ndarray:
    """
    Compute LC = (I - gd·diag(C))⁻¹.

    Raises
    ------
    SingularOperatorError
        If (I - gd·C) is singular or the inverse is not finite.
    """
    n = gd.shape[0]
    A = np.eye(n, dtype=complex) - gd * contrast[np.newaxis, :]
    try:
        LC = np.linalg.inv(A)
    except np.linalg.LinAlgError as exc:
        raise SingularOperatorError(f"(I - gd·C) is singular: {exc}") from exc
    if not np.all(np.isfinite(LC)):
        raise SingularOperatorError("(I - gd·C)⁻¹ has non-finite entries")
    return LC


def scattered_field(gs: np.ndarray, contrast: np.ndarray, total_field: np.ndarray) -> np.ndarray:
    """Model scattered field gs·C·E at the sensors."""
    return gs @ (contrast[:, np.newaxis] * total_field)


class ForwardOperator:
    """
    Forward model of a scattering problem.

    Parameters
    ----------
    problem : ScatteringProblem
        Fixed inputs (es, ei, gd, gs)
    """

    def __init__(self, problem: ScatteringProblem):
        self.problem = problem
        self.n_evaluations = 0

    def evaluate(self, contrast: np.ndarray) -> ForwardState:
        """
        Compute LC, the total field and the residual for ``contrast``.

        Parameters
        ----------
        contrast : complex array, shape (N,)

        Returns
        -------
        state : ForwardState
        """
        contrast = np.asarray(contrast, dtype=complex)
        p = self.problem
        LC = total_field_operator(p.gd, contrast)
        E = LC @ p.ei
        rho = p.es - scattered_field(p.gs, contrast, E)
        self.n_evaluations += 1
        return ForwardState(contrast=contrast, total_field_operator=LC,
                            total_field=E, residual=rho)

    def sensitivity(self, state: ForwardState, direction: np.ndarray) -> np.ndarray:
        """
        First-order change of the model field along ``direction``:

            v = gs·LCᵀ·D·LC·ei

        For a reciprocal (symmetric) gd this is the Fréchet derivative of
        gs·C·LC·ei in the direction D.

        Returns
        -------
        v : complex array, shape (M, L)
        """
        LC = state.total_field_operator
        return self.problem.gs @ (LC.T @ (direction[:, np.newaxis] * state.total_field))

    def data_gradient(self, state: ForwardState) -> np.ndarray:
        """
        Gradient of ||rho||² w.r.t. Re C + j Im C (adjoint-state formula).

            ∇J = -2 conj( Σ_l (LC·ei)_l ⊙ (LC·gsᵀ·conj(rho_l)) )

        The per-source products are contracted in a single matrix expression.
        """
        LC = state.total_field_operator
        adjoint_field = LC @ (self.problem.gs.T @ np.conj(state.residual))
        return -2 * np.conj(np.sum(state.total_field * adjoint_field, axis=1))


def generate_synthetic_data(contrast: np.ndarray, ei: np.ndarray, gd: np.ndarray,
                            gs: np.ndarray, noise_level: float = 0.0,
                            seed: int = 42) -> np.ndarray:
    """
    Scattered field at the sensors for a known contrast.

    Parameters
    ----------
    contrast : array, shape (N,)
        True contrast
    ei, gd, gs : arrays
        Incident field and Green matrices
    noise_level : float
        Standard deviation of complex Gaussian noise, relative to the
        RMS amplitude of the noiseless data
    seed : int
        Random seed for the noise

    Returns
    -------
    es : complex array, shape (M, L)
    """
    contrast = np.asarray(contrast, dtype=complex)
    ei = np.asarray(ei, dtype=complex)
    if ei.ndim == 1:
        ei = ei.reshape(-1, 1)
    LC = total_field_operator(np.asarray(gd, dtype=complex), contrast)
    es = scattered_field(np.asarray(gs, dtype=complex), contrast, LC @ ei)

    if noise_level > 0:
        rng = np.random.default_rng(seed)
        scale = noise_level * np.sqrt(np.mean(np.abs(es)**2) / 2)
        es = es + scale * (rng.standard_normal(es.shape) + 1j * rng.standard_normal(es.shape))
    return es
