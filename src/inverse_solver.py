"""
Conjugate-Gradient Inverse Scattering Solver
============================================

Regularized conjugate-gradient method of Lobel et al. for 2D TMz inverse
scattering. Given the measured scattered field at the sensors, the incident
field on the investigation domain and the Green matrices, the solver
recovers the complex contrast of every cell.

Each iteration:

    1. edge-preserving weights of the current contrast
    2. gradient g = -(∇J_data + ∇J_reg)
    3. conjugate direction d = g + β d   (complex Polak-Ribière)
    4. step α (closed form, or golden section)
    5. C ← C + α d, recompute LC and rho
    6. log (J, ||g||)

The loop always runs the full iteration budget.

References
----------
Lobel, P., et al. "Conjugate gradient method for solving inverse scattering
with experimental data." IEEE Antennas and Propagation Magazine 38.3 (1996).

Lobel, P., et al. "A new regularization scheme for inverse scattering."
Inverse Problems 13.2 (1997).
"""

import time
import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from .config import InversionConfig
from .exceptions import StepLengthError
from .forward_solver import ForwardOperator, ForwardState
from .problem import ScatteringProblem
from .regularization import EdgePreservingRegularizer, RegularizationWeights
from .step_length import StepLengthTerms, closed_form_step, golden_section_step


# =============================================================================
# INITIAL SOLUTIONS
# =============================================================================

@dataclass
class BackgroundStart:
    """Everything background: C = 0."""
    name = "background"

    def initialize(self, problem: ScatteringProblem):
        N = problem.N
        return np.zeros(N, dtype=complex), np.ones(N, dtype=complex), np.zeros(N, dtype=complex)


@dataclass
class BackpropagationStart:
    """
    Backpropagation of the measured field into the domain.

        γ  = ||gsᴴ es||² / ||gs gsᴴ es||²
        w0 = γ gsᴴ es
        C  = mean over sources of w0 / ei
    """
    name = "backpropagation"

    def initialize(self, problem: ScatteringProblem):
        N = problem.N
        contrast = backpropagation_contrast(problem.es, problem.ei, problem.gs)
        return contrast, np.ones(N, dtype=complex), np.zeros(N, dtype=complex)


@dataclass
class ExactStart:
    """Ground-truth contrast of the problem (algorithm verification only)."""
    name = "exact"

    def initialize(self, problem: ScatteringProblem):
        N = problem.N
        return problem.true_contrast(), np.ones(N, dtype=complex), np.zeros(N, dtype=complex)


@dataclass
class WarmStart:
    """Continue from a previously saved contrast, gradient and direction."""
    contrast: np.ndarray
    gradient: np.ndarray
    direction: np.ndarray
    name = "warm"

    def initialize(self, problem: ScatteringProblem):
        arrays = []
        for label, values in (('contrast', self.contrast), ('gradient', self.gradient),
                              ('direction', self.direction)):
            values = np.asarray(values, dtype=complex).reshape(-1)
            if values.shape != (problem.N,):
                raise ValueError(f"Warm-start {label} has {values.size} cells, expected {problem.N}")
            arrays.append(values.copy())
        return tuple(arrays)


InitialSolution = Union[BackgroundStart, BackpropagationStart, ExactStart, WarmStart]

INITIAL_SOLUTIONS = {
    'background': BackgroundStart,
    'backpropagation': BackpropagationStart,
    'exact': ExactStart,
}


def get_initial_solution(name: str) -> InitialSolution:
    """Initial-solution strategy by name (warm starts are built from a file)."""
    if name not in INITIAL_SOLUTIONS:
        available = ', '.join(INITIAL_SOLUTIONS.keys())
        raise ValueError(f"Unknown initialization '{name}'. Available: {available}")
    return INITIAL_SOLUTIONS[name]()


def backpropagation_contrast(es: np.ndarray, ei: np.ndarray, gs: np.ndarray) -> np.ndarray:
    """
    Contrast estimate from backpropagating the measured field.

    Cells where the incident field of a source vanishes do not contribute
    to that source's term of the average.
    """
    back = gs.conj().T @ es
    gamma = np.linalg.norm(back)**2 / np.linalg.norm(gs @ back)**2
    w0 = gamma * back
    ratio = np.divide(w0, ei, out=np.zeros_like(w0), where=(ei != 0))
    return np.sum(ratio, axis=1) / es.shape[1]


# =============================================================================
# GRADIENT AND DIRECTION
# =============================================================================

def inner(a: np.ndarray, b: np.ndarray, dS: float) -> complex:
    """Discretized inner product dS Σ a conj(b)."""
    return complex(dS * np.sum(a * np.conj(b)))


def conjugate_direction(g: np.ndarray, g_last: np.ndarray, d: np.ndarray,
                        dS: float) -> Tuple[np.ndarray, bool]:
    """
    Complex Polak-Ribière update d_new = g + β d,

        β = <g, g - g_last>_dS / ||g_last||²

    Returns
    -------
    d_new : array
    degenerate : bool
        True if ||g_last|| = 0, in which case β = 0 (steepest descent).
    """
    norm_last = np.linalg.norm(g_last)**2
    if norm_last == 0:
        return g.copy(), True
    beta = inner(g, g - g_last, dS) / norm_last
    return g + beta * d, False


# =============================================================================
# STATE AND RESULT
# =============================================================================

class SolverStatus(Enum):
    INITIALIZED = "initialized"
    ITERATING = "iterating"
    CONVERGED_BY_BUDGET = "converged_by_budget"


@dataclass
class OptimizationState:
    """Mutable state carried from one iteration to the next."""
    contrast: np.ndarray
    gradient: np.ndarray
    direction: np.ndarray
    forward: ForwardState
    convergence: List[Tuple[float, float]] = field(default_factory=list)
    iteration_times: List[float] = field(default_factory=list)
    iteration: int = 0
    status: SolverStatus = SolverStatus.INITIALIZED
    last_step: complex = 0j


@dataclass
class InversionResult:
    """Results of a conjugate-gradient inversion."""
    contrast: np.ndarray            # (N,)
    epsr: np.ndarray                # (I, J) retrieved relative permittivity
    sig: np.ndarray                 # (I, J) retrieved conductivity [S/m]
    gradient: np.ndarray            # (N,) last gradient
    direction: np.ndarray           # (N,) last direction
    convergence: np.ndarray         # (maxit+1, 2): cost, ||g||
    iteration_times: np.ndarray     # (maxit,) wall-clock seconds
    total_time: float               # processing time [s]
    initialization: str
    status: SolverStatus

    @property
    def cost(self) -> np.ndarray:
        return self.convergence[:, 0]

    @property
    def gradient_norm(self) -> np.ndarray:
        return self.convergence[:, 1]

    @property
    def iterations(self) -> int:
        return len(self.convergence) - 1


# =============================================================================
# SOLVER
# =============================================================================

class ConjugateGradientSolver:
    """
    Regularized conjugate-gradient inversion of a scattering problem.

    Parameters
    ----------
    problem : ScatteringProblem
        Measured/incident fields, Green matrices and domain metadata
    config : InversionConfig, optional
        Iteration budget, regularization and strategy options
    verbose : bool
        Print one line per iteration
    **overrides
        Fields of InversionConfig to override (e.g. maxit=20)

    Examples
    --------
    >>> solver = ConjugateGradientSolver(problem, maxit=50, verbose=False)
    >>> result = solver.solve()
    >>> result.epsr.shape == (problem.I, problem.J)
    True
    """

    def __init__(self, problem: ScatteringProblem, config: InversionConfig = None,
                 verbose: bool = True, **overrides):
        if config is None:
            config = InversionConfig()
        if overrides:
            config = config.replace(**overrides)
        config.validate()

        self.problem = problem
        self.config = config
        self._verbose = verbose
        self.forward = ForwardOperator(problem)
        self.regularizer = EdgePreservingRegularizer(
            problem.shape, dx=problem.dx, dy=problem.dy,
            lambda_r=config.lambda_r, lambda_i=config.lambda_i,
            delta_r=config.delta_r, delta_i=config.delta_i,
            potential=config.potential,
        )

    # -------------------------------------------------------------------------
    # Cost and gradient
    # -------------------------------------------------------------------------

    def cost(self, forward_state: ForwardState) -> float:
        """J = ||rho||² + edge-preserving penalty of the contrast."""
        return forward_state.misfit + self.regularizer.penalty(forward_state.contrast)

    def gradient(self, forward_state: ForwardState, weights: RegularizationWeights) -> np.ndarray:
        """Descent direction g = -(∇J_data + ∇J_reg)."""
        grad_J = self.forward.data_gradient(forward_state) + self.regularizer.gradient(weights)
        return -grad_J

    def step_terms(self, forward_state: ForwardState, direction: np.ndarray,
                   weights: RegularizationWeights) -> StepLengthTerms:
        v = self.forward.sensitivity(forward_state, direction)
        cross = self.regularizer.cross_sums(direction, forward_state.contrast, weights)
        return StepLengthTerms.from_fields(v, forward_state.residual, cross)

    def step_length(self, forward_state: ForwardState, direction: np.ndarray,
                    weights: RegularizationWeights) -> complex:
        """
        Step along ``direction`` with the configured strategy.

        A zero direction (the gradient vanished, e.g. at an exact solution)
        gives α = 0 so the run continues to the end of its budget.
        """
        if not np.any(direction):
            if self._verbose:
                print("  Zero search direction: step set to 0")
            return 0j

        if self.config.step_method == 'golden':
            return self._golden_step(forward_state.contrast, direction)

        terms = self.step_terms(forward_state, direction, weights)
        try:
            return closed_form_step(terms)
        except StepLengthError as exc:
            if not self.config.fallback_to_golden:
                raise
            if self._verbose:
                print(f"  {exc}; falling back to golden-section search")
            return self._golden_step(forward_state.contrast, direction)

    def _golden_step(self, contrast: np.ndarray, direction: np.ndarray) -> complex:
        def cost_along(t):
            return self.cost(self.forward.evaluate(contrast + t * direction))
        return golden_section_step(cost_along, direction,
                                   tol=self.config.golden_tol,
                                   maxiter=self.config.golden_maxiter)

    # -------------------------------------------------------------------------
    # Iterations
    # -------------------------------------------------------------------------

    def default_start(self) -> InitialSolution:
        """Initial-solution strategy selected by the configuration."""
        if self.config.initialization == 'warm':
            from .data_io import load_warm_start
            return load_warm_start(self.config.warm_start_file)
        return get_initial_solution(self.config.initialization)

    def initialize(self, start: InitialSolution = None) -> OptimizationState:
        """
        Build the iteration-0 state.

        Parameters
        ----------
        start : InitialSolution, optional
            Initial-solution strategy. Defaults to the configured one.

        Notes
        -----
        The logged iteration-0 cost is the full cost ||rho||² + penalty(C0),
        the same quantity logged at every later iteration. The MATLAB
        reference scripts log only ||rho||² here; the two agree for the
        background start, whose penalty is zero.
        """
        if start is None:
            start = self.default_start()
        C, g, d = start.initialize(self.problem)
        forward_state = self.forward.evaluate(C)

        J0 = self.cost(forward_state)
        # The backpropagation start has no gradient yet
        g_norm = 0.0 if isinstance(start, BackpropagationStart) else float(np.linalg.norm(g))

        if self._verbose:
            print(f"Iteration: 0 - Cost function: {J0:.4e}")

        return OptimizationState(contrast=C, gradient=g, direction=d,
                                 forward=forward_state, convergence=[(J0, g_norm)])

    def iterate(self, state: OptimizationState) -> OptimizationState:
        """Run one conjugate-gradient iteration, updating ``state`` in place."""
        if state.status is SolverStatus.CONVERGED_BY_BUDGET:
            raise RuntimeError("Iteration budget already exhausted")
        state.status = SolverStatus.ITERATING
        tic = time.perf_counter()

        weights = self.regularizer.weights(state.contrast)

        g_last = state.gradient
        g = self.gradient(state.forward, weights)
        d, degenerate = conjugate_direction(g, g_last, state.direction, self.problem.dS)
        if degenerate and self._verbose:
            print("  ||g_last|| = 0: using steepest descent direction")

        alpha = self.step_length(state.forward, d, weights)

        C = state.contrast + alpha * d
        forward_state = self.forward.evaluate(C)
        J = self.cost(forward_state)

        state.contrast = C
        state.gradient = g
        state.direction = d
        state.forward = forward_state
        state.last_step = alpha
        state.iteration += 1
        state.convergence.append((J, float(np.linalg.norm(g))))

        t = time.perf_counter() - tic
        state.iteration_times.append(t)
        if self._verbose:
            print(f"Iteration: {state.iteration} - Cost function: {J:.2e}"
                  f" - norm(g): {np.linalg.norm(g):.2e} - time: {t:.1f} sec")
        return state

    def solve(self, start: InitialSolution = None) -> InversionResult:
        """
        Run the full iteration budget.

        Raises
        ------
        SingularOperatorError
            If (I - gd·C) becomes singular
        StepLengthError
            If the step-length solve fails and no fallback is configured
        """
        if start is None:
            start = self.default_start()

        if self._verbose:
            print("\n========== The Conjugated Gradient Method ==========")
            print(self.problem.summary())

        total_time = time.process_time()
        state = self.initialize(start)
        for _ in range(self.config.maxit):
            self.iterate(state)
        state.status = SolverStatus.CONVERGED_BY_BUDGET
        total_time = time.process_time() - total_time

        if self._verbose:
            print(f"Total time: {total_time:.2f} seconds")

        return self._build_result(state, start, total_time)

    def _build_result(self, state: OptimizationState, start: InitialSolution,
                      total_time: float) -> InversionResult:
        epsr, sig = self.problem.properties_from_contrast(state.contrast)
        return InversionResult(
            contrast=state.contrast,
            epsr=epsr,
            sig=sig,
            gradient=state.gradient,
            direction=state.direction,
            convergence=np.array(state.convergence, dtype=float).reshape(-1, 2),
            iteration_times=np.array(state.iteration_times),
            total_time=total_time,
            initialization=start.name,
            status=state.status,
        )


def solve_inverse_problem(problem: ScatteringProblem, config: InversionConfig = None,
                          start: InitialSolution = None, verbose: bool = True,
                          **overrides) -> InversionResult:
    """Convenience wrapper: build a ConjugateGradientSolver and run it."""
    solver = ConjugateGradientSolver(problem, config, verbose=verbose, **overrides)
    return solver.solve(start)
