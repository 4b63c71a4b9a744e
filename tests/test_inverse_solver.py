"""
Tests for the conjugate-gradient inversion.
"""

import numpy as np
import pytest

from src.exceptions import InputDimensionError, SingularOperatorError, StepLengthError
from src.forward_solver import generate_synthetic_data
from src.inverse_solver import (BackgroundStart, BackpropagationStart, ConjugateGradientSolver,
                                ExactStart, SolverStatus, WarmStart, backpropagation_contrast,
                                conjugate_direction, get_initial_solution,
                                solve_inverse_problem)
from src.problem import BackgroundMedium, ScatteringProblem
from src.synthetic import cylinder_phantom, make_synthetic_problem


def _problem(es, ei, gd, gs, I, J):
    return ScatteringProblem(es=es, ei=ei, gd=gd, gs=gs, dx=1.0, dy=1.0, I=I, J=J,
                             background=BackgroundMedium())


def _geman_mcclure_penalty(grid, lam, delta):
    """λ² Σ φ(|∇f|/δ) with unit spacing and no difference past the boundary."""
    fx = np.zeros_like(grid)
    fy = np.zeros_like(grid)
    fx[:-1, :] = np.diff(grid, axis=0)
    fy[:, :-1] = np.diff(grid, axis=1)
    t2 = (fx**2 + fy**2) / delta**2
    return lam**2 * np.sum(t2 / (1 + t2))


# =============================================================================
# CONJUGATE DIRECTION
# =============================================================================

def test_conjugate_direction_polak_ribiere():
    g = np.array([1 + 1j, 2])
    g_last = np.array([1, 1j])
    d = np.array([0.5, -1j])

    d_new, degenerate = conjugate_direction(g, g_last, d, dS=0.25)

    assert not degenerate
    np.testing.assert_allclose(d_new, [1.3125 + 1.0625j, 2.125 - 0.625j])


def test_conjugate_direction_degenerate():
    g = np.array([1 + 2j, -3j])
    d_new, degenerate = conjugate_direction(g, np.zeros(2), np.array([5.0, 5.0]), dS=1.0)
    assert degenerate
    np.testing.assert_array_equal(d_new, g)


def test_first_direction_is_gradient(small_problem):
    """With d = 0 at the start, the first direction is the gradient itself."""
    solver = ConjugateGradientSolver(small_problem, verbose=False, initialization='background')
    state = solver.initialize()
    solver.iterate(state)
    np.testing.assert_allclose(state.direction, state.gradient)


# =============================================================================
# INITIAL SOLUTIONS
# =============================================================================

def test_get_initial_solution():
    assert isinstance(get_initial_solution('background'), BackgroundStart)
    assert isinstance(get_initial_solution('backpropagation'), BackpropagationStart)
    assert isinstance(get_initial_solution('exact'), ExactStart)
    with pytest.raises(ValueError):
        get_initial_solution('random')


def test_backpropagation_single_source():
    """For a unit incident field the start is γ gsᴴ es."""
    rng = np.random.default_rng(0)
    gs = rng.standard_normal((3, 4)) + 1j * rng.standard_normal((3, 4))
    es = rng.standard_normal((3, 1)) + 1j * rng.standard_normal((3, 1))

    contrast = backpropagation_contrast(es, np.ones((4, 1)), gs)

    back = gs.conj().T @ es[:, 0]
    gamma = np.linalg.norm(back)**2 / np.linalg.norm(gs @ back)**2
    np.testing.assert_allclose(contrast, gamma * back)


def test_backpropagation_skips_zero_incident_field():
    gs = np.eye(2)
    es = np.array([[1.0, 1.0], [2.0, 2.0]])
    ei = np.array([[1.0, 0.0], [1.0, 1.0]])

    contrast = backpropagation_contrast(es, ei, gs)

    # gamma = 1 for gs = I; cell 0 only gets a term from the first source
    np.testing.assert_allclose(contrast, [0.5, 2.0])


def test_warm_start_size_mismatch(small_problem):
    start = WarmStart(contrast=np.zeros(3), gradient=np.zeros(3), direction=np.zeros(3))
    with pytest.raises(ValueError):
        start.initialize(small_problem)


def test_input_dimension_mismatch():
    with pytest.raises(InputDimensionError):
        _problem(es=np.ones((2, 2)), ei=np.ones((4, 3)), gd=np.zeros((4, 4)),
                 gs=np.ones((2, 4)), I=2, J=2)
    with pytest.raises(InputDimensionError):
        _problem(es=np.ones((2, 1)), ei=np.ones((4, 1)), gd=np.zeros((4, 4)),
                 gs=np.ones((2, 4)), I=3, J=2)


# =============================================================================
# CONVERGENCE LOG
# =============================================================================

def test_background_start_log(small_problem):
    solver = ConjugateGradientSolver(small_problem, verbose=False, maxit=2)
    result = solver.solve(BackgroundStart())

    assert result.cost[0] == pytest.approx(np.sum(np.abs(small_problem.es)**2))
    assert result.gradient_norm[0] == pytest.approx(np.sqrt(small_problem.N))
    assert result.initialization == 'background'


def test_backpropagation_start_logs_zero_gradient(small_problem):
    result = ConjugateGradientSolver(small_problem, verbose=False, maxit=1).solve()
    assert result.initialization == 'backpropagation'
    assert result.gradient_norm[0] == 0.0


def test_iteration_zero_cost_includes_penalty(small_problem):
    solver = ConjugateGradientSolver(small_problem, verbose=False, lambda_r=0.3, lambda_i=0.3,
                                     delta_r=0.1, delta_i=0.1)
    state = solver.initialize(BackpropagationStart())

    penalty = solver.regularizer.penalty(state.contrast)
    assert penalty > 0
    assert state.convergence[0][0] == pytest.approx(state.forward.misfit + penalty)
    assert state.convergence[0][1] == 0.0


@pytest.mark.parametrize("maxit", [0, 1, 4])
def test_runs_full_budget(small_problem, maxit):
    result = solve_inverse_problem(small_problem, verbose=False, maxit=maxit,
                                   initialization='background')
    assert result.convergence.shape == (maxit + 1, 2)
    assert result.iterations == maxit
    assert len(result.iteration_times) == maxit
    assert result.status is SolverStatus.CONVERGED_BY_BUDGET
    assert result.epsr.shape == (small_problem.I, small_problem.J)


def test_logged_cost_matches_independent_evaluation(small_problem):
    lam, delta = 0.1, 0.1
    solver = ConjugateGradientSolver(small_problem, verbose=False, maxit=3,
                                     initialization='background',
                                     lambda_r=lam, lambda_i=lam, delta_r=delta, delta_i=delta)
    result = solver.solve()

    C = result.contrast
    p = small_problem
    E = np.linalg.solve(np.eye(p.N) - p.gd @ np.diag(C), p.ei)
    rho = p.es - p.gs @ np.diag(C) @ E
    grid = C.reshape((p.I, p.J), order='F')
    expected = (np.sum(np.abs(rho)**2)
                + _geman_mcclure_penalty(grid.real, lam, delta)
                + _geman_mcclure_penalty(grid.imag, lam, delta))
    assert result.cost[-1] == pytest.approx(expected, rel=1e-9)


def test_warm_start_continues_run(small_problem):
    """3 + 2 iterations through a warm start reproduce a 5-iteration run."""
    kwargs = dict(verbose=False, initialization='background', lambda_r=0.05, delta_r=0.2,
                  lambda_i=0.05, delta_i=0.2)
    full = ConjugateGradientSolver(small_problem, maxit=5, **kwargs).solve()
    first = ConjugateGradientSolver(small_problem, maxit=3, **kwargs).solve()
    start = WarmStart(first.contrast, first.gradient, first.direction)
    second = ConjugateGradientSolver(small_problem, maxit=2, **kwargs).solve(start)

    assert second.gradient_norm[0] == pytest.approx(first.gradient_norm[-1])
    np.testing.assert_allclose(second.cost, full.cost[3:], rtol=1e-9)
    np.testing.assert_allclose(second.contrast, full.contrast, rtol=1e-9, atol=1e-12)


# =============================================================================
# END-TO-END
# =============================================================================

def test_linear_problem_converges_in_rank_iterations():
    """With gd = 0 the cost is quadratic and CG terminates after rank(A) steps."""
    rng = np.random.default_rng(21)
    gs = rng.standard_normal((2, 4)) + 1j * rng.standard_normal((2, 4))
    ei = rng.standard_normal((4, 1)) + 1j * rng.standard_normal((4, 1))
    A = gs * ei[:, 0][np.newaxis, :]
    z = rng.standard_normal(2) + 1j * rng.standard_normal(2)
    true_contrast = A.conj().T @ z
    es = (A @ true_contrast).reshape(-1, 1)

    problem = _problem(es, ei, np.zeros((4, 4)), gs, I=2, J=2)
    result = solve_inverse_problem(problem, verbose=False, maxit=2, initialization='background',
                                   lambda_r=0.0, lambda_i=0.0)

    assert result.cost[0] == pytest.approx(np.sum(np.abs(es)**2))
    assert np.linalg.norm(result.contrast - true_contrast) < 1e-8 * np.linalg.norm(true_contrast)
    assert result.cost[-1] < 1e-16 * result.cost[0]


def test_nonlinear_problem_recovers_contrast():
    gs = np.array([[1, 0, 1, 0], [0, 1, 0, 1]], dtype=complex)
    ei = np.array([[1, 1], [1, 1], [1, -1], [1, -1]], dtype=complex)
    gd = 0.05 * (1 + 0.5j) * (np.ones((4, 4)) - np.eye(4))
    true_contrast = np.array([0.3 - 0.1j, -0.2 + 0.05j, 0.1 + 0.2j, 0.25 - 0.15j])
    es = generate_synthetic_data(true_contrast, ei, gd, gs)

    problem = _problem(es, ei, gd, gs, I=2, J=2)
    result = solve_inverse_problem(problem, verbose=False, maxit=20, initialization='background',
                                   lambda_r=0.0, lambda_i=0.0)

    assert result.cost[-1] < 1e-10 * result.cost[0]
    np.testing.assert_allclose(result.contrast, true_contrast, atol=1e-4)


def test_single_source_nonlinear_problem_approaches_contrast():
    """N = 4, M = 2, L = 1 with multiple scattering, from the background start."""
    rng = np.random.default_rng(33)
    N = 4
    gs = rng.standard_normal((2, N)) + 1j * rng.standard_normal((2, N))
    ei = rng.standard_normal((N, 1)) + 1j * rng.standard_normal((N, 1))
    gd = 0.005 * (1 + 0.5j) * (np.ones((N, N)) - np.eye(N))
    # Contrast in the range of the adjoint of the Born operator gs·diag(ei)
    A = gs * ei[:, 0][np.newaxis, :]
    back = A.conj().T @ (rng.standard_normal(2) + 1j * rng.standard_normal(2))
    true_contrast = 0.2 * np.sqrt(N) * back / np.linalg.norm(back)
    es = generate_synthetic_data(true_contrast, ei, gd, gs)

    problem = _problem(es, ei, gd, gs, I=2, J=2)
    result = solve_inverse_problem(problem, verbose=False, maxit=20, initialization='background',
                                   lambda_r=0.0, lambda_i=0.0)

    assert result.cost[0] == np.sum(np.abs(problem.es)**2)
    assert result.cost[-1] < 1e-10 * result.cost[0]
    error = np.linalg.norm(result.contrast - true_contrast) / np.linalg.norm(true_contrast)
    assert error < 0.05


def test_exact_start_has_zero_cost():
    epsr, sig = cylinder_phantom(4, 4, 5e-3, 5e-3, radius=6e-3, epsr=1.3, sig=0.005)
    problem = make_synthetic_problem(epsr, sig, n_sensors=8, n_sources=4)

    result = solve_inverse_problem(problem, verbose=False, maxit=0, initialization='exact')

    assert result.cost[0] < 1e-10
    np.testing.assert_allclose(result.epsr, epsr, atol=1e-10)
    np.testing.assert_allclose(result.sig, sig, atol=1e-10)


def test_golden_step_never_increases_cost(small_problem):
    result = solve_inverse_problem(small_problem, verbose=False, maxit=5,
                                   initialization='background', step_method='golden')
    assert np.all(np.diff(result.cost) <= 1e-12 * result.cost[0])
    assert result.cost[-1] < result.cost[0]


# =============================================================================
# FAILURES
# =============================================================================

def test_singular_operator_propagates():
    N = 4
    problem = _problem(es=np.ones((2, 1)), ei=np.ones((N, 1)), gd=0.5 * np.eye(N),
                       gs=np.ones((2, N)), I=2, J=2)
    start = WarmStart(contrast=2.0 * np.ones(N), gradient=np.ones(N), direction=np.zeros(N))
    solver = ConjugateGradientSolver(problem, verbose=False, maxit=1)
    with pytest.raises(SingularOperatorError):
        solver.solve(start)


def test_zero_data_keeps_background_contrast(small_problem):
    """With es = 0 and C = 0 the direction vanishes; the run still uses its budget."""
    p = small_problem
    problem = _problem(np.zeros_like(p.es), p.ei, p.gd, p.gs, I=p.I, J=p.J)
    solver = ConjugateGradientSolver(problem, verbose=False, maxit=3, initialization='background')
    result = solver.solve()

    assert result.status is SolverStatus.CONVERGED_BY_BUDGET
    np.testing.assert_array_equal(result.contrast, 0)
    np.testing.assert_array_equal(result.cost, 0)


@pytest.mark.parametrize("step_method", ["closed_form", "golden"])
def test_run_continues_after_exact_solution(small_case, step_method):
    """Once rho and g vanish, the remaining iterations take zero steps."""
    problem, true_contrast = small_case
    N = problem.N
    start = WarmStart(true_contrast, np.ones(N), np.zeros(N))
    solver = ConjugateGradientSolver(problem, verbose=False, maxit=4, step_method=step_method,
                                     lambda_r=0.0, lambda_i=0.0)
    result = solver.solve(start)

    assert result.status is SolverStatus.CONVERGED_BY_BUDGET
    assert result.convergence.shape == (5, 2)
    assert np.all(result.cost < 1e-20)
    np.testing.assert_allclose(result.contrast, true_contrast, atol=1e-10)


def test_zero_sensitivity_raises_step_length_error():
    """A non-zero direction with v = 0 and no penalty has den_alpha = 0."""
    N = 4
    problem = _problem(es=np.ones((2, 1)), ei=np.ones((N, 1)), gd=np.zeros((N, N)),
                       gs=np.zeros((2, N)), I=2, J=2)
    solver = ConjugateGradientSolver(problem, verbose=False, lambda_r=0.0, lambda_i=0.0)
    C = np.zeros(N, dtype=complex)
    state = solver.forward.evaluate(C)
    weights = solver.regularizer.weights(C)

    with pytest.raises(StepLengthError):
        solver.step_length(state, np.array([1.0, -1.0, 0.5j, 2.0]), weights)


def _failing_step(terms):
    raise StepLengthError("forced failure")


def test_step_failure_without_fallback(small_problem, monkeypatch):
    monkeypatch.setattr("src.inverse_solver.closed_form_step", _failing_step)
    solver = ConjugateGradientSolver(small_problem, verbose=False, maxit=1,
                                     initialization='background')
    with pytest.raises(StepLengthError):
        solver.solve()


def test_step_failure_falls_back_to_golden(small_problem, monkeypatch):
    monkeypatch.setattr("src.inverse_solver.closed_form_step", _failing_step)
    solver = ConjugateGradientSolver(small_problem, verbose=False, maxit=3,
                                     initialization='background', fallback_to_golden=True)
    result = solver.solve()
    assert np.all(np.diff(result.cost) <= 1e-12 * result.cost[0])
    assert result.cost[-1] < result.cost[0]


def test_invalid_config_rejected(small_problem):
    with pytest.raises(ValueError):
        ConjugateGradientSolver(small_problem, verbose=False, step_method='newton')
    with pytest.raises(ValueError):
        ConjugateGradientSolver(small_problem, verbose=False, maxit=-1)
