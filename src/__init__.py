"""
Conjugate-Gradient Microwave Inverse Scattering
===============================================

Quantitative 2D TMz microwave imaging: recover the complex contrast
(relative permittivity and conductivity) of every cell of an investigation
domain from scattered fields measured at a set of sensors.

Method
------
Regularized conjugate gradient (Lobel et al., 1996/1997):

1. **Forward operator**: LC = (I - gd·C)⁻¹, residual rho = es - gs·C·LC·ei
2. **Gradient**: adjoint-state data term plus edge-preserving regularization
3. **Direction**: complex Polak-Ribière update
4. **Step length**: closed-form complex step (golden section as alternative)

Quick Start
-----------
>>> from cg_inversion import ConjugateGradientSolver, BackgroundMedium
>>> from cg_inversion.synthetic import cylinder_phantom, make_synthetic_problem
>>>
>>> epsr, sig = cylinder_phantom(10, 10, 5e-3, 5e-3, radius=0.012, epsr=1.5, sig=0.01)
>>> problem = make_synthetic_problem(epsr, sig)
>>>
>>> solver = ConjugateGradientSolver(problem, maxit=20, verbose=False)
>>> result = solver.solve()
>>> result.convergence.shape
(21, 2)

License
-------
MIT License
"""

__version__ = "1.0.0"

# =============================================================================
# PROBLEM DEFINITION
# =============================================================================
from .problem import (
    ScatteringProblem,
    BackgroundMedium,
    contrast_from_properties,
    properties_from_contrast,
)

# =============================================================================
# ERRORS
# =============================================================================
from .exceptions import (
    InversionError,
    InputDimensionError,
    SingularOperatorError,
    StepLengthError,
)

# =============================================================================
# FORWARD OPERATOR
# =============================================================================
from .forward_solver import (
    ForwardOperator,
    ForwardState,
    total_field_operator,
    generate_synthetic_data,
)

# =============================================================================
# REGULARIZATION
# =============================================================================
from .regularization import (
    EdgePreservingRegularizer,
    RegularizationWeights,
    GemanMcClure,
    HebertLeahy,
    GreenPotential,
    QuadraticPotential,
    get_potential,
    weighted_laplacian,
    norm_grad,
)

# =============================================================================
# STEP LENGTH
# =============================================================================
from .step_length import (
    StepLengthTerms,
    closed_form_step,
    golden_section_step,
)

# =============================================================================
# INVERSE SOLVER
# =============================================================================
from .inverse_solver import (
    ConjugateGradientSolver,
    InversionResult,
    OptimizationState,
    SolverStatus,
    BackgroundStart,
    BackpropagationStart,
    ExactStart,
    WarmStart,
    conjugate_direction,
    solve_inverse_problem,
)

# =============================================================================
# CONFIGURATION
# =============================================================================
from .config import (
    Config,
    InversionConfig,
    OutputConfig,
    get_config,
    get_template,
    TEMPLATES,
)

# =============================================================================
# I/O
# =============================================================================
from .data_io import (
    load_problem,
    save_problem,
    load_problem_npz,
    save_problem_npz,
    save_result,
    load_result,
    load_warm_start,
)

from . import synthetic
from . import utils

__all__ = [
    '__version__',

    # === PROBLEM ===
    'ScatteringProblem',
    'BackgroundMedium',
    'contrast_from_properties',
    'properties_from_contrast',

    # === ERRORS ===
    'InversionError',
    'InputDimensionError',
    'SingularOperatorError',
    'StepLengthError',

    # === FORWARD ===
    'ForwardOperator',
    'ForwardState',
    'total_field_operator',
    'generate_synthetic_data',

    # === REGULARIZATION ===
    'EdgePreservingRegularizer',
    'RegularizationWeights',
    'GemanMcClure',
    'HebertLeahy',
    'GreenPotential',
    'QuadraticPotential',
    'get_potential',
    'weighted_laplacian',
    'norm_grad',

    # === STEP LENGTH ===
    'StepLengthTerms',
    'closed_form_step',
    'golden_section_step',

    # === INVERSE SOLVER ===
    'ConjugateGradientSolver',
    'InversionResult',
    'OptimizationState',
    'SolverStatus',
    'BackgroundStart',
    'BackpropagationStart',
    'ExactStart',
    'WarmStart',
    'conjugate_direction',
    'solve_inverse_problem',

    # === CONFIG ===
    'Config',
    'InversionConfig',
    'OutputConfig',
    'get_config',
    'get_template',
    'TEMPLATES',

    # === I/O ===
    'load_problem',
    'save_problem',
    'load_problem_npz',
    'save_problem_npz',
    'save_result',
    'load_result',
    'load_warm_start',

    # === MODULES ===
    'synthetic',
    'utils',
]
