"""
Utilities for Conjugate-Gradient Inversion
==========================================

Plotting of retrieved dielectric maps and convergence curves, and error
metrics against a known ground truth.
"""

import numpy as np
import matplotlib.pyplot as plt
from typing import Optional, Tuple

from .inverse_solver import InversionResult
from .problem import ScatteringProblem


def _grid_extent(problem: ScatteringProblem) -> Tuple[float, float, float, float]:
    """Extent [x_min, x_max, y_min, y_max] of a domain centered at the origin."""
    half_x = problem.I * problem.dx / 2
    half_y = problem.J * problem.dy / 2
    return (-half_x, half_x, -half_y, half_y)


def plot_map(values: np.ndarray, problem: ScatteringProblem,
             ax: Optional[plt.Axes] = None, title: str = "",
             label: str = "", cmap: str = 'viridis') -> plt.Axes:
    """
    Plot an (I, J) grid with x along the horizontal axis.

    Parameters
    ----------
    values : array, shape (I, J)
        Map to plot
    problem : ScatteringProblem
        Provides the cell sizes
    ax : matplotlib.axes.Axes, optional
        Axes to plot on. If None, creates new figure.
    title : str
        Plot title
    label : str
        Colorbar label

    Returns
    -------
    ax : matplotlib.axes.Axes
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 5))

    im = ax.imshow(np.asarray(values).T, origin='lower', extent=_grid_extent(problem),
                   cmap=cmap, aspect='equal')
    ax.set_xlabel('x [m]')
    ax.set_ylabel('y [m]')
    ax.set_title(title)
    clb = ax.figure.colorbar(im, ax=ax)
    clb.set_label(label)
    return ax


def plot_convergence(convergence: np.ndarray, ax: Optional[plt.Axes] = None,
                     column: int = 0, log_scale: bool = True,
                     title: str = "Cost Function", ylabel: str = "J(C)") -> plt.Axes:
    """
    Plot one column of the convergence log against the iteration number.

    Parameters
    ----------
    convergence : array, shape (maxit+1, 2)
        Cost function and gradient norm per iteration
    column : int
        0 for the cost function, 1 for the gradient norm
    log_scale : bool
        Use log scale for y-axis (non-positive values are skipped)
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 4))

    values = np.asarray(convergence)[:, column]
    iterations = np.arange(len(values))
    if log_scale and np.any(values > 0):
        mask = values > 0
        ax.semilogy(iterations[mask], values[mask], linewidth=2)
    else:
        ax.plot(iterations, values, linewidth=2)

    ax.set_xlabel('Iterations')
    ax.set_ylabel(ylabel)
    ax.set_title(title)
    ax.grid(True, alpha=0.3)
    return ax


def plot_results(result: InversionResult, problem: ScatteringProblem,
                 figsize: Tuple[float, float] = (12, 13)):
    """
    Summary figure of an inversion: retrieved permittivity and conductivity,
    real/imaginary parts of the last gradient, cost function and gradient
    norm.

    Returns
    -------
    fig : matplotlib.figure.Figure
    """
    fig, axes = plt.subplots(3, 2, figsize=figsize)

    plot_map(result.epsr, problem, ax=axes[0, 0],
             title='Relative permittivity', label=r'$\epsilon_r$')
    plot_map(result.sig, problem, ax=axes[0, 1],
             title='Conductivity', label=r'$\sigma$ [S/m]')

    g = problem.to_grid(result.gradient)
    plot_map(np.real(g), problem, ax=axes[1, 0], title='Gradient - Real', label='g')
    plot_map(np.imag(g), problem, ax=axes[1, 1], title='Gradient - Imaginary', label='g')

    plot_convergence(result.convergence, ax=axes[2, 0], column=0,
                     title='Cost Function', ylabel='J(C)')
    plot_convergence(result.convergence, ax=axes[2, 1], column=1,
                     title='Gradient', ylabel=r'$|\nabla J(C)|$')

    plt.tight_layout()
    return fig


def compute_reconstruction_error(result: InversionResult, problem: ScatteringProblem) -> dict:
    """
    Error metrics of a reconstruction against the problem's ground truth.

    Returns
    -------
    metrics : dict
        'contrast_relative_error': ||C - C*|| / ||C*|| (inf if C* = 0)
        'epsr_rmse': RMS error of the relative permittivity
        'sig_rmse': RMS error of the conductivity [S/m]
        'epsr_max': Maximum absolute permittivity error
        'sig_max': Maximum absolute conductivity error
    """
    true_contrast = problem.true_contrast()
    norm_true = np.linalg.norm(true_contrast)
    diff = np.linalg.norm(result.contrast - true_contrast)
    epsr_err = result.epsr - problem.epsr
    sig_err = result.sig - problem.sig

    return {
        'contrast_relative_error': diff / norm_true if norm_true > 0 else np.inf,
        'epsr_rmse': float(np.sqrt(np.mean(epsr_err**2))),
        'sig_rmse': float(np.sqrt(np.mean(sig_err**2))),
        'epsr_max': float(np.max(np.abs(epsr_err))),
        'sig_max': float(np.max(np.abs(sig_err))),
    }
